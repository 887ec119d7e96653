"""SQLAlchemy ORM models."""

from .account import Account
from .account_provider import AccountProvider
from .entry import Entry
from .family import Family
from .holding import Holding
from .security import Security
from .simplefin_account import PROVIDER_TYPE, SimplefinAccount
from .simplefin_item import SimplefinItem
from .utils import generate_uuid, reassign_owner

__all__ = ["Account", "AccountProvider", "Entry", "Family", "Holding", "PROVIDER_TYPE", "Security", "SimplefinAccount", "SimplefinItem", "generate_uuid", "reassign_owner"]
