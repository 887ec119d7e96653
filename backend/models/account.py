"""Account model - a family-owned financial account."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Account(Base):
    """A financial account owned by a family.

    An account is "manual" while it has no AccountProvider row, and
    "provider-linked" once it holds exactly one. ``simplefin_account_id``
    is the older direct reference to the upstream row; it is kept in step
    with the link but the link table is authoritative.
    """

    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    family_id = Column(String(36), ForeignKey("families.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    accountable_type = Column(String, nullable=True)  # e.g., "Depository", "Investment"
    currency = Column(String(3), nullable=False, default="USD")
    balance = Column(Numeric(19, 4), nullable=True, default=Decimal("0"))
    cash_balance = Column(Numeric(19, 4), nullable=True, default=Decimal("0"))
    mask = Column(String, nullable=True)  # Masked account number hint, e.g. "1234"
    account_number_last4 = Column(String, nullable=True)
    simplefin_account_id = Column(
        String(36),
        ForeignKey("simplefin_accounts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    family = relationship("Family", back_populates="accounts")
    simplefin_account = relationship("SimplefinAccount", back_populates="legacy_accounts")
    account_provider = relationship(
        "AccountProvider",
        back_populates="account",
        uselist=False,
        cascade="all, delete-orphan",
    )
    entries = relationship("Entry", back_populates="account", cascade="all, delete-orphan")
    holdings = relationship("Holding", back_populates="account", cascade="all, delete-orphan")
