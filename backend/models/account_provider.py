"""AccountProvider model - the provider link binding an Account upstream."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class AccountProvider(Base):
    """Binds one Account to one upstream account.

    ``provider_id`` is the id of the provider-side row (a SimplefinAccount
    for ``provider_type == "SimplefinAccount"``). At most one Account may
    hold a given upstream link, and an Account holds at most one link.
    """

    __tablename__ = "account_providers"
    __table_args__ = (
        UniqueConstraint(
            "provider_type", "provider_id", name="uix_account_provider_type_id"
        ),
        UniqueConstraint("account_id", name="uix_account_provider_account"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    provider_type = Column(String, nullable=False)
    provider_id = Column(String(36), nullable=False, index=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    account = relationship("Account", back_populates="account_provider")
