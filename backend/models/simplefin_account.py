"""SimplefinAccount model - an upstream account as reported by SimpleFIN."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid

PROVIDER_TYPE = "SimplefinAccount"


class SimplefinAccount(Base):
    """An account reported by a SimpleFIN connection.

    ``upstream_id`` is SimpleFIN's stable account id. It is deliberately
    not unique: repeated syncs can leave several rows for the same upstream
    account, which the dedup pass collapses to one canonical row.
    """

    __tablename__ = "simplefin_accounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    simplefin_item_id = Column(
        String(36), ForeignKey("simplefin_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    upstream_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    current_balance = Column(Numeric(19, 4), nullable=True)
    available_balance = Column(Numeric(19, 4), nullable=True)
    raw_payload = Column(JSON, nullable=True)
    relinked_at = Column(DateTime, nullable=True)  # Set once a relink is confirmed
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    simplefin_item = relationship("SimplefinItem", back_populates="simplefin_accounts")
    legacy_accounts = relationship(
        "Account",
        back_populates="simplefin_account",
        passive_deletes=True,
    )

    @property
    def balance(self):
        """Current balance, falling back to the available balance."""
        if self.current_balance is not None:
            return self.current_balance
        return self.available_balance
