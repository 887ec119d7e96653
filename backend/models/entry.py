"""Entry model - a ledger transaction owned by one account."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Entry(Base):
    """A ledger entry (transaction) on an account.

    ``(external_id, source)`` identifies the upstream transaction when both
    are present, e.g. ``("TRN-123", "simplefin")``. Manually entered rows
    leave them empty.
    """

    __tablename__ = "entries"
    __table_args__ = (
        Index("ix_entries_account_external_source", "account_id", "external_id", "source"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date = Column(Date, nullable=False)
    name = Column(String, nullable=False)
    amount = Column(Numeric(19, 4), nullable=False, default=Decimal("0"))
    currency = Column(String(3), nullable=False, default="USD")
    external_id = Column(String, nullable=True)
    source = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    account = relationship("Account", back_populates="entries")
