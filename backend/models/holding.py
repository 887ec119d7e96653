"""Holding model - an investment position on a given date."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, Date, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Holding(Base):
    """A position in one security held by an account on one date."""

    __tablename__ = "holdings"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "security_id", "date", "currency",
            name="uix_holding_account_security_date_currency",
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    account_id = Column(
        String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    security_id = Column(
        String(36), ForeignKey("securities.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    date = Column(Date, nullable=False)
    qty = Column(Numeric(19, 8), nullable=False, default=Decimal("0"))
    price = Column(Numeric(19, 4), nullable=False, default=Decimal("0"))
    amount = Column(Numeric(19, 4), nullable=False, default=Decimal("0"))
    currency = Column(String(3), nullable=False, default="USD")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    account = relationship("Account", back_populates="holdings")
    security = relationship("Security", back_populates="holdings")
