"""Family model - the owner of accounts and SimpleFIN connections."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Family(Base):
    """A household whose accounts and connections are reconciled together."""

    __tablename__ = "families"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    accounts = relationship("Account", back_populates="family")
    simplefin_items = relationship("SimplefinItem", back_populates="family")
