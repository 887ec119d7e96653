"""Security model - master ticker list."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class Security(Base):
    """A security/ticker in the master list."""

    __tablename__ = "securities"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    ticker = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)  # Company/fund name
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    holdings = relationship("Holding", back_populates="security")
