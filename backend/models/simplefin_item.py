"""SimplefinItem model - one SimpleFIN connection for a family."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class SimplefinItem(Base):
    """An upstream SimpleFIN connection.

    Holds the accounts reported by the connection. ``pending_account_setup``
    stays True while any of those accounts has neither a local Account nor
    a provider link.
    """

    __tablename__ = "simplefin_items"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    family_id = Column(String(36), ForeignKey("families.id"), nullable=False, index=True)
    name = Column(String, nullable=False, default="SimpleFIN Connection")
    access_url = Column(String, nullable=True)
    status = Column(String, nullable=False, default="good")  # "good" | "requires_update"
    pending_account_setup = Column(Boolean, nullable=False, default=True)
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    family = relationship("Family", back_populates="simplefin_items")
    simplefin_accounts = relationship(
        "SimplefinAccount",
        back_populates="simplefin_item",
        cascade="all, delete-orphan",
    )
