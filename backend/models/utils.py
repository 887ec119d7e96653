"""Shared utilities for ORM models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session


def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid.uuid4())


def reassign_owner(db: Session, model, row_id: str, account_id: str) -> int:
    """Move a row to another account by rewriting only its ``account_id``.

    This is a pure ownership move, not an edit: it issues a single
    ``UPDATE`` for ``account_id`` and ``updated_at`` and deliberately skips
    ORM-level validation, events and ``onupdate`` hooks, so business rules
    attached to the record are not re-run. In-session instances pick up the
    new ``account_id``; loaded relationship collections do not, so callers
    expire them.

    Args:
        db: Database session
        model: Mapped class with ``account_id`` and ``updated_at`` columns
        row_id: Primary key of the row to move
        account_id: The new owning account

    Returns:
        Number of rows updated (0 or 1)
    """
    result = db.execute(
        update(model)
        .where(model.id == row_id)
        .values(account_id=account_id, updated_at=datetime.now(timezone.utc))
    )
    return result.rowcount
