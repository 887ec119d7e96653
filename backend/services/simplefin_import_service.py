"""SimpleFIN import service - balances-only refresh of upstream accounts."""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from integrations.simplefin_client import SimpleFINAccountBalance, SimpleFINClient
from models import SimplefinAccount, SimplefinItem
from services.simplefin_dedup_service import SimplefinDedupService

logger = logging.getLogger(__name__)


class SimplefinImportService:
    """Upserts SimpleFIN account rows from a balances-only fetch."""

    def __init__(self, client: Optional[SimpleFINClient] = None):
        """Initialize with an optional client for dependency injection.

        Args:
            client: SimpleFIN client. If None, one is built per item from
                    the item's access URL (or the configured default).
        """
        self._client = client

    def client_for(self, item: SimplefinItem) -> SimpleFINClient:
        """Return the injected client, or one bound to ``item``'s access URL."""
        if self._client is not None:
            return self._client
        return SimpleFINClient(access_url=item.access_url)

    @staticmethod
    def _apply_balance(row: SimplefinAccount, remote: SimpleFINAccountBalance) -> None:
        if remote.name:
            row.name = remote.name
        row.currency = remote.currency
        row.current_balance = remote.balance
        row.available_balance = remote.available_balance
        row.raw_payload = remote.raw
        row.updated_at = datetime.now(timezone.utc)

    def import_balances_only(self, db: Session, item: SimplefinItem) -> int:
        """Refresh balances for every upstream account of ``item``.

        The canonical row for each upstream id (the one dedup keeps) is
        refreshed; an upstream account without any row gets a new one. Changes are
        flushed, not committed.

        Args:
            db: Database session
            item: The SimpleFIN connection to refresh

        Returns:
            Number of upstream accounts refreshed or created

        Raises:
            ProviderError: The fetch failed; nothing was changed.
        """
        remote_accounts = self.client_for(item).get_balances()

        existing: dict[str, SimplefinAccount] = {
            row.upstream_id: row
            for row in SimplefinDedupService.canonical_accounts(db, item)
        }

        created = 0
        for remote in remote_accounts:
            row = existing.get(remote.id)
            if row is None:
                row = SimplefinAccount(simplefin_item_id=item.id, upstream_id=remote.id)
                db.add(row)
                existing[remote.id] = row
                created += 1
            self._apply_balance(row, remote)

        item.status = "good"
        db.flush()
        logger.info(
            "SimpleFIN item %s: balances refreshed (%d accounts, %d new)",
            item.id, len(remote_accounts), created,
        )
        return len(remote_accounts)
