"""Relink service - drives a full reconciliation pass for one SimpleFIN item.

dedup -> match -> (user confirmation) -> migrate (one transaction) -> cleanup

Matching is read-only. The confirmed batch is applied in a single
transaction: either every pair is migrated or none is. Cleanup runs
afterwards in separate, best-effort steps whose failures are logged and
reported but never undo or mask the migration outcome.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from config import settings
from integrations.exceptions import ProviderAuthError
from models import Account, AccountProvider, SimplefinAccount, SimplefinItem
from services.relink_errors import (
    RelinkError,
    RelinkInProgressError,
    RelinkMigrationError,
    RelinkPairNotFoundError,
    RelinkValidationError,
    SimplefinItemNotFoundError,
)
from services.relink_matcher import RelinkCandidate, propose_pairs
from services.relink_migration_service import RelinkMigrationService, RelinkResult
from services.simplefin_dedup_service import DedupResult, SimplefinDedupService
from services.simplefin_import_service import SimplefinImportService
from services.simplefin_links import attached_ids

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelinkPair:
    """A user-confirmed pairing."""

    sfa_id: str
    manual_id: str


@dataclass
class RelinkPreview:
    """Candidates offered after a balances-only refresh."""

    candidates: list[RelinkCandidate] = field(default_factory=list)
    refreshed: bool = False
    refresh_error: Optional[str] = None


@dataclass
class RelinkBatchResult:
    """Outcome of applying a confirmed batch plus its cleanup."""

    results: list[RelinkResult] = field(default_factory=list)
    unlinked_count: Optional[int] = None
    pending_account_setup: Optional[bool] = None
    dedup_removed: list[str] = field(default_factory=list)
    merged_account_ids: list[str] = field(default_factory=list)
    cleanup_errors: list[str] = field(default_factory=list)


class RelinkService:
    """Service for matching SimpleFIN accounts to manual accounts and merging them."""

    # Items with a batch running. Batches for the same connection are
    # serialized, different connections proceed in parallel. Process-local.
    # An id is present only while its batch holds it.
    _running_guard = threading.Lock()
    _running_items: set[str] = set()

    def __init__(
        self,
        import_service: Optional[SimplefinImportService] = None,
        conflict_tolerance: Optional[Decimal] = None,
        proximity_tolerance: Optional[Decimal] = None,
    ):
        """Initialize with optional collaborators for dependency injection.

        Args:
            import_service: Balances-only refresh collaborator. If None, a
                            default one is created on first use.
            conflict_tolerance: Overrides RELINK_BALANCE_CONFLICT_TOLERANCE
            proximity_tolerance: Overrides RELINK_BALANCE_PROXIMITY_TOLERANCE
        """
        self._import_service = import_service
        self.conflict_tolerance = (
            conflict_tolerance
            if conflict_tolerance is not None
            else settings.RELINK_BALANCE_CONFLICT_TOLERANCE
        )
        self.proximity_tolerance = (
            proximity_tolerance
            if proximity_tolerance is not None
            else settings.RELINK_BALANCE_PROXIMITY_TOLERANCE
        )

    @property
    def import_service(self) -> SimplefinImportService:
        """Get the import service, creating a default if not provided."""
        if self._import_service is None:
            self._import_service = SimplefinImportService()
        return self._import_service

    @classmethod
    def _acquire_item(cls, item_id: str) -> bool:
        """Claim ``item_id`` without waiting; False if a batch already holds it."""
        with cls._running_guard:
            if item_id in cls._running_items:
                return False
            cls._running_items.add(item_id)
            return True

    @classmethod
    def _release_item(cls, item_id: str) -> None:
        with cls._running_guard:
            cls._running_items.discard(item_id)

    @classmethod
    def is_relink_in_progress(cls, item_id: str) -> bool:
        """Check whether a batch is currently being applied for ``item_id``."""
        with cls._running_guard:
            return item_id in cls._running_items

    @staticmethod
    def get_item(db: Session, family_id: str, item_id: str) -> SimplefinItem:
        """Load a family's SimpleFIN item.

        Raises:
            SimplefinItemNotFoundError: Unknown item or owned by another family
        """
        item = (
            db.query(SimplefinItem)
            .filter(SimplefinItem.id == item_id, SimplefinItem.family_id == family_id)
            .first()
        )
        if item is None:
            raise SimplefinItemNotFoundError(
                f"SimpleFIN item not found: {item_id}", item_id=item_id
            )
        return item

    @staticmethod
    def manual_accounts(db: Session, family_id: str) -> list[Account]:
        """Family accounts with no provider link and no legacy SimpleFIN reference."""
        return (
            db.query(Account)
            .outerjoin(AccountProvider, AccountProvider.account_id == Account.id)
            .filter(
                Account.family_id == family_id,
                AccountProvider.id.is_(None),
                Account.simplefin_account_id.is_(None),
            )
            .order_by(Account.created_at, Account.id)
            .all()
        )

    @staticmethod
    def unlinked_count(db: Session, item: SimplefinItem) -> int:
        """Count SimpleFIN accounts with neither an account nor a provider link."""
        ids = [
            row[0]
            for row in db.query(SimplefinAccount.id)
            .filter(SimplefinAccount.simplefin_item_id == item.id)
            .all()
        ]
        return len(set(ids) - attached_ids(db, ids))

    @staticmethod
    def refresh_setup_status(db: Session, item: SimplefinItem) -> int:
        """Recompute the unlinked count and clear ``pending_account_setup`` at zero."""
        count = RelinkService.unlinked_count(db, item)
        if count == 0 and item.pending_account_setup:
            item.pending_account_setup = False
            logger.info("SimpleFIN item %s: account setup complete", item.id)
        return count

    def dedup(self, db: Session, family_id: str, item_id: str) -> DedupResult:
        """Run and commit a dedup pass for one item."""
        item = self.get_item(db, family_id, item_id)
        result = SimplefinDedupService.dedup_simplefin_accounts(db, item)
        db.commit()
        return result

    def compute_candidates(
        self, db: Session, family_id: str, item_id: str
    ) -> list[RelinkCandidate]:
        """Propose pairings for an item's SimpleFIN accounts.

        A dedup pass runs first on a best-effort basis; if it fails it is
        rolled back and matching continues on the canonical rows.

        Args:
            db: Database session
            family_id: Owning family (replaces any session-global lookup)
            item_id: SimpleFIN item to match

        Returns:
            Proposed pairs, at most one per SimpleFIN account and per account
        """
        item = self.get_item(db, family_id, item_id)
        try:
            SimplefinDedupService.dedup_simplefin_accounts(db, item)
            db.commit()
        except Exception:
            db.rollback()
            logger.warning("Dedup before relink matching failed for item %s", item_id, exc_info=True)

        synced = [
            sfa for sfa in SimplefinDedupService.canonical_accounts(db, item)
            if sfa.relinked_at is None
        ]
        manuals = self.manual_accounts(db, family_id)
        return propose_pairs(
            synced,
            manuals,
            conflict_tolerance=self.conflict_tolerance,
            proximity_tolerance=self.proximity_tolerance,
        )

    def refresh_and_propose(
        self, db: Session, family_id: str, item_id: str
    ) -> RelinkPreview:
        """Refresh balances from SimpleFIN, then propose pairings.

        The refresh is fire-and-forget: a provider failure is logged and
        reported in the preview, and matching proceeds on stored data.
        """
        item = self.get_item(db, family_id, item_id)
        preview = RelinkPreview()
        try:
            self.import_service.import_balances_only(db, item)
            item.last_synced_at = datetime.now(timezone.utc)
            db.commit()
            preview.refreshed = True
        except ProviderAuthError as e:
            db.rollback()
            item.status = "requires_update"
            db.commit()
            preview.refresh_error = str(e)
            logger.warning("SimpleFIN balances-only refresh rejected for item %s: %s", item_id, e)
        except Exception as e:
            db.rollback()
            preview.refresh_error = str(e)
            logger.warning(
                "SimpleFIN balances-only refresh failed for item %s: %s", item_id, e,
                exc_info=True,
            )

        preview.candidates = self.compute_candidates(db, family_id, item_id)
        return preview

    @staticmethod
    def validate_pairs(pairs: Iterable[RelinkPair], item_id: str = "") -> list[RelinkPair]:
        """Reject batches that name the same SimpleFIN account or account twice.

        Raises:
            RelinkValidationError: Empty ids or repeated ids
        """
        validated: list[RelinkPair] = []
        seen_sfa: set[str] = set()
        seen_manual: set[str] = set()
        for pair in pairs:
            if not pair.sfa_id or not pair.manual_id:
                raise RelinkValidationError("Each pair needs sfa_id and manual_id", item_id=item_id)
            if pair.sfa_id in seen_sfa:
                raise RelinkValidationError(
                    f"SimpleFIN account {pair.sfa_id} appears in more than one pair",
                    item_id=item_id,
                )
            if pair.manual_id in seen_manual:
                raise RelinkValidationError(
                    f"Account {pair.manual_id} appears in more than one pair",
                    item_id=item_id,
                )
            seen_sfa.add(pair.sfa_id)
            seen_manual.add(pair.manual_id)
            validated.append(pair)
        return validated

    @staticmethod
    def _resolve_pair(
        db: Session, family_id: str, item: SimplefinItem, pair: RelinkPair
    ) -> tuple[SimplefinAccount, Account]:
        sfa = (
            db.query(SimplefinAccount)
            .filter(
                SimplefinAccount.id == pair.sfa_id,
                SimplefinAccount.simplefin_item_id == item.id,
            )
            .first()
        )
        manual = (
            db.query(Account)
            .filter(Account.id == pair.manual_id, Account.family_id == family_id)
            .first()
        )
        if sfa is None or manual is None:
            raise RelinkPairNotFoundError(
                f"Relink pair not found: sfa={pair.sfa_id} manual={pair.manual_id}",
                item_id=item.id,
                sfa_id=pair.sfa_id,
                manual_id=pair.manual_id,
            )
        return sfa, manual

    def _migrate_batch(
        self, db: Session, family_id: str, item: SimplefinItem, pairs: list[RelinkPair]
    ) -> list[RelinkResult]:
        """Apply every pair in one transaction; roll everything back on any error."""
        results: list[RelinkResult] = []
        try:
            for pair in pairs:
                sfa, manual = self._resolve_pair(db, family_id, item, pair)
                results.append(RelinkMigrationService.migrate_pair(db, sfa, manual))
            db.commit()
        except RelinkError:
            db.rollback()
            logger.warning("Relink batch for item %s rolled back", item.id, exc_info=True)
            raise
        except Exception as e:
            db.rollback()
            logger.error("Unexpected error applying relink batch for item %s", item.id, exc_info=True)
            raise RelinkMigrationError(
                "Relink batch failed and was rolled back", item_id=item.id
            ) from e

        logger.info("Relink batch for item %s applied: %d pair(s)", item.id, len(results))
        return results

    def _cleanup(self, db: Session, item: SimplefinItem, batch: RelinkBatchResult) -> None:
        """Post-migration sweeps. Each step commits on its own; failures are recorded."""
        try:
            dedup = SimplefinDedupService.dedup_simplefin_accounts(db, item)
            db.commit()
            batch.dedup_removed.extend(dedup.removed)
        except Exception as e:
            db.rollback()
            batch.cleanup_errors.append(f"dedup: {e}")
            logger.warning("Post-relink dedup failed for item %s", item.id, exc_info=True)

        try:
            merge = RelinkMigrationService.merge_duplicate_accounts(db, item)
            db.commit()
            batch.merged_account_ids.extend(merge.merged_account_ids)
            batch.dedup_removed.extend(merge.removed_simplefin_account_ids)
        except Exception as e:
            db.rollback()
            batch.cleanup_errors.append(f"merge: {e}")
            logger.warning("Post-relink merge sweep failed for item %s", item.id, exc_info=True)

        try:
            batch.unlinked_count = self.refresh_setup_status(db, item)
            db.commit()
            batch.pending_account_setup = item.pending_account_setup
        except Exception as e:
            db.rollback()
            batch.cleanup_errors.append(f"setup status: {e}")
            logger.warning("Post-relink setup status refresh failed for item %s", item.id, exc_info=True)

    def apply_relinks(
        self,
        db: Session,
        family_id: str,
        item_id: str,
        pairs: Iterable[RelinkPair],
    ) -> RelinkBatchResult:
        """Apply user-confirmed pairs for one SimpleFIN item.

        Re-applying a pair that is already in place yields ``skipped_same``,
        so a failed batch can simply be confirmed again.

        Args:
            db: Database session
            family_id: Owning family
            item_id: SimpleFIN item the pairs belong to
            pairs: Confirmed pairs

        Returns:
            RelinkBatchResult with one result per pair and cleanup outcome

        Raises:
            SimplefinItemNotFoundError: Unknown item
            RelinkValidationError: Malformed batch or conflicting link; nothing changed
            RelinkPairNotFoundError: A pair references a missing row; nothing changed
            RelinkInProgressError: Another batch is running for this item
            RelinkMigrationError: Unexpected failure; nothing changed
        """
        item = self.get_item(db, family_id, item_id)
        validated = self.validate_pairs(pairs, item_id=item_id)

        if not self._acquire_item(item.id):
            logger.warning("Relink blocked: a batch is already running for item %s", item.id)
            raise RelinkInProgressError(
                "Relink already in progress for this connection", item_id=item.id
            )
        try:
            batch = RelinkBatchResult()
            batch.results = self._migrate_batch(db, family_id, item, validated)
            self._cleanup(db, item, batch)
            return batch
        finally:
            self._release_item(item.id)
