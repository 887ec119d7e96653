"""Relink migration service - moves history from a duplicate account.

When a SimpleFIN account is paired with an existing manual account, the
account that the sync created for it (the duplicate) holds entries and
holdings that belong on the manual account. This service moves them over,
dropping rows the target already has by natural key, then moves the
provider link and destroys the duplicate.

Nothing here commits. The caller owns the transaction so that a batch of
pairs is applied all-or-nothing.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import delete
from sqlalchemy.orm import Session

from models import (
    PROVIDER_TYPE,
    Account,
    AccountProvider,
    Entry,
    Holding,
    SimplefinAccount,
    SimplefinItem,
    reassign_owner,
)
from services.relink_errors import RelinkValidationError
from services.simplefin_dedup_service import SimplefinDedupService
from services.simplefin_links import (
    attached_ids,
    linked_account,
    linked_accounts,
    upstream_siblings,
)

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_SKIPPED_SAME = "skipped_same"


@dataclass
class MoveCounts:
    """Rows moved to, or dropped in favour of, the target account."""

    moved_entries: int = 0
    deleted_entries: int = 0
    moved_holdings: int = 0
    deleted_holdings: int = 0

    def add(self, other: "MoveCounts") -> None:
        self.moved_entries += other.moved_entries
        self.deleted_entries += other.deleted_entries
        self.moved_holdings += other.moved_holdings
        self.deleted_holdings += other.deleted_holdings


@dataclass
class RelinkResult:
    """Outcome of migrating one confirmed pair."""

    sfa_id: str
    manual_id: str
    moved_entries: int = 0
    deleted_entries: int = 0
    moved_holdings: int = 0
    deleted_holdings: int = 0
    status: str = STATUS_OK


@dataclass
class MergeResult:
    """Outcome of the duplicate-account merge sweep."""

    merged_account_ids: list[str] = field(default_factory=list)
    removed_simplefin_account_ids: list[str] = field(default_factory=list)
    counts: MoveCounts = field(default_factory=MoveCounts)


class RelinkMigrationService:
    """Moves records and provider links between accounts."""

    @staticmethod
    def move_entries(db: Session, source: Account, target: Account) -> tuple[int, int]:
        """Move ledger entries from ``source`` to ``target``.

        An entry whose ``(external_id, source)`` pair is already present on
        the target is deleted instead of moved. Entries without a complete
        pair are always moved.

        Returns:
            (moved, deleted)
        """
        moved = deleted = 0
        rows = (
            db.query(Entry.id, Entry.external_id, Entry.source)
            .filter(Entry.account_id == source.id)
            .order_by(Entry.created_at, Entry.id)
            .all()
        )
        for entry_id, external_id, entry_source in rows:
            duplicate = None
            if external_id and entry_source:
                duplicate = (
                    db.query(Entry.id)
                    .filter(
                        Entry.account_id == target.id,
                        Entry.external_id == external_id,
                        Entry.source == entry_source,
                    )
                    .first()
                )
            if duplicate is not None:
                db.execute(delete(Entry).where(Entry.id == entry_id))
                deleted += 1
            else:
                reassign_owner(db, Entry, entry_id, target.id)
                moved += 1
        return moved, deleted

    @staticmethod
    def move_holdings(db: Session, source: Account, target: Account) -> tuple[int, int]:
        """Move holdings from ``source`` to ``target``.

        A holding whose ``(security_id, date, currency)`` already exists on
        the target is deleted instead of moved.

        Returns:
            (moved, deleted)
        """
        moved = deleted = 0
        rows = (
            db.query(Holding.id, Holding.security_id, Holding.date, Holding.currency)
            .filter(Holding.account_id == source.id)
            .order_by(Holding.date, Holding.id)
            .all()
        )
        for holding_id, security_id, holding_date, currency in rows:
            duplicate = (
                db.query(Holding.id)
                .filter(
                    Holding.account_id == target.id,
                    Holding.security_id == security_id,
                    Holding.date == holding_date,
                    Holding.currency == currency,
                )
                .first()
            )
            if duplicate is not None:
                db.execute(delete(Holding).where(Holding.id == holding_id))
                deleted += 1
            else:
                reassign_owner(db, Holding, holding_id, target.id)
                moved += 1
        return moved, deleted

    @staticmethod
    def move_records(db: Session, source: Account, target: Account) -> MoveCounts:
        """Move all entries and holdings of ``source`` onto ``target``."""
        db.flush()
        counts = MoveCounts()
        counts.moved_entries, counts.deleted_entries = RelinkMigrationService.move_entries(
            db, source, target
        )
        counts.moved_holdings, counts.deleted_holdings = RelinkMigrationService.move_holdings(
            db, source, target
        )
        # Loaded collections still reflect the old owners
        for account in (source, target):
            db.expire(account, ["entries", "holdings"])

        logger.info(
            "Moved records %s -> %s: entries %d moved/%d dropped, holdings %d moved/%d dropped",
            source.id, target.id,
            counts.moved_entries, counts.deleted_entries,
            counts.moved_holdings, counts.deleted_holdings,
        )
        return counts

    @staticmethod
    def _unlink_upstream(db: Session, sfa_ids: list[str]) -> int:
        """Delete every SimpleFIN link pointing at ``sfa_ids``."""
        if not sfa_ids:
            return 0
        result = db.execute(
            delete(AccountProvider).where(
                AccountProvider.provider_type == PROVIDER_TYPE,
                AccountProvider.provider_id.in_(sfa_ids),
            )
        )
        return result.rowcount

    @staticmethod
    def _link(db: Session, account: Account, sfa: SimplefinAccount) -> AccountProvider:
        link = AccountProvider(
            account_id=account.id,
            provider_type=PROVIDER_TYPE,
            provider_id=sfa.id,
        )
        db.add(link)
        account.simplefin_account_id = sfa.id
        db.flush()
        db.expire(account, ["account_provider"])
        return link

    @staticmethod
    def retire_account(db: Session, account: Account) -> None:
        """Destroy an account whose records have already been moved away."""
        db.execute(delete(AccountProvider).where(AccountProvider.account_id == account.id))
        db.expire(account, ["entries", "holdings", "account_provider"])
        account_id = account.id
        db.delete(account)
        db.flush()
        logger.info("Destroyed duplicate account %s", account_id)

    @staticmethod
    def migrate_pair(
        db: Session, sfa: SimplefinAccount, manual: Account
    ) -> RelinkResult:
        """Make ``manual`` the account linked to ``sfa``, merging in any duplicate.

        Steps:
        1. Resolve the accounts currently linked to ``sfa``'s upstream
           account (via the link table or the legacy reference).
        2. If that is only ``manual`` already, report ``skipped_same``.
        3. Move each duplicate's entries and holdings onto ``manual``.
        4. Replace the upstream links with a single link to ``manual`` and
           destroy the duplicates.

        Args:
            db: Database session (not committed here)
            sfa: The canonical SimpleFIN account of the pair
            manual: The account that should own the upstream link

        Returns:
            RelinkResult with move counts and status

        Raises:
            RelinkValidationError: ``manual`` is linked to another upstream account
        """
        siblings = upstream_siblings(db, sfa)
        sibling_ids = [s.id for s in siblings] or [sfa.id]

        linked = linked_accounts(db, sibling_ids)
        duplicates = [a for a in linked if a.id != manual.id]
        manual_linked = len(duplicates) < len(linked)

        if manual_linked and not duplicates:
            logger.info(
                "Relink %s -> %s skipped, already linked", sfa.id, manual.id
            )
            return RelinkResult(sfa_id=sfa.id, manual_id=manual.id, status=STATUS_SKIPPED_SAME)

        own_link = (
            db.query(AccountProvider)
            .filter(AccountProvider.account_id == manual.id)
            .first()
        )
        linked_elsewhere = (
            own_link is not None and own_link.provider_id not in sibling_ids
        ) or manual.simplefin_account_id not in (None, *sibling_ids)
        if linked_elsewhere:
            raise RelinkValidationError(
                f"Account {manual.id} is already linked to another upstream account",
                item_id=sfa.simplefin_item_id,
            )

        counts = MoveCounts()
        for duplicate in duplicates:
            counts.add(RelinkMigrationService.move_records(db, duplicate, manual))

        stale = RelinkMigrationService._unlink_upstream(db, sibling_ids)
        if stale and not duplicates:
            logger.info("Removed %d stale link(s) for SimpleFIN account %s", stale, sfa.id)
        db.flush()
        for duplicate in duplicates:
            RelinkMigrationService.retire_account(db, duplicate)

        RelinkMigrationService._link(db, manual, sfa)
        sfa.relinked_at = datetime.now(timezone.utc)
        db.flush()

        logger.info(
            "Relinked SimpleFIN account %s to account %s (%d duplicate(s) merged)",
            sfa.id, manual.id, len(duplicates),
        )
        return RelinkResult(
            sfa_id=sfa.id,
            manual_id=manual.id,
            moved_entries=counts.moved_entries,
            deleted_entries=counts.deleted_entries,
            moved_holdings=counts.moved_holdings,
            deleted_holdings=counts.deleted_holdings,
            status=STATUS_OK,
        )

    @staticmethod
    def merge_duplicate_accounts(db: Session, item: SimplefinItem) -> MergeResult:
        """Fold together accounts attached to the same upstream account.

        For each upstream id of ``item`` with more than one attached account,
        the account linked to the canonical row keeps the link and receives
        the others' records; the others are destroyed. Redundant rows left
        without attachments are then removed by a dedup pass.

        Returns:
            MergeResult listing destroyed account ids and removed rows
        """
        result = MergeResult()
        rows = (
            db.query(SimplefinAccount)
            .filter(SimplefinAccount.simplefin_item_id == item.id)
            .all()
        )
        grouped: dict[str, list[SimplefinAccount]] = defaultdict(list)
        for row in rows:
            grouped[row.upstream_id].append(row)
        attached = attached_ids(db, [r.id for r in rows])

        for upstream_id, group in sorted(grouped.items()):
            group_ids = [s.id for s in group]
            accounts = linked_accounts(db, group_ids)
            if len(accounts) < 2:
                continue

            canonical = SimplefinDedupService.choose_canonical(group, attached)
            target = linked_account(db, canonical) or accounts[0]
            extras = [a for a in accounts if a.id != target.id]

            for extra in extras:
                result.counts.add(RelinkMigrationService.move_records(db, extra, target))

            RelinkMigrationService._unlink_upstream(db, group_ids)
            db.flush()
            for extra in extras:
                result.merged_account_ids.append(extra.id)
                RelinkMigrationService.retire_account(db, extra)
            RelinkMigrationService._link(db, target, canonical)

            logger.info(
                "Merged %d duplicate account(s) into %s for upstream %s",
                len(extras), target.id, upstream_id,
            )

        if result.merged_account_ids:
            dedup = SimplefinDedupService.dedup_simplefin_accounts(db, item)
            result.removed_simplefin_account_ids = dedup.removed
        return result

