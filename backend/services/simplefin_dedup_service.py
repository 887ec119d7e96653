"""Dedup service - collapses duplicate SimpleFIN account rows.

Repeated syncs can leave several ``SimplefinAccount`` rows for the same
upstream account. This pass keeps one canonical row per upstream id and
removes the empty extras. It never moves data; extras that still carry an
account or link are left in place and reported.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models import SimplefinAccount, SimplefinItem
from services.simplefin_links import attached_ids, naive_utc

logger = logging.getLogger(__name__)


@dataclass
class DedupFailure:
    """A redundant row that could not be removed."""

    simplefin_account_id: str
    upstream_id: str
    reason: str


@dataclass
class DedupResult:
    """Outcome of one dedup pass over a SimpleFIN item."""

    removed: list[str] = field(default_factory=list)
    failures: list[DedupFailure] = field(default_factory=list)
    canonical_ids: dict[str, str] = field(default_factory=dict)  # upstream_id -> row id


class SimplefinDedupService:
    """Service for collapsing duplicate SimpleFIN accounts of one item."""

    @staticmethod
    def _group_by_upstream(
        rows: list[SimplefinAccount],
    ) -> dict[str, list[SimplefinAccount]]:
        grouped: dict[str, list[SimplefinAccount]] = defaultdict(list)
        for row in rows:
            grouped[row.upstream_id].append(row)
        return grouped

    @staticmethod
    def choose_canonical(
        rows: list[SimplefinAccount], attached: set[str]
    ) -> SimplefinAccount:
        """Pick the row to keep: attached rows first, then most recently updated."""
        return max(
            rows,
            key=lambda s: (
                s.id in attached,
                naive_utc(s.updated_at),
                naive_utc(s.created_at),
                s.id,
            ),
        )

    @staticmethod
    def canonical_accounts(db: Session, item: SimplefinItem) -> list[SimplefinAccount]:
        """Return the canonical row per upstream id without modifying anything."""
        rows = (
            db.query(SimplefinAccount)
            .filter(SimplefinAccount.simplefin_item_id == item.id)
            .all()
        )
        attached = attached_ids(db, [r.id for r in rows])
        grouped = SimplefinDedupService._group_by_upstream(rows)
        return [
            SimplefinDedupService.choose_canonical(group, attached)
            for _upstream_id, group in sorted(grouped.items())
        ]

    @staticmethod
    def dedup_simplefin_accounts(db: Session, item: SimplefinItem) -> DedupResult:
        """Reduce every upstream id of ``item`` to a single SimpleFIN account row.

        Each deletion runs in its own savepoint so a failure leaves the rest
        of the pass intact. Changes are flushed, not committed.

        Args:
            db: Database session
            item: The SimpleFIN connection to deduplicate

        Returns:
            DedupResult with removed row ids and per-row failures
        """
        result = DedupResult()
        rows = (
            db.query(SimplefinAccount)
            .filter(SimplefinAccount.simplefin_item_id == item.id)
            .all()
        )
        attached = attached_ids(db, [r.id for r in rows])

        for upstream_id, group in sorted(SimplefinDedupService._group_by_upstream(rows).items()):
            canonical = SimplefinDedupService.choose_canonical(group, attached)
            result.canonical_ids[upstream_id] = canonical.id

            for row in group:
                if row.id == canonical.id:
                    continue
                if row.id in attached:
                    result.failures.append(
                        DedupFailure(
                            simplefin_account_id=row.id,
                            upstream_id=upstream_id,
                            reason="duplicate still has a linked account",
                        )
                    )
                    logger.warning(
                        "Dedup: kept duplicate SimpleFIN account %s (upstream %s), it is still linked",
                        row.id, upstream_id,
                    )
                    continue

                row_id = row.id
                try:
                    with db.begin_nested():
                        db.delete(row)
                        db.flush()
                except SQLAlchemyError as e:
                    result.failures.append(
                        DedupFailure(
                            simplefin_account_id=row_id,
                            upstream_id=upstream_id,
                            reason=str(e),
                        )
                    )
                    logger.warning(
                        "Dedup: failed to remove SimpleFIN account %s (upstream %s): %s",
                        row_id, upstream_id, e,
                    )
                    continue
                result.removed.append(row_id)

        if result.removed:
            db.expire(item, ["simplefin_accounts"])
        if result.removed or result.failures:
            logger.info(
                "Dedup for item %s: %d removed, %d failed",
                item.id, len(result.removed), len(result.failures),
            )
        return result
