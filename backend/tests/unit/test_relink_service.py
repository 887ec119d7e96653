"""Tests for RelinkService orchestration."""

from decimal import Decimal
from unittest.mock import patch

import pytest

from models import Account, AccountProvider, Entry, SimplefinAccount
from services.relink_errors import (
    RelinkInProgressError,
    RelinkMigrationError,
    RelinkPairNotFoundError,
    RelinkValidationError,
    SimplefinItemNotFoundError,
)
from services.relink_migration_service import (
    STATUS_OK,
    STATUS_SKIPPED_SAME,
    RelinkMigrationService,
)
from services.relink_service import RelinkPair, RelinkService
from services.simplefin_import_service import SimplefinImportService
from tests.fixtures import (
    EARLIER,
    LATER,
    create_account,
    create_entry,
    create_simplefin_account,
    link_account,
)
from tests.fixtures.mocks import MockSimpleFINClient


def _service(client=None) -> RelinkService:
    return RelinkService(
        import_service=SimplefinImportService(client=client or MockSimpleFINClient())
    )


@pytest.fixture
def two_pairs(db, family, simplefin_item):
    """Two SimpleFIN accounts, each with a sync-created duplicate and a manual twin."""
    pairs = []
    for upstream_id, name in (("ACT-1", "Checking"), ("ACT-2", "Savings")):
        sfa = create_simplefin_account(db, simplefin_item, upstream_id, name=name)
        duplicate = link_account(db, create_account(db, family, name=f"{name} (SimpleFIN)"), sfa)
        manual = create_account(db, family, name=name)
        create_entry(db, duplicate, external_id=f"{upstream_id}-TRN", source="simplefin")
        pairs.append((sfa, duplicate, manual))
    db.commit()
    return pairs


class TestGetItem:
    def test_scoped_to_family(self, db, other_family, simplefin_item):
        with pytest.raises(SimplefinItemNotFoundError):
            RelinkService.get_item(db, other_family.id, simplefin_item.id)

    def test_unknown_item(self, db, family):
        with pytest.raises(SimplefinItemNotFoundError):
            RelinkService.get_item(db, family.id, "missing")


class TestManualAccounts:
    def test_excludes_linked_and_legacy(self, db, family, other_family, simplefin_item):
        sfa = create_simplefin_account(db, simplefin_item, "ACT-1")
        sfa2 = create_simplefin_account(db, simplefin_item, "ACT-2")
        link_account(db, create_account(db, family, name="Linked"), sfa, legacy=False)
        link_account(db, create_account(db, family, name="Legacy"), sfa2, provider_link=False)
        manual = create_account(db, family, name="Manual")
        create_account(db, other_family, name="Someone else's")
        db.commit()

        assert [a.id for a in RelinkService.manual_accounts(db, family.id)] == [manual.id]


class TestSetupStatus:
    def test_unlinked_count(self, db, family, simplefin_item):
        linked = create_simplefin_account(db, simplefin_item, "ACT-1")
        create_simplefin_account(db, simplefin_item, "ACT-2")
        link_account(db, create_account(db, family), linked)
        db.commit()

        assert RelinkService.unlinked_count(db, simplefin_item) == 1

    def test_clears_pending_at_zero(self, db, family, simplefin_item):
        sfa = create_simplefin_account(db, simplefin_item, "ACT-1")
        link_account(db, create_account(db, family), sfa)
        db.commit()

        assert RelinkService.refresh_setup_status(db, simplefin_item) == 0
        assert simplefin_item.pending_account_setup is False

    def test_keeps_pending_while_unlinked(self, db, simplefin_item):
        create_simplefin_account(db, simplefin_item, "ACT-1")
        db.commit()

        assert RelinkService.refresh_setup_status(db, simplefin_item) == 1
        assert simplefin_item.pending_account_setup is True


class TestComputeCandidates:
    def test_dedups_then_matches(self, db, family, simplefin_item):
        create_simplefin_account(
            db, simplefin_item, "ACT-1", name="Checking",
            balance=Decimal("532.10"), raw_payload={"mask": "1234"}, updated_at=EARLIER,
        )
        keep = create_simplefin_account(
            db, simplefin_item, "ACT-1", name="Checking",
            balance=Decimal("532.10"), raw_payload={"mask": "1234"}, updated_at=LATER,
        )
        manual = create_account(db, family, name="My Checking", balance=Decimal("532.10"), mask="1234")
        db.commit()

        candidates = _service().compute_candidates(db, family.id, simplefin_item.id)

        assert [(c.sfa_id, c.manual_id, c.tier) for c in candidates] == [
            (keep.id, manual.id, "last4")
        ]
        assert db.query(SimplefinAccount).count() == 1

    def test_excludes_already_relinked(self, db, family, two_pairs):
        sfa, _duplicate, manual = two_pairs[0]
        service = _service()
        service.apply_relinks(
            db, family.id, sfa.simplefin_item_id,
            [RelinkPair(sfa_id=sfa.id, manual_id=manual.id)],
        )

        candidates = service.compute_candidates(db, family.id, sfa.simplefin_item_id)

        assert sfa.id not in {c.sfa_id for c in candidates}

    def test_dedup_failure_does_not_block_matching(self, db, family, simplefin_item):
        create_simplefin_account(db, simplefin_item, "ACT-1", name="Visa")
        create_account(db, family, name="visa")
        db.commit()

        with patch(
            "services.relink_service.SimplefinDedupService.dedup_simplefin_accounts",
            side_effect=RuntimeError("boom"),
        ):
            candidates = _service().compute_candidates(db, family.id, simplefin_item.id)

        assert len(candidates) == 1
        assert candidates[0].tier == "name"


class TestRefreshAndPropose:
    def test_refresh_then_propose(self, db, family, simplefin_item, mock_simplefin_client):
        manual = create_account(db, family, name="Savings", balance=Decimal("15000.00"))
        db.commit()
        service = _service(mock_simplefin_client)

        preview = service.refresh_and_propose(db, family.id, simplefin_item.id)

        assert preview.refreshed is True
        assert preview.refresh_error is None
        assert simplefin_item.last_synced_at is not None
        assert db.query(SimplefinAccount).count() == 2
        assert [c.manual_id for c in preview.candidates] == [manual.id]

    def test_refreshed_balance_survives_dedup(
        self, db, family, simplefin_item, mock_simplefin_client
    ):
        linked = create_simplefin_account(
            db, simplefin_item, "ACT-savings", balance=Decimal("10.00"), updated_at=EARLIER
        )
        link_account(db, create_account(db, family, name="Savings (SimpleFIN)"), linked)
        create_simplefin_account(
            db, simplefin_item, "ACT-savings", balance=Decimal("10.00"), updated_at=LATER
        )
        manual = create_account(db, family, name="My savings", balance=Decimal("15000.00"))
        db.commit()

        preview = _service(mock_simplefin_client).refresh_and_propose(
            db, family.id, simplefin_item.id
        )

        savings = db.query(SimplefinAccount).filter_by(upstream_id="ACT-savings").all()
        assert [s.id for s in savings] == [linked.id]
        assert linked.current_balance == Decimal("15000.00")
        assert [c.manual_id for c in preview.candidates] == [manual.id]

    def test_refresh_failure_tolerated(self, db, family, simplefin_item):
        create_simplefin_account(db, simplefin_item, "ACT-1", name="Visa")
        create_account(db, family, name="Visa")
        db.commit()
        failing = MockSimpleFINClient(
            should_fail=True, failure_message="timed out", failure_type="connection"
        )

        preview = _service(failing).refresh_and_propose(db, family.id, simplefin_item.id)

        assert preview.refreshed is False
        assert "timed out" in preview.refresh_error
        assert len(preview.candidates) == 1
        assert simplefin_item.status == "good"

    def test_auth_failure_marks_item(self, db, family, simplefin_item):
        failing = MockSimpleFINClient(
            should_fail=True, failure_message="token revoked", failure_type="auth"
        )

        preview = _service(failing).refresh_and_propose(db, family.id, simplefin_item.id)

        assert preview.refreshed is False
        db.refresh(simplefin_item)
        assert simplefin_item.status == "requires_update"


class TestValidatePairs:
    def test_rejects_repeated_sfa(self):
        pairs = [RelinkPair("s1", "m1"), RelinkPair("s1", "m2")]
        with pytest.raises(RelinkValidationError, match="s1"):
            RelinkService.validate_pairs(pairs)

    def test_rejects_repeated_manual(self):
        pairs = [RelinkPair("s1", "m1"), RelinkPair("s2", "m1")]
        with pytest.raises(RelinkValidationError, match="m1"):
            RelinkService.validate_pairs(pairs)

    def test_rejects_blank_ids(self):
        with pytest.raises(RelinkValidationError):
            RelinkService.validate_pairs([RelinkPair("", "m1")])

    def test_accepts_distinct_pairs(self):
        pairs = [RelinkPair("s1", "m1"), RelinkPair("s2", "m2")]
        assert RelinkService.validate_pairs(pairs) == pairs


class TestApplyRelinks:
    """Tests for apply_relinks()."""

    def test_applies_batch_and_cleans_up(self, db, family, simplefin_item, two_pairs):
        pairs = [RelinkPair(sfa.id, manual.id) for sfa, _dup, manual in two_pairs]

        batch = _service().apply_relinks(db, family.id, simplefin_item.id, pairs)

        assert [r.status for r in batch.results] == [STATUS_OK, STATUS_OK]
        assert [r.moved_entries for r in batch.results] == [1, 1]
        assert batch.unlinked_count == 0
        assert batch.pending_account_setup is False
        assert batch.cleanup_errors == []
        assert db.query(Account).count() == 2
        for sfa, _dup, manual in two_pairs:
            link = db.query(AccountProvider).filter(AccountProvider.account_id == manual.id).one()
            assert link.provider_id == sfa.id

    def test_retry_is_noop(self, db, family, simplefin_item, two_pairs):
        pairs = [RelinkPair(sfa.id, manual.id) for sfa, _dup, manual in two_pairs]
        service = _service()

        service.apply_relinks(db, family.id, simplefin_item.id, pairs)
        again = service.apply_relinks(db, family.id, simplefin_item.id, pairs)

        assert [r.status for r in again.results] == [STATUS_SKIPPED_SAME, STATUS_SKIPPED_SAME]
        assert db.query(Entry).count() == 2

    def test_missing_pair_rolls_back_whole_batch(self, db, family, simplefin_item, two_pairs):
        sfa, duplicate, manual = two_pairs[0]
        pairs = [
            RelinkPair(sfa.id, manual.id),
            RelinkPair("missing-sfa", two_pairs[1][2].id),
        ]

        with pytest.raises(RelinkPairNotFoundError) as exc_info:
            _service().apply_relinks(db, family.id, simplefin_item.id, pairs)

        assert exc_info.value.sfa_id == "missing-sfa"
        assert db.get(Account, duplicate.id) is not None
        assert (
            db.query(Entry).filter(Entry.account_id == duplicate.id).count() == 1
        )
        assert (
            db.query(AccountProvider).filter(AccountProvider.account_id == manual.id).count() == 0
        )

    def test_unexpected_error_rolls_back(self, db, family, simplefin_item, two_pairs):
        pairs = [RelinkPair(sfa.id, manual.id) for sfa, _dup, manual in two_pairs]
        real_migrate = RelinkMigrationService.migrate_pair
        calls = {"n": 0}

        def fail_second(db_, sfa, manual):
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("disk full")
            return real_migrate(db_, sfa, manual)

        with patch(
            "services.relink_service.RelinkMigrationService.migrate_pair",
            side_effect=fail_second,
        ):
            with pytest.raises(RelinkMigrationError):
                _service().apply_relinks(db, family.id, simplefin_item.id, pairs)

        assert db.query(Account).count() == 4
        assert db.query(AccountProvider).count() == 2

    def test_pair_from_other_item_not_found(self, db, family, simplefin_item):
        from models import SimplefinItem

        other_item = SimplefinItem(family_id=family.id, name="Other Bank")
        db.add(other_item)
        db.flush()
        foreign = create_simplefin_account(db, other_item, "ACT-X")
        manual = create_account(db, family)
        db.commit()

        with pytest.raises(RelinkPairNotFoundError):
            _service().apply_relinks(
                db, family.id, simplefin_item.id, [RelinkPair(foreign.id, manual.id)]
            )

    def test_rejected_while_in_progress(self, db, family, simplefin_item, two_pairs):
        sfa, _dup, manual = two_pairs[0]
        assert RelinkService._acquire_item(simplefin_item.id)
        try:
            assert RelinkService.is_relink_in_progress(simplefin_item.id)
            with pytest.raises(RelinkInProgressError):
                _service().apply_relinks(
                    db, family.id, simplefin_item.id, [RelinkPair(sfa.id, manual.id)]
                )
        finally:
            RelinkService._release_item(simplefin_item.id)

        assert not RelinkService.is_relink_in_progress(simplefin_item.id)

    def test_lock_released_after_failure(self, db, family, simplefin_item):
        with pytest.raises(RelinkPairNotFoundError):
            _service().apply_relinks(
                db, family.id, simplefin_item.id, [RelinkPair("nope", "nope")]
            )

        assert not RelinkService.is_relink_in_progress(simplefin_item.id)

    def test_running_registry_empty_between_batches(self, db, family, simplefin_item, two_pairs):
        assert not RelinkService.is_relink_in_progress("never-seen")
        sfa, _dup, manual = two_pairs[0]

        _service().apply_relinks(db, family.id, simplefin_item.id, [RelinkPair(sfa.id, manual.id)])

        assert RelinkService._running_items == set()

    def test_cleanup_failure_reported_not_raised(self, db, family, simplefin_item, two_pairs):
        pairs = [RelinkPair(sfa.id, manual.id) for sfa, _dup, manual in two_pairs]

        with patch(
            "services.relink_service.RelinkMigrationService.merge_duplicate_accounts",
            side_effect=RuntimeError("sweep failed"),
        ):
            batch = _service().apply_relinks(db, family.id, simplefin_item.id, pairs)

        assert [r.status for r in batch.results] == [STATUS_OK, STATUS_OK]
        assert batch.cleanup_errors == ["merge: sweep failed"]
        assert batch.unlinked_count == 0

    def test_empty_batch_still_refreshes_status(self, db, family, simplefin_item):
        sfa = create_simplefin_account(db, simplefin_item, "ACT-1")
        link_account(db, create_account(db, family), sfa)
        db.commit()

        batch = _service().apply_relinks(db, family.id, simplefin_item.id, [])

        assert batch.results == []
        assert batch.pending_account_setup is False
