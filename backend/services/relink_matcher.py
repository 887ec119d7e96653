"""Candidate matching between SimpleFIN accounts and manual accounts.

Pure functions over already-loaded rows. Nothing here touches the session,
so matching can run alongside other readers.

Each SimpleFIN account is tried against the pool of unused manual accounts
in tier order, stopping at the first tier that yields exactly one candidate:

1. ``last4``   - masked account number hints are equal (with a balance
                 conflict guard)
2. ``balance`` - balances are within ``BALANCE_PROXIMITY_TOLERANCE``
3. ``name``    - normalized names are equal

A tie at any tier is never broken by guessing; the tier is skipped.
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Optional

from models import Account, SimplefinAccount

logger = logging.getLogger(__name__)

BALANCE_CONFLICT_TOLERANCE = Decimal("1.00")
BALANCE_PROXIMITY_TOLERANCE = Decimal("0.01")

TIER_LAST4 = "last4"
TIER_BALANCE = "balance"
TIER_NAME = "name"

# Raw-payload keys that may carry a masked number, highest priority first
PAYLOAD_HINT_KEYS: tuple[str, ...] = ("mask", "last4", "last-4", "account_number_last4")

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class HintFields:
    """Optional masked-number fields an account may carry."""

    mask: Optional[str] = None
    last4: Optional[str] = None
    number_last4: Optional[str] = None
    account_number_last4: Optional[str] = None


# Ordered extractors for HintFields; the first present value wins
HINT_EXTRACTORS: tuple[tuple[str, Callable[[HintFields], Optional[str]]], ...] = (
    ("mask", lambda f: f.mask),
    ("last4", lambda f: f.last4),
    ("number_last4", lambda f: f.number_last4),
    ("account_number_last4", lambda f: f.account_number_last4),
)


@dataclass(frozen=True)
class RelinkCandidate:
    """A proposed pairing of a SimpleFIN account with a manual account."""

    sfa_id: str
    sfa_name: str
    manual_id: str
    manual_name: str
    tier: str


def _clean_hint(value: Any) -> Optional[str]:
    """Stringify and strip a hint value; blank becomes None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def first_hint(fields: HintFields) -> Optional[str]:
    """Return the first present hint from ``fields`` in extractor order."""
    for _name, extract in HINT_EXTRACTORS:
        hint = _clean_hint(extract(fields))
        if hint:
            return hint
    return None


def payload_hint(raw_payload: Optional[dict]) -> Optional[str]:
    """Extract the masked-number hint from a SimpleFIN raw payload."""
    if not raw_payload:
        return None
    for key in PAYLOAD_HINT_KEYS:
        hint = _clean_hint(raw_payload.get(key))
        if hint:
            return hint
    return None


def account_hint_fields(account: Account) -> HintFields:
    """Map an Account's columns onto the typed hint field set."""
    return HintFields(
        mask=account.mask,
        account_number_last4=account.account_number_last4,
    )


def normalize_name(name: Optional[str]) -> str:
    """Case-fold, collapse whitespace runs and trim a display name."""
    if not name:
        return ""
    return _WHITESPACE_RE.sub(" ", name.casefold()).strip()


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def synced_balance(sfa: SimplefinAccount) -> Decimal:
    """Current balance, falling back to available balance, else zero."""
    return _to_decimal(sfa.balance)


def manual_balance(account: Account) -> Decimal:
    """Balance, falling back to cash balance, else zero."""
    if account.balance is not None:
        return _to_decimal(account.balance)
    return _to_decimal(account.cash_balance)


def balances_conflict(
    left: Decimal, right: Decimal, tolerance: Decimal = BALANCE_CONFLICT_TOLERANCE
) -> bool:
    """True when both balances are non-zero and differ by more than ``tolerance``."""
    if left.is_zero() or right.is_zero():
        return False
    return abs(left - right) > tolerance


def _match_last4(
    sfa: SimplefinAccount,
    sfa_hint: Optional[str],
    pool: list[Account],
    conflict_tolerance: Decimal,
) -> tuple[Optional[Account], Optional[Account]]:
    """Tier 1. Returns (match, conflicting_candidate)."""
    if not sfa_hint:
        return None, None

    candidates = [a for a in pool if first_hint(account_hint_fields(a)) == sfa_hint]
    if len(candidates) != 1:
        if candidates:
            logger.debug(
                "Relink: %d accounts share hint for SimpleFIN account %s, skipping last4 tier",
                len(candidates), sfa.id,
            )
        return None, None

    candidate = candidates[0]
    if balances_conflict(synced_balance(sfa), manual_balance(candidate), conflict_tolerance):
        logger.info(
            "Relink: hint match %s <-> %s discarded, balances %s vs %s conflict",
            sfa.id, candidate.id, synced_balance(sfa), manual_balance(candidate),
        )
        return None, candidate
    return candidate, None


def _match_balance(
    sfa: SimplefinAccount, pool: list[Account], proximity_tolerance: Decimal
) -> Optional[Account]:
    """Tier 2."""
    balance = synced_balance(sfa)
    if balance.is_zero():
        return None
    candidates = [
        a for a in pool if abs(manual_balance(a) - balance) <= proximity_tolerance
    ]
    return candidates[0] if len(candidates) == 1 else None


def _match_name(sfa: SimplefinAccount, pool: list[Account]) -> Optional[Account]:
    """Tier 3."""
    target = normalize_name(sfa.name)
    if not target:
        return None
    candidates = [a for a in pool if normalize_name(a.name) == target]
    return candidates[0] if len(candidates) == 1 else None


def propose_pairs(
    synced: Iterable[SimplefinAccount],
    manuals: Iterable[Account],
    *,
    conflict_tolerance: Decimal = BALANCE_CONFLICT_TOLERANCE,
    proximity_tolerance: Decimal = BALANCE_PROXIMITY_TOLERANCE,
) -> list[RelinkCandidate]:
    """Propose at most one manual account for each SimpleFIN account.

    SimpleFIN accounts are evaluated in ``(upstream_id, id)`` order; when two
    of them could claim the same manual account, the first evaluated wins.
    A manual account is proposed at most once, and so is a SimpleFIN
    account. Accounts with a blank name are skipped.

    Args:
        synced: Canonical SimpleFIN accounts that are not yet paired
        manuals: Accounts without a provider link
        conflict_tolerance: Maximum balance difference tolerated on a hint match
        proximity_tolerance: Maximum balance difference for a balance match

    Returns:
        Candidates in evaluation order
    """
    pool = list(manuals)
    used: set[str] = set()
    proposals: list[RelinkCandidate] = []

    ordered = sorted(synced, key=lambda s: (s.upstream_id or "", s.id or ""))
    for sfa in ordered:
        if not (sfa.name or "").strip():
            continue

        available = [a for a in pool if a.id not in used]
        match, conflicting = _match_last4(
            sfa, payload_hint(sfa.raw_payload), available, conflict_tolerance
        )
        tier = TIER_LAST4

        if match is None:
            # A conflicting hint match is evidence against that account
            if conflicting is not None:
                available = [a for a in available if a.id != conflicting.id]
            match = _match_balance(sfa, available, proximity_tolerance)
            tier = TIER_BALANCE

        if match is None:
            match = _match_name(sfa, available)
            tier = TIER_NAME

        if match is None:
            continue

        used.add(match.id)
        proposals.append(
            RelinkCandidate(
                sfa_id=sfa.id,
                sfa_name=sfa.name,
                manual_id=match.id,
                manual_name=match.name,
                tier=tier,
            )
        )

    logger.info(
        "Relink: %d candidate pairs from %d manual accounts",
        len(proposals), len(pool),
    )
    return proposals
