"""Link-table lookups shared by the dedup, migration and relink services.

Links are always re-read from ``account_providers`` (plus the legacy
``accounts.simplefin_account_id`` reference) rather than trusted from
loaded relationships, because destroying an account detaches its link as
a side effect.
"""

from datetime import datetime

from sqlalchemy.orm import Session

from models import PROVIDER_TYPE, Account, AccountProvider, SimplefinAccount


def naive_utc(value: datetime | None) -> datetime:
    """Normalize to naive UTC for ordering (SQLite strips tzinfo)."""
    if value is None:
        return datetime.min
    if value.tzinfo is not None:
        return value.replace(tzinfo=None)
    return value


def upstream_siblings(db: Session, sfa: SimplefinAccount) -> list[SimplefinAccount]:
    """All rows of the same connection that share ``sfa``'s upstream id."""
    return (
        db.query(SimplefinAccount)
        .filter(
            SimplefinAccount.simplefin_item_id == sfa.simplefin_item_id,
            SimplefinAccount.upstream_id == sfa.upstream_id,
        )
        .order_by(SimplefinAccount.id)
        .all()
    )


def links_for(db: Session, sfa_ids: list[str]) -> list[AccountProvider]:
    """SimpleFIN provider links pointing at any of ``sfa_ids``."""
    if not sfa_ids:
        return []
    return (
        db.query(AccountProvider)
        .filter(
            AccountProvider.provider_type == PROVIDER_TYPE,
            AccountProvider.provider_id.in_(sfa_ids),
        )
        .order_by(AccountProvider.created_at, AccountProvider.id)
        .all()
    )


def attached_ids(db: Session, sfa_ids: list[str]) -> set[str]:
    """Subset of ``sfa_ids`` that have a link or a legacy account reference."""
    if not sfa_ids:
        return set()
    linked = {link.provider_id for link in links_for(db, sfa_ids)}
    legacy = {
        row[0]
        for row in db.query(Account.simplefin_account_id)
        .filter(Account.simplefin_account_id.in_(sfa_ids))
        .all()
    }
    return linked | legacy


def linked_accounts(db: Session, sfa_ids: list[str]) -> list[Account]:
    """Distinct accounts attached to any of ``sfa_ids``.

    Accounts holding a link come first (in link creation order), followed
    by accounts only carrying the legacy reference.
    """
    if not sfa_ids:
        return []
    seen: set[str] = set()
    result: list[Account] = []

    link_account_ids = [link.account_id for link in links_for(db, sfa_ids)]
    if link_account_ids:
        by_id = {
            a.id: a
            for a in db.query(Account).filter(Account.id.in_(link_account_ids)).all()
        }
        for account_id in link_account_ids:
            account = by_id.get(account_id)
            if account is not None and account.id not in seen:
                seen.add(account.id)
                result.append(account)

    legacy = (
        db.query(Account)
        .filter(Account.simplefin_account_id.in_(sfa_ids))
        .order_by(Account.created_at, Account.id)
        .all()
    )
    for account in legacy:
        if account.id not in seen:
            seen.add(account.id)
            result.append(account)
    return result


def linked_account(db: Session, sfa: SimplefinAccount) -> Account | None:
    """The account currently linked to ``sfa`` itself, if any."""
    accounts = linked_accounts(db, [sfa.id])
    return accounts[0] if accounts else None
