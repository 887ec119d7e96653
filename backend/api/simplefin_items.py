"""SimpleFIN relink API endpoints.

The presentation side of relinking: list candidate pairs, let the user
confirm a subset, and report per-pair migration results.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from database import get_db
from schemas.relink import (
    ApplyRelinkRequest,
    ApplyRelinkResponse,
    DedupFailureResponse,
    DedupResponse,
    RelinkCandidateResponse,
    RelinkPreviewResponse,
    RelinkResultResponse,
    SetupStatusResponse,
)
from services.relink_errors import (
    RelinkError,
    RelinkInProgressError,
    RelinkPairNotFoundError,
    RelinkValidationError,
    SimplefinItemNotFoundError,
)
from services.relink_service import RelinkPair, RelinkService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/families/{family_id}/simplefin_items",
    tags=["simplefin"],
)


def get_relink_service() -> RelinkService:
    """Get the RelinkService (dependency for injection in tests)."""
    return RelinkService()


def _http_error(e: RelinkError) -> HTTPException:
    """Map a relink exception to an HTTP error without leaking internals."""
    if isinstance(e, (SimplefinItemNotFoundError, RelinkPairNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, RelinkValidationError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, RelinkInProgressError):
        return HTTPException(
            status_code=409,
            detail="Relink already in progress. Please wait for it to finish.",
        )
    return HTTPException(
        status_code=500,
        detail="Relinking failed and no changes were made. Please try again.",
    )


@router.get("/{item_id}/relink", response_model=list[RelinkCandidateResponse])
def relink_candidates(
    family_id: str,
    item_id: str,
    db: Session = Depends(get_db),
    service: RelinkService = Depends(get_relink_service),
):
    """List proposed pairings between SimpleFIN accounts and manual accounts."""
    try:
        return service.compute_candidates(db, family_id, item_id)
    except RelinkError as e:
        raise _http_error(e)


@router.post("/{item_id}/balances", response_model=RelinkPreviewResponse)
def refresh_balances(
    family_id: str,
    item_id: str,
    db: Session = Depends(get_db),
    service: RelinkService = Depends(get_relink_service),
):
    """Run a balances-only refresh, then return relink candidates.

    ``relink`` is True when there are candidates worth presenting.
    """
    try:
        preview = service.refresh_and_propose(db, family_id, item_id)
    except RelinkError as e:
        raise _http_error(e)
    return RelinkPreviewResponse(
        relink=bool(preview.candidates),
        refreshed=preview.refreshed,
        refresh_error=preview.refresh_error,
        candidates=[RelinkCandidateResponse.model_validate(c) for c in preview.candidates],
    )


@router.post("/{item_id}/apply_relink", response_model=ApplyRelinkResponse)
def apply_relink(
    family_id: str,
    item_id: str,
    body: ApplyRelinkRequest,
    db: Session = Depends(get_db),
    service: RelinkService = Depends(get_relink_service),
):
    """Apply the checked pairs: migrate history and move provider links.

    Raises:
        HTTPException:
            - 404 Not Found: Unknown item, SimpleFIN account or account
            - 409 Conflict: A batch is already running for this item
            - 422 Unprocessable Entity: Malformed or conflicting pairs
            - 500 Internal Server Error: Batch failed and was rolled back
    """
    pairs = [
        RelinkPair(sfa_id=p.sfa_id, manual_id=p.manual_id)
        for p in body.pairs
        if p.checked
    ]
    try:
        batch = service.apply_relinks(db, family_id, item_id, pairs)
    except RelinkError as e:
        raise _http_error(e)

    return ApplyRelinkResponse(
        ok=True,
        results=[RelinkResultResponse.model_validate(r) for r in batch.results],
        unlinked_count=batch.unlinked_count,
        pending_account_setup=batch.pending_account_setup,
        merged_account_ids=batch.merged_account_ids,
        cleanup_errors=batch.cleanup_errors,
    )


@router.post("/{item_id}/dedup", response_model=DedupResponse)
def dedup_simplefin_accounts(
    family_id: str,
    item_id: str,
    db: Session = Depends(get_db),
    service: RelinkService = Depends(get_relink_service),
):
    """Collapse duplicate SimpleFIN account rows for an item."""
    try:
        result = service.dedup(db, family_id, item_id)
    except RelinkError as e:
        raise _http_error(e)
    return DedupResponse(
        removed=result.removed,
        failures=[DedupFailureResponse.model_validate(f) for f in result.failures],
    )


@router.get("/{item_id}/setup_status", response_model=SetupStatusResponse)
def setup_status(
    family_id: str,
    item_id: str,
    db: Session = Depends(get_db),
):
    """Report how many SimpleFIN accounts still need an account.

    Read-only: the stored flag is cleared by apply_relink, this only
    reports what it would be.
    """
    try:
        item = RelinkService.get_item(db, family_id, item_id)
    except RelinkError as e:
        raise _http_error(e)
    count = RelinkService.unlinked_count(db, item)
    return SetupStatusResponse(
        unlinked_count=count,
        pending_account_setup=bool(item.pending_account_setup) and count > 0,
    )
