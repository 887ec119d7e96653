"""Pydantic schemas for SimpleFIN relink requests and responses."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RelinkCandidateResponse(BaseModel):
    """A proposed pairing shown to the user for confirmation."""

    sfa_id: str
    sfa_name: str
    manual_id: str
    manual_name: str
    tier: str

    model_config = ConfigDict(from_attributes=True)


class RelinkPreviewResponse(BaseModel):
    """Candidates offered after a balances-only refresh."""

    relink: bool
    refreshed: bool
    refresh_error: Optional[str] = None
    candidates: list[RelinkCandidateResponse]


class RelinkPairInput(BaseModel):
    """One row of the confirmation form; only checked rows are applied."""

    sfa_id: str = Field(min_length=1)
    manual_id: str = Field(min_length=1)
    checked: bool = False

    @field_validator("checked", mode="before")
    @classmethod
    def coerce_checkbox(cls, v):
        """Treat form-style checkbox values ("1", "on", "true") as checked."""
        if isinstance(v, str):
            return v.strip().lower() in {"1", "on", "true", "yes"}
        if v is None:
            return False
        return v


class ApplyRelinkRequest(BaseModel):
    """Confirmation payload carrying the pairs the user reviewed."""

    pairs: list[RelinkPairInput]


class RelinkResultResponse(BaseModel):
    """Per-pair migration outcome."""

    sfa_id: str
    manual_id: str
    moved_entries: int = 0
    deleted_entries: int = 0
    moved_holdings: int = 0
    deleted_holdings: int = 0
    status: str

    model_config = ConfigDict(from_attributes=True)


class ApplyRelinkResponse(BaseModel):
    """Outcome of a confirmed batch."""

    ok: bool
    results: list[RelinkResultResponse]
    unlinked_count: Optional[int] = None
    pending_account_setup: Optional[bool] = None
    merged_account_ids: list[str] = []
    cleanup_errors: list[str] = []


class DedupFailureResponse(BaseModel):
    simplefin_account_id: str
    upstream_id: str
    reason: str

    model_config = ConfigDict(from_attributes=True)


class DedupResponse(BaseModel):
    """Outcome of a dedup pass."""

    removed: list[str]
    failures: list[DedupFailureResponse]


class SetupStatusResponse(BaseModel):
    unlinked_count: int
    pending_account_setup: bool
