"""Typed exception hierarchy for relink operations.

Ambiguous matches are not errors: a SimpleFIN account with no confident
pairing is simply absent from the candidate list. These exceptions cover
malformed confirmations, missing rows, lock contention and failed batches.
"""


class RelinkError(Exception):
    """Base exception for relink errors.

    Carries the SimpleFIN item id so callers can tell which connection failed.
    """

    def __init__(self, message: str, item_id: str = ""):
        self.item_id = item_id
        super().__init__(message)


class RelinkValidationError(RelinkError):
    """The confirmation payload is malformed. Nothing was changed."""

    pass


class RelinkPairNotFoundError(RelinkError):
    """A confirmed pair references a SimpleFIN account or account that is gone.

    Raised inside the migration transaction, so the whole batch is rolled back.
    """

    def __init__(
        self,
        message: str,
        item_id: str = "",
        sfa_id: str | None = None,
        manual_id: str | None = None,
    ):
        self.sfa_id = sfa_id
        self.manual_id = manual_id
        super().__init__(message, item_id)


class RelinkInProgressError(RelinkError):
    """Another relink batch is already running for the same connection."""

    pass


class RelinkMigrationError(RelinkError):
    """The migration batch failed and was rolled back in full.

    Safe to retry: pairs that were already applied by an earlier successful
    batch resolve to ``skipped_same``.
    """

    pass


class SimplefinItemNotFoundError(RelinkError):
    """The SimpleFIN item does not exist or belongs to another family."""

    pass
