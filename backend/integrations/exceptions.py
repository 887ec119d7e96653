"""Typed exception hierarchy for SimpleFIN fetch errors.

Lets the relink flow tell a revoked access URL (the connection needs
re-authorizing) apart from transient network trouble and malformed data.
"""


class ProviderError(Exception):
    """Base exception for failed SimpleFIN fetches."""

    def __init__(self, message: str, provider_name: str = "SimpleFIN"):
        self.provider_name = provider_name
        super().__init__(message)

    @property
    def retriable(self) -> bool:
        return False


class ProviderAuthError(ProviderError):
    """Access URL missing, revoked, or rejected (HTTP 401/403).

    The owning SimpleFIN item is marked ``requires_update``.
    """

    pass


class ProviderConnectionError(ProviderError):
    """Timeouts, DNS failures, refused connections."""

    def __init__(
        self, message: str, provider_name: str = "SimpleFIN", retriable: bool = True
    ):
        self._retriable = retriable
        super().__init__(message, provider_name)

    @property
    def retriable(self) -> bool:
        return self._retriable


class ProviderAPIError(ProviderError):
    """Any other HTTP error status from the bridge."""

    def __init__(
        self,
        message: str,
        provider_name: str = "SimpleFIN",
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, provider_name)

    @property
    def retriable(self) -> bool:
        """Rate limiting (429) and server errors (5xx) can be retried."""
        if self.status_code is None:
            return False
        return self.status_code == 429 or self.status_code >= 500


class ProviderDataError(ProviderError):
    """The bridge answered with something that is not an accounts document."""

    pass
