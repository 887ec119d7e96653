"""External API integrations.

This package contains:
- SimpleFIN client: balances-only fetches from a SimpleFIN bridge
- Exceptions: typed provider errors shared by the client and its callers
"""

from integrations.exceptions import (
    ProviderAPIError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderDataError,
    ProviderError,
)
from integrations.simplefin_client import SimpleFINAccountBalance, SimpleFINClient

__all__ = [
    "ProviderAPIError",
    "ProviderAuthError",
    "ProviderConnectionError",
    "ProviderDataError",
    "ProviderError",
    "SimpleFINAccountBalance",
    "SimpleFINClient",
]
