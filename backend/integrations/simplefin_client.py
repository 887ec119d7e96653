"""SimpleFIN API client wrapper.

SimpleFIN is a protocol for sharing read-only financial data. The relink
flow only needs a quick balances-only discovery of the connection's
accounts, so that is all this client fetches.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

import httpx

from config import settings
from integrations.exceptions import (
    ProviderAPIError,
    ProviderAuthError,
    ProviderConnectionError,
    ProviderDataError,
)
from integrations.parsing_utils import parse_decimal, parse_unix_timestamp

logger = logging.getLogger(__name__)

# Bulky arrays that are not kept in the stored raw payload
_PAYLOAD_EXCLUDED_KEYS = frozenset({"transactions", "holdings"})


@dataclass
class SimpleFINAccountBalance:
    """Balance-level view of one SimpleFIN account."""

    id: str
    name: str | None
    currency: str
    balance: Decimal | None
    available_balance: Decimal | None
    balance_date: datetime | None = None
    raw: dict = field(default_factory=dict)


class SimpleFINClient:
    """Wrapper around the SimpleFIN ``/accounts`` endpoint.

    Note: requests go straight through httpx rather than a SimpleFIN SDK
    because the access URL embeds basic-auth credentials that httpx
    handles natively.
    """

    def __init__(self, access_url: str | None = None, timeout: float = 30):
        """Initialize the client with credentials.

        Args:
            access_url: SimpleFIN access URL (defaults to settings)
            timeout: Request timeout in seconds
        """
        self._access_url = access_url or settings.SIMPLEFIN_ACCESS_URL
        self._timeout = timeout

    @property
    def provider_name(self) -> str:
        """Return the provider name for logs and errors."""
        return "SimpleFIN"

    def is_configured(self) -> bool:
        """Check if SimpleFIN credentials are configured.

        Returns:
            True if access URL is present and valid, False otherwise.
        """
        if not self._access_url:
            return False
        # Must be a URL, not a base64 setup token
        return self._access_url.startswith(("http://", "https://"))

    def _check_credentials(self) -> None:
        """Raise an error if credentials are not configured or invalid."""
        if not self._access_url:
            raise ProviderAuthError(
                "SimpleFIN credentials not configured.",
                provider_name="SimpleFIN",
            )
        if not self._access_url.startswith(("http://", "https://")):
            raise ProviderAuthError(
                "SimpleFIN access URL appears to be a setup token (base64), not an access URL. "
                "Exchange the setup token for an access URL first.",
                provider_name="SimpleFIN",
            )

    def _fetch_accounts(self, params: dict) -> dict:
        """GET ``/accounts`` and map transport failures to provider errors."""
        self._check_credentials()
        try:
            with httpx.Client(base_url=self._access_url, timeout=self._timeout) as client:
                response = client.get("/accounts", params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise ProviderAuthError(
                    f"SimpleFIN authentication failed (HTTP {status})",
                    provider_name="SimpleFIN",
                ) from exc
            raise ProviderAPIError(
                f"SimpleFIN API error (HTTP {status})",
                provider_name="SimpleFIN",
                status_code=status,
            ) from exc
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ProviderConnectionError(
                f"SimpleFIN connection failed: {exc}",
                provider_name="SimpleFIN",
            ) from exc
        except ValueError as exc:
            raise ProviderDataError(
                "SimpleFIN returned a non-JSON response",
                provider_name="SimpleFIN",
            ) from exc

        if not isinstance(data, dict):
            raise ProviderDataError(
                "SimpleFIN response is not an object", provider_name="SimpleFIN"
            )
        for message in data.get("errors") or []:
            logger.warning("SimpleFIN reported: %s", message)
        return data

    def get_balances(self) -> list[SimpleFINAccountBalance]:
        """Fetch balances for every account of the connection.

        Uses ``balances-only=1`` so no transactions or holdings are
        transferred.

        Returns:
            List of SimpleFINAccountBalance, one per reported account
        """
        data = self._fetch_accounts({"balances-only": "1"})
        accounts = []
        for sf_account in data.get("accounts") or []:
            account_id = sf_account.get("id")
            if not account_id:
                logger.debug("SimpleFIN: skipping account without id")
                continue
            accounts.append(
                SimpleFINAccountBalance(
                    id=str(account_id),
                    name=sf_account.get("name"),
                    currency=sf_account.get("currency") or "USD",
                    balance=parse_decimal(sf_account.get("balance")),
                    available_balance=parse_decimal(sf_account.get("available-balance")),
                    balance_date=parse_unix_timestamp(sf_account.get("balance-date")),
                    raw={
                        k: v for k, v in sf_account.items()
                        if k not in _PAYLOAD_EXCLUDED_KEYS
                    },
                )
            )

        logger.info("SimpleFIN: balances fetched (%d accounts)", len(accounts))
        return accounts
