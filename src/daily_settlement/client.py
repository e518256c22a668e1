"""Back-office REST client with optional JWT authentication.

Implements the order source, expense source and settlement store contracts
over HTTP. Fetch failures raise :class:`BackOfficeAPIError`; saves report
failure by returning ``False``.
"""

import asyncio
from datetime import UTC, date, datetime, timedelta
from typing import Any, cast

import httpx
import structlog

from daily_settlement.config import get_settings
from daily_settlement.models import Expense, Order, SettlementRecord
from daily_settlement.parsing import (
    expense_from_dict,
    order_from_dict,
    settlement_from_dict,
    settlement_to_dict,
)
from daily_settlement.store import DayOrRange

logger = structlog.get_logger(__name__)


class BackOfficeAPIError(Exception):
    """Base exception for back-office API errors."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class AuthenticationError(BackOfficeAPIError):
    """Authentication failed."""

    pass


class RateLimitError(BackOfficeAPIError):
    """Rate limit exceeded."""

    pass


class BackOfficeClient:
    """Async client for the back-office API."""

    def __init__(
        self,
        base_url: str | None = None,
        username: str | None = None,
        password: str | None = None,
        access_token: str | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.backoffice_api_url).rstrip("/")
        self._username = username or settings.backoffice_username
        secret = settings.backoffice_password
        self._password = password or (secret.get_secret_value() if secret else None)
        self._timeout = settings.backoffice_timeout
        self._max_retries = settings.backoffice_max_retries

        self._access_token: str | None = access_token
        self._refresh_token: str | None = None
        self._token_expires_at: datetime | None = None
        if access_token:
            self._token_expires_at = datetime.now(UTC) + timedelta(minutes=55)

        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    @property
    def requires_auth(self) -> bool:
        return bool(self._username and self._password)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BackOfficeClient":
        if self.requires_auth and not self._access_token:
            await self.login()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # === Authentication ===

    async def login(self) -> dict[str, Any]:
        """Authenticate and store JWT tokens."""
        client = await self._get_client()

        response = await client.post(
            "/api/v1/auth/login",
            json={"email": self._username, "password": self._password},
        )

        if response.status_code == 401:
            raise AuthenticationError("Invalid credentials", status_code=401)
        response.raise_for_status()

        data_raw = response.json()
        if not isinstance(data_raw, dict):
            raise BackOfficeAPIError("Invalid login response format")
        data = cast(dict[str, Any], data_raw)
        tokens = data.get("tokens", {})
        self._access_token = tokens.get("access_token")
        self._refresh_token = tokens.get("refresh_token")
        self._token_expires_at = datetime.now(UTC) + timedelta(minutes=55)

        logger.info("logged_in", user=self._username)
        return data

    async def refresh_tokens(self) -> None:
        """Refresh the access token, falling back to a full login."""
        if not self._refresh_token:
            await self.login()
            return

        client = await self._get_client()
        response = await client.post(
            "/api/v1/auth/refresh",
            json={"refresh_token": self._refresh_token},
        )

        if response.status_code == 401:
            await self.login()
            return

        response.raise_for_status()
        data_raw = response.json()
        if not isinstance(data_raw, dict):
            raise BackOfficeAPIError("Invalid refresh response format")
        data = cast(dict[str, Any], data_raw)
        self._access_token = data["access_token"]
        self._refresh_token = data.get("refresh_token", self._refresh_token)
        self._token_expires_at = datetime.now(UTC) + timedelta(minutes=55)
        logger.debug("tokens_refreshed")

    async def _ensure_authenticated(self) -> None:
        """Ensure we have a valid access token when credentials are configured."""
        if not self.requires_auth:
            return
        async with self._lock:
            if not self._access_token:
                await self.login()
            elif self._token_expires_at and datetime.now(UTC) >= self._token_expires_at:
                await self.refresh_tokens()

    def _get_headers(self) -> dict[str, str]:
        """Get request headers with auth token."""
        headers = {"Content-Type": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    # === Generic Request Methods ===

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        retry_count: int = 0,
        retry: bool = True,
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """Make an API request with token refresh and retry logic.

        With ``retry=False`` the request is sent exactly once.
        """
        await self._ensure_authenticated()
        client = await self._get_client()

        try:
            response = await client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers=self._get_headers(),
            )

            if response.status_code == 401 and retry and retry_count < 1 and self.requires_auth:
                await self.refresh_tokens()
                return await self._request(method, path, params, json, retry_count + 1)

            if response.status_code == 429:
                retry_after = int(response.headers.get("Retry-After", "60"))
                raise RateLimitError(
                    f"Rate limited, retry after {retry_after}s",
                    status_code=429,
                    details={"retry_after": retry_after},
                )

            if response.status_code >= 400:
                try:
                    error_detail = response.json() if response.content else {}
                except ValueError:
                    error_detail = {
                        "raw": response.text[:500] if response.text else "empty response"
                    }
                raise BackOfficeAPIError(
                    f"API error: {response.status_code}",
                    status_code=response.status_code,
                    details=error_detail,
                )

            return response.json() if response.content else {}

        except httpx.RequestError as e:
            if retry and retry_count < self._max_retries:
                await asyncio.sleep(2**retry_count)  # Exponential backoff
                return await self._request(method, path, params, json, retry_count + 1)
            raise BackOfficeAPIError(f"Request failed: {e}") from e

    async def get(
        self, path: str, params: dict[str, Any] | None = None
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """Make GET request."""
        return await self._request("GET", path, params=params)

    async def put(
        self, path: str, json: dict[str, Any] | None = None, retry: bool = True
    ) -> dict[str, Any] | list[dict[str, Any]]:
        """Make PUT request."""
        return await self._request("PUT", path, json=json, retry=retry)

    @staticmethod
    def _extract_items(result: Any) -> list[dict[str, Any]]:
        """Return list of items from a list or paged response."""
        if isinstance(result, list):
            return result
        if isinstance(result, dict):
            items = result.get("items")
            if isinstance(items, list):
                return items
        return []

    async def _get_optional(self, path: str) -> dict[str, Any] | None:
        """GET a single resource, mapping 404 to ``None``."""
        try:
            result = await self.get(path)
        except BackOfficeAPIError as e:
            if e.status_code == 404:
                return None
            raise
        return result if isinstance(result, dict) and result else None

    # === Orders & Expenses ===

    async def fetch_orders(self, day_or_range: DayOrRange) -> list[Order]:
        """Fetch orders for a day or an inclusive ``(from, to)`` range."""
        if isinstance(day_or_range, tuple):
            date_from, date_to = day_or_range
            params = {"date_from": date_from.isoformat(), "date_to": date_to.isoformat()}
        else:
            params = {"date": day_or_range.isoformat()}
        result = await self.get("/api/v1/orders/", params=params)
        orders = [order_from_dict(item) for item in self._extract_items(result)]
        logger.debug("orders_fetched", count=len(orders), **params)
        return orders

    async def fetch_expenses(
        self, date_from: date, date_to: date, branch_id: str | None = None
    ) -> list[Expense]:
        params: dict[str, Any] = {
            "date_from": date_from.isoformat(),
            "date_to": date_to.isoformat(),
        }
        if branch_id:
            params["branch_id"] = branch_id
        result = await self.get("/api/v1/expenses/", params=params)
        expenses = [expense_from_dict(item) for item in self._extract_items(result)]
        logger.debug("expenses_fetched", count=len(expenses), **params)
        return expenses

    # === Settlements ===

    async def get_settlement_record(self, branch_id: str, day: date) -> SettlementRecord | None:
        data = await self._get_optional(f"/api/v1/settlements/{branch_id}/{day.isoformat()}")
        return settlement_from_dict(data) if data else None

    async def find_last_settlement_before(
        self, branch_id: str, day: date
    ) -> SettlementRecord | None:
        data = await self._get_optional(
            f"/api/v1/settlements/{branch_id}/last-before/{day.isoformat()}"
        )
        return settlement_from_dict(data) if data else None

    async def save_settlement_record(self, record: SettlementRecord) -> bool:
        """Upsert a record once, without retries.

        Returns ``False`` instead of raising on failure.
        """
        stamped = record.with_timestamps(datetime.now(UTC))
        payload = settlement_to_dict(stamped)
        payload.pop("id", None)
        if record.created_at is None:
            # let the server keep its own createdAt on overwrite
            payload.pop("createdAt", None)
        try:
            await self.put(
                f"/api/v1/settlements/{record.branch_id}/{record.date.isoformat()}",
                json=payload,
                retry=False,
            )
        except (BackOfficeAPIError, httpx.HTTPError) as e:
            logger.error(
                "settlement_save_failed",
                branch_id=record.branch_id,
                date=str(record.date),
                status_code=getattr(e, "status_code", None),
                error=str(e),
            )
            return False
        logger.info("settlement_saved", branch_id=record.branch_id, date=str(record.date))
        return True
