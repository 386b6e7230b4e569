"""Base classes for price providers."""

import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from ..core.exceptions import ProviderCallFailed, RateLimited
from ..core.models import AuditEntry, Price, utc_now
from ..core.types import PriceSource

logger = logging.getLogger(__name__)

# X-RateLimit-Reset values below this are a delta in seconds, not an epoch
_EPOCH_THRESHOLD = 1_000_000_000


class BasePriceProvider(ABC):
    """Abstract base class for all price providers.

    A provider answers one question: what is the current price of an asset.
    The oracle decides which provider to ask and when.
    """

    #: Provider name used in logs, rate-limit bookkeeping and error messages.
    name: str = ""

    # Subclasses define the slot their prices are reported under
    SOURCE: PriceSource = PriceSource.PRIMARY

    # Oldest audit entries are dropped beyond this
    MAX_AUDIT_ENTRIES = 500

    def __init__(
        self,
        source: PriceSource | None = None,
        rate_limit_calls: int = 60,
        rate_limit_period: int = 60,
    ):
        """
        Initialize provider with rate limiting.

        Args:
            source: Slot reported on returned prices (defaults to SOURCE)
            rate_limit_calls: Maximum calls per period
            rate_limit_period: Period in seconds
        """
        self.source = source or self.SOURCE
        self.rate_limit_calls = rate_limit_calls
        self.rate_limit_period = rate_limit_period
        self._call_timestamps: list[float] = []
        self._audit_entries: deque[AuditEntry] = deque(maxlen=self.MAX_AUDIT_ENTRIES)

    def _wait_for_rate_limit(self, budget: float | None = None) -> float:
        """
        Enforce client-side rate limiting by sleeping if necessary.

        Args:
            budget: Seconds the caller can still wait; None waits as long as needed

        Returns:
            Seconds slept

        Raises:
            ProviderCallFailed: The next call slot opens after the budget runs out
        """
        now = time.time()
        self._call_timestamps = [
            ts for ts in self._call_timestamps if now - ts < self.rate_limit_period
        ]

        slept = 0.0
        if len(self._call_timestamps) >= self.rate_limit_calls:
            sleep_time = self._call_timestamps[0] + self.rate_limit_period - now
            if sleep_time > 0:
                if budget is not None and sleep_time >= budget:
                    raise ProviderCallFailed(
                        source=self.name,
                        message=(
                            f"Client-side rate limit: next call slot in {sleep_time:.1f}s, "
                            f"only {budget:.1f}s left"
                        ),
                    )
                logger.debug(f"[{self.name}] Rate limit: sleeping {sleep_time:.1f}s")
                time.sleep(sleep_time)
                slept = sleep_time

        self._call_timestamps.append(time.time())
        return slept

    def _record_audit(
        self,
        action: str,
        endpoint: str | None = None,
        success: bool = True,
        error_message: str | None = None,
        duration_ms: int | None = None,
        notes: str | None = None,
    ) -> AuditEntry:
        """Record an audit entry for this provider action."""
        entry = AuditEntry(
            provider=self.name,
            action=action,
            endpoint=endpoint,
            success=success,
            error_message=error_message,
            duration_ms=duration_ms,
            notes=notes,
        )
        self._audit_entries.append(entry)
        return entry

    def get_audit_trail(self) -> list[AuditEntry]:
        """Return the most recent audit entries recorded by this provider, oldest first."""
        return list(self._audit_entries)

    def clear_audit_trail(self) -> None:
        """Clear the audit trail."""
        self._audit_entries.clear()

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider is available and configured."""

    @abstractmethod
    def fetch_price(self, asset_key: str, timeout: float | None = None) -> Price:
        """Fetch the current price of *asset_key*.

        Args:
            asset_key: Uppercase ticker of the asset (e.g. ``SOL``).
            timeout:   Upper bound in seconds for the network call, if any.

        Raises:
            RateLimited: The provider answered HTTP 429.
            ProviderCallFailed: Any other failure, including malformed payloads.
        """


class HTTPPriceProvider(BasePriceProvider):
    """Base class for providers backed by a JSON-over-HTTP API."""

    BASE_URL = ""
    ERROR_CODE = "PROVIDER_ERROR"

    def __init__(
        self,
        source: PriceSource | None = None,
        rate_limit_calls: int = 30,
        rate_limit_period: int = 60,
        request_timeout: float = 30.0,
        client: httpx.Client | None = None,
    ):
        """
        Initialize HTTP provider.

        Args:
            source: Slot reported on returned prices
            rate_limit_calls: Rate limit per period
            rate_limit_period: Period in seconds
            request_timeout: Default HTTP timeout in seconds
            client: Optional shared httpx client (owned by the caller)
        """
        super().__init__(
            source=source,
            rate_limit_calls=rate_limit_calls,
            rate_limit_period=rate_limit_period,
        )
        self.base_url = self.BASE_URL
        self.request_timeout = request_timeout
        self._client = client

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    def _send(self, url: str, params: dict[str, Any] | None, timeout: float) -> httpx.Response:
        if self._client is not None:
            return self._client.get(url, params=params, headers=self._headers(), timeout=timeout)
        with httpx.Client(timeout=timeout) as client:
            return client.get(url, params=params, headers=self._headers())

    def _rate_limit_error(self, response: httpx.Response, endpoint: str) -> RateLimited:
        """Build a RateLimited error from the reset hint headers, if any."""
        now = utc_now()
        reset_at: datetime | None = None

        reset_raw = response.headers.get("X-RateLimit-Reset")
        retry_after_raw = response.headers.get("Retry-After")
        try:
            if reset_raw:
                reset_value = int(float(reset_raw))
                if reset_value >= _EPOCH_THRESHOLD:
                    reset_at = datetime.fromtimestamp(reset_value, tz=timezone.utc)
                else:
                    reset_at = now + timedelta(seconds=reset_value)
            elif retry_after_raw:
                reset_at = now + timedelta(seconds=int(float(retry_after_raw)))
        except ValueError:
            logger.debug(f"[{self.name}] Unparseable rate-limit headers: {dict(response.headers)}")

        retry_after = None
        if reset_at is not None:
            retry_after = max(0, int((reset_at - now).total_seconds()))

        return RateLimited(
            source=self.name,
            retry_after_seconds=retry_after,
            reset_at=reset_at,
            endpoint=endpoint,
        )

    def _make_request(
        self,
        endpoint: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Make a rate-limited request and return the decoded JSON object.

        *timeout* is the caller's remaining budget: the throttle never waits
        past it and the HTTP call gets whatever is left after the wait.
        """
        slept = self._wait_for_rate_limit(timeout)
        if timeout is not None:
            timeout = max(timeout - slept, 0.001)
        start_time = time.time()
        url = f"{self.base_url}{endpoint}"

        try:
            response = self._send(url, params, timeout or self.request_timeout)
        except httpx.RequestError as e:
            self._record_audit(action="fetch", endpoint=endpoint, success=False, error_message=str(e))
            raise ProviderCallFailed(
                source=self.name,
                message=str(e) or e.__class__.__name__,
                endpoint=endpoint,
                code=self.ERROR_CODE,
            ) from e

        duration_ms = int((time.time() - start_time) * 1000)

        if response.status_code == 429:
            error = self._rate_limit_error(response, endpoint)
            self._record_audit(
                action="fetch",
                endpoint=endpoint,
                success=False,
                error_message=error.message,
                duration_ms=duration_ms,
            )
            raise error

        if response.status_code != 200:
            self._record_audit(
                action="fetch",
                endpoint=endpoint,
                success=False,
                error_message=f"HTTP {response.status_code}",
                duration_ms=duration_ms,
            )
            raise ProviderCallFailed(
                source=self.name,
                message=f"HTTP {response.status_code}",
                endpoint=endpoint,
                status_code=response.status_code,
                code=self.ERROR_CODE,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderCallFailed(
                source=self.name,
                message="Response is not valid JSON",
                endpoint=endpoint,
                status_code=response.status_code,
                code=self.ERROR_CODE,
            ) from e

        if not isinstance(data, dict):
            raise ProviderCallFailed(
                source=self.name,
                message=f"Unexpected payload type {type(data).__name__}",
                endpoint=endpoint,
                code=self.ERROR_CODE,
            )

        self._record_audit(
            action="fetch",
            endpoint=endpoint,
            success=True,
            duration_ms=duration_ms,
        )
        return data

    def _malformed(self, endpoint: str, detail: str) -> ProviderCallFailed:
        return ProviderCallFailed(
            source=self.name,
            message=f"Malformed response: {detail}",
            endpoint=endpoint,
            code=self.ERROR_CODE,
        )
