"""Price oracle for the reference asset.

Serves a fresh-enough price for an asset while hiding provider failover,
retries and rate limiting from callers:

    cache hit -> return
    cache miss -> primary -> secondary -> backoff -> (retry ...) -> cache store

The oracle owns two maps for its whole lifetime: one cache entry per asset
key and one rate-limit window per provider. Both are guarded by a lock, and
a cache entry is only ever replaced as a whole.
"""

import logging
import random
import threading
import time
from datetime import datetime, timedelta
from typing import Callable

from .core.exceptions import (
    AllProvidersExhausted,
    Cancelled,
    ConfigurationError,
    ProviderCallFailed,
    RateLimited,
)
from .core.models import CacheEntry, Price, RateLimitState, utc_now
from .providers.base import BasePriceProvider

logger = logging.getLogger(__name__)


class PriceOracle:
    """Cached, rate-limit aware price lookups across a primary and a secondary provider."""

    def __init__(
        self,
        primary: BasePriceProvider,
        secondary: BasePriceProvider,
        fallback: BasePriceProvider | None = None,
        cache_ttl_seconds: float = 60,
        max_retries: int = 3,
        base_delay_ms: float = 1000,
        max_delay_ms: float = 10000,
        jitter_ratio: float = 0.2,
        default_block_seconds: float = 300,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] | None = None,
        rng: random.Random | None = None,
    ):
        """
        Initialize the oracle.

        Args:
            primary: Canonical provider, always tried first
            secondary: Provider tried when the primary fails
            fallback: Served only after every retry failed (development mode)
            cache_ttl_seconds: Freshness window of cached prices
            max_retries: Retries after the first primary/secondary round
            base_delay_ms: Backoff delay before the first retry
            max_delay_ms: Upper bound of the backoff delay
            jitter_ratio: Uniform jitter applied to the delay (0.2 = +/-20%)
            default_block_seconds: Block window when a 429 carries no reset hint
            clock: Returns the current UTC time
            sleep: Blocks for the given number of seconds
            rng: Random source for the jitter
        """
        if max_retries < 0:
            raise ConfigurationError("max_retries", f"must not be negative, got {max_retries}")

        self.primary = primary
        self.secondary = secondary
        self.fallback = fallback
        self.freshness = timedelta(seconds=cache_ttl_seconds)
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.jitter_ratio = jitter_ratio
        self.default_block = timedelta(seconds=default_block_seconds)

        self._clock = clock or utc_now
        self._sleep = sleep or time.sleep
        self._rng = rng or random.Random()

        self._cache: dict[str, CacheEntry] = {}
        self._rate_limits: dict[str, RateLimitState] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get_price(
        self,
        asset_key: str,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Price:
        """
        Get the current price of an asset.

        Args:
            asset_key: Asset ticker (e.g., "SOL")
            timeout: Overall deadline for this call in seconds
            cancel_event: Set by the caller to abandon the lookup

        Returns:
            Cached price if still fresh, otherwise a newly fetched one

        Raises:
            AllProvidersExhausted: Every attempt failed on both providers
            Cancelled: The deadline passed or cancel_event was set
        """
        key = asset_key.upper()

        cached = self.cached_price(key)
        if cached is not None:
            logger.debug(f"Cache hit: {key} ({cached.provider})")
            return cached

        deadline = self._clock() + timedelta(seconds=timeout) if timeout is not None else None
        price = self._fetch_with_failover(key, deadline, cancel_event)

        with self._lock:
            self._cache[key] = CacheEntry(price=price, stored_at=self._clock())
        return price

    def cached_price(self, asset_key: str) -> Price | None:
        """Return the cached price for an asset if it is still fresh."""
        with self._lock:
            entry = self._cache.get(asset_key.upper())
        if entry is None or entry.is_stale(self._clock(), self.freshness):
            return None
        return entry.price

    def clear_cache(self) -> None:
        """Drop cached prices for all assets."""
        with self._lock:
            self._cache.clear()

    def clear_rate_limits(self) -> None:
        """Forget every provider block window."""
        with self._lock:
            self._rate_limits.clear()

    def rate_limit_state(self, provider_name: str) -> RateLimitState:
        with self._lock:
            return self._rate_limits.get(provider_name, RateLimitState())

    def is_rate_limited(self, provider_name: str) -> bool:
        """Check if a provider is inside a block window right now."""
        return self.rate_limit_state(provider_name).is_blocked(self._clock())

    def backoff_delay(self, attempt: int) -> float:
        """Delay in seconds before retry number *attempt* + 1.

        Exponential in the attempt, capped at max_delay, with uniform jitter.
        """
        exponential = min(self.max_delay_ms, self.base_delay_ms * (2 ** attempt))
        jitter = exponential * self.jitter_ratio * self._rng.uniform(-1, 1)
        return (exponential + jitter) / 1000

    # ------------------------------------------------------------------
    # Failover
    # ------------------------------------------------------------------

    def _fetch_with_failover(
        self,
        key: str,
        deadline: datetime | None,
        cancel_event: threading.Event | None,
    ) -> Price:
        """Primary, then secondary, then back off and go again."""
        last_primary_error: ProviderCallFailed | None = None

        for attempt in range(self.max_retries + 1):
            try:
                return self._call(self.primary, key, deadline, cancel_event)
            except ProviderCallFailed as e:
                last_primary_error = e
                logger.warning(f"{self.primary.name} fetch failed for {key}: {e.message}")

            try:
                logger.info(f"Falling back to {self.secondary.name}...")
                return self._call(self.secondary, key, deadline, cancel_event)
            except ProviderCallFailed as e:
                logger.warning(f"{self.secondary.name} fallback failed for {key}: {e.message}")

            if attempt < self.max_retries:
                delay = self.backoff_delay(attempt)
                logger.warning(f"Retry attempt {attempt + 1} for {key} after {delay * 1000:.0f}ms")
                self._pause(key, delay, deadline, cancel_event)

        attempts = self.max_retries + 1

        if self.fallback is not None:
            logger.warning(f"All {attempts} attempts failed for {key}, using {self.fallback.name}")
            try:
                return self._call(self.fallback, key, deadline, cancel_event)
            except ProviderCallFailed as e:
                logger.error(f"{self.fallback.name} failed for {key}: {e.message}")

        logger.error(f"All price providers exhausted for {key} after {attempts} attempt(s)")
        raise AllProvidersExhausted(key, attempts, last_primary_error) from last_primary_error

    def _call(
        self,
        provider: BasePriceProvider,
        key: str,
        deadline: datetime | None,
        cancel_event: threading.Event | None,
    ) -> Price:
        """Call one provider unless it is blocked; record a block on 429."""
        self._check_cancelled(key, deadline, cancel_event)

        now = self._clock()
        state = self.rate_limit_state(provider.name)
        if state.is_blocked(now):
            remaining = int((state.blocked_until - now).total_seconds())
            raise RateLimited(
                source=provider.name,
                retry_after_seconds=max(remaining, 1),
                reset_at=state.blocked_until,
            )

        try:
            return provider.fetch_price(key, timeout=self._remaining(deadline))
        except RateLimited as e:
            self._block(provider.name, e.reset_at)
            raise

    def _block(self, provider_name: str, reset_at: datetime | None) -> None:
        now = self._clock()
        if reset_at is None or reset_at <= now:
            reset_at = now + self.default_block
        with self._lock:
            self._rate_limits[provider_name] = RateLimitState(blocked_until=reset_at)
        logger.warning(f"{provider_name} rate limited until {reset_at.isoformat()}")

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def _remaining(self, deadline: datetime | None) -> float | None:
        if deadline is None:
            return None
        return max((deadline - self._clock()).total_seconds(), 0.001)

    def _check_cancelled(
        self,
        key: str,
        deadline: datetime | None,
        cancel_event: threading.Event | None,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise Cancelled(key, "cancelled")
        if deadline is not None and self._clock() >= deadline:
            raise Cancelled(key, "timed out")

    def _pause(
        self,
        key: str,
        delay: float,
        deadline: datetime | None,
        cancel_event: threading.Event | None,
    ) -> None:
        """Sleep between attempts; give up early if the deadline falls inside the delay."""
        if deadline is not None:
            remaining = (deadline - self._clock()).total_seconds()
            if delay >= remaining:
                raise Cancelled(key, "timed out")
        if cancel_event is not None:
            if cancel_event.wait(delay):
                raise Cancelled(key, "cancelled")
        else:
            self._sleep(delay)
