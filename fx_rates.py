from __future__ import annotations

import logging
import threading
import time
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Hashable, Optional, Protocol, Union

from analytics import Number, to_decimal

logger = logging.getLogger(__name__)

PIVOT_CURRENCY = "USD"
RATE_CACHE_TTL = timedelta(hours=1)
RATE_CACHE_MAX_SIZE = 4096


class FxRateError(ValueError):
    code = "fx_error"


class InvalidCurrencyCode(FxRateError):
    code = "invalid_currency_code"


class RateUnavailable(FxRateError):
    code = "fx_rate_not_found"

    def __init__(self, currency: str, requested_on: date) -> None:
        super().__init__(
            f"No USD rate for {currency} on or before {requested_on.isoformat()}"
        )
        self.currency = currency
        self.requested_on = requested_on


class RateLookup(Protocol):
    async def lookup_latest_rate(
        self, currency_code: str, on_or_before: date
    ) -> Optional[Decimal]: ...


def normalize_currency_code(code: Optional[str]) -> str:
    if code is None or not code.strip():
        raise InvalidCurrencyCode("Currency code is empty")
    return code.strip().upper()


def rate_date(at_time: Union[date, datetime]) -> date:
    """Calendar day (UTC) whose rate applies to ``at_time``."""
    if isinstance(at_time, datetime):
        if at_time.tzinfo is not None:
            at_time = at_time.astimezone(timezone.utc)
        return at_time.date()
    return at_time


class RateCache:
    """Process-wide map with a per-entry time-to-live and a size cap.

    Safe to share between threads; a lost race on a miss just overwrites the
    same value. Expired entries are purged on every insert, and once
    ``max_size`` is reached the entry closest to expiry is evicted.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        max_size: int = RATE_CACHE_MAX_SIZE,
    ) -> None:
        self._clock = clock
        self._max_size = max_size
        self._entries: dict[Hashable, tuple[float, Decimal]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Decimal]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: Hashable, value: Decimal, ttl: timedelta) -> None:
        now = self._clock()
        with self._lock:
            self._purge_expired(now)
            if key not in self._entries and len(self._entries) >= self._max_size:
                self._evict_oldest()
            self._entries[key] = (now + ttl.total_seconds(), value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _purge_expired(self, now: float) -> None:
        expired = [
            key for key, (expires_at, _) in self._entries.items() if now >= expires_at
        ]
        for key in expired:
            del self._entries[key]

    def _evict_oldest(self) -> None:
        if not self._entries:
            return
        oldest = min(self._entries, key=lambda key: self._entries[key][0])
        del self._entries[oldest]
        logger.debug(f"fx_rate_cache: evicted={oldest}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


rate_cache = RateCache()


class CurrencyConverter:
    def __init__(self, lookup: RateLookup, cache: Optional[RateCache] = None) -> None:
        self.lookup = lookup
        self.cache = cache if cache is not None else rate_cache

    async def convert(
        self,
        amount: Number,
        from_currency: str,
        to_currency: str,
        at_time: Union[date, datetime],
    ) -> Decimal:
        rate = await self.cross_rate(from_currency, to_currency, at_time)
        return to_decimal(amount) * rate

    async def cross_rate(
        self,
        from_currency: str,
        to_currency: str,
        at_time: Union[date, datetime],
    ) -> Decimal:
        source = normalize_currency_code(from_currency)
        target = normalize_currency_code(to_currency)
        if source == target:
            return Decimal("1")

        on_date = rate_date(at_time)
        source_units = await self.units_per_usd(source, on_date)
        target_units = await self.units_per_usd(target, on_date)
        return target_units / source_units

    async def units_per_usd(self, currency: str, on_date: date) -> Decimal:
        currency = normalize_currency_code(currency)
        if currency == PIVOT_CURRENCY:
            return Decimal("1")

        key = (currency, on_date)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        logger.debug(f"fx_rate_lookup: currency={currency} date={on_date}")
        rate = await self.lookup.lookup_latest_rate(currency, on_date)
        if rate is None:
            raise RateUnavailable(currency, on_date)

        rate = Decimal(rate)
        self.cache.set(key, rate, RATE_CACHE_TTL)
        return rate
