"""A filter that rate limits packets per source address."""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from udpfilters.context import EndpointAddress, ReadContext, WriteContext
from udpfilters.errors import (
    ConvertProtoConfigError,
    DeserializeFailedError,
    FieldInvalidError,
)
from udpfilters.factory import StaticFilter

#: Seconds a source's bucket is kept after it was last used.
SESSION_TIMEOUT_SECONDS = 60

#: Seconds between sweeps for expired buckets.
SESSION_EXPIRY_POLL_INTERVAL = 60

_DEFAULT_PERIOD = 1
_MAX_U32 = 0xFFFF_FFFF


def _check_uint(value: Any, name: str, limit: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise DeserializeFailedError(
            f"invalid value for `{name}`: expected a non-negative integer"
        )
    if limit is not None and value > limit:
        raise DeserializeFailedError(f"invalid value for `{name}`: {value} is too large")
    return value


@dataclass
class LocalRateLimitConfig:
    """At most ``max_packets`` packets per source within each ``period`` seconds."""

    max_packets: int
    period: int = _DEFAULT_PERIOD

    @classmethod
    def from_dict(cls, data: Any) -> LocalRateLimitConfig:
        if not isinstance(data, Mapping):
            raise DeserializeFailedError(
                "expected a mapping for LocalRateLimit configuration"
            )
        for name in ("max_packets", "period"):
            if name not in data:
                raise DeserializeFailedError(f"missing field `{name}`")
        return cls(
            max_packets=_check_uint(data["max_packets"], "max_packets"),
            period=_check_uint(data["period"], "period", _MAX_U32),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"max_packets": self.max_packets, "period": self.period}

    @classmethod
    def from_proto(cls, message: Mapping[str, Any]) -> LocalRateLimitConfig:
        max_packets = message.get("max_packets", 0)
        if isinstance(max_packets, bool) or not isinstance(max_packets, int) or max_packets < 0:
            raise ConvertProtoConfigError("expected a non-negative integer", "max_packets")
        period = message.get("period")
        if period is None:
            period = _DEFAULT_PERIOD
        elif isinstance(period, bool) or not isinstance(period, int) or not 0 <= period <= _MAX_U32:
            raise ConvertProtoConfigError("expected an unsigned 32-bit integer", "period")
        return cls(max_packets=max_packets, period=period)

    def to_proto(self) -> dict[str, Any]:
        return {"max_packets": self.max_packets, "period": self.period}


@dataclass
class _Metrics:
    packets_dropped_total: int = 0


@dataclass
class _Bucket:
    counter: int
    window_start_secs: int
    expires_at: float


class _BucketMap:
    """Buckets keyed by source address that expire when left unused."""

    def __init__(self, ttl: float, poll_interval: float, clock: Callable[[], float]) -> None:
        self._ttl = ttl
        self._poll_interval = poll_interval
        self._clock = clock
        self._start = clock()
        self._next_sweep = self._start + poll_interval
        self._entries: dict[EndpointAddress, _Bucket] = {}

    def now_relative_secs(self) -> int:
        return max(0, math.floor(self._clock() - self._start))

    def _sweep(self, now: float) -> None:
        if now < self._next_sweep:
            return
        expired = [key for key, bucket in self._entries.items() if bucket.expires_at <= now]
        for key in expired:
            del self._entries[key]
        self._next_sweep = now + self._poll_interval

    def get(self, key: EndpointAddress) -> _Bucket | None:
        now = self._clock()
        self._sweep(now)
        bucket = self._entries.get(key)
        if bucket is None:
            return None
        if bucket.expires_at <= now:
            del self._entries[key]
            return None
        bucket.expires_at = now + self._ttl
        return bucket

    def insert(self, key: EndpointAddress, counter: int, window_start_secs: int) -> None:
        self._entries[key] = _Bucket(counter, window_start_secs, self._clock() + self._ttl)


class LocalRateLimit(StaticFilter):
    """Drops packets from sources that exceed the configured rate.

    Only packets read from downstream are limited; written packets pass untouched.
    """

    NAME = "udpfilters.filters.local_rate_limit.v1alpha1.LocalRateLimit"
    Configuration = LocalRateLimitConfig

    def __init__(
        self,
        config: LocalRateLimitConfig,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if config.period < 1:
            raise FieldInvalidError("period", "value must be at least 1 second")
        self.config = config
        self.metrics = _Metrics()
        self._state = _BucketMap(
            SESSION_TIMEOUT_SECONDS,
            SESSION_EXPIRY_POLL_INTERVAL,
            clock if clock is not None else time.monotonic,
        )
        self._lock = threading.Lock()

    def _acquire_token(self, address: EndpointAddress) -> bool:
        if self.config.max_packets == 0:
            return False
        with self._lock:
            bucket = self._state.get(address)
            now_secs = self._state.now_relative_secs()
            if bucket is None:
                self._state.insert(address, 1, now_secs)
                return True

            prev_count = bucket.counter
            bucket.counter += 1
            start_new_window = now_secs - bucket.window_start_secs > self.config.period

            if prev_count >= self.config.max_packets and not start_new_window:
                return False
            if start_new_window:
                bucket.counter = 1
                bucket.window_start_secs = now_secs
            return True

    def read(self, ctx: ReadContext) -> bool:
        if self._acquire_token(ctx.source):
            return True
        with self._lock:
            self.metrics.packets_dropped_total += 1
        return False

    def write(self, ctx: WriteContext) -> bool:
        return True