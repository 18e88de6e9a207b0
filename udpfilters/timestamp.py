"""A filter that observes the age of a timestamp held in packet metadata."""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from udpfilters.context import DynamicMetadata, ReadContext, WriteContext
from udpfilters.errors import ConvertProtoConfigError, DeserializeFailedError
from udpfilters.factory import StaticFilter

logger = logging.getLogger(__name__)

READ_DIRECTION_LABEL = "read"
WRITE_DIRECTION_LABEL = "write"

_BUCKET_START = 0.001
_BUCKET_FACTOR = 2.0
_BUCKET_COUNT = 20

# Range of unix timestamps accepted as valid dates.
_MIN_TIMESTAMP = -8_334_632_851_200
_MAX_TIMESTAMP = 8_210_266_876_799


def _exponential_buckets(start: float, factor: float, count: int) -> tuple[float, ...]:
    return tuple(start * factor**i for i in range(count))


class Histogram:
    """Counts observations into cumulative buckets and keeps their sum."""

    def __init__(self, buckets: Sequence[float] | None = None) -> None:
        bounds = (
            tuple(buckets)
            if buckets is not None
            else _exponential_buckets(_BUCKET_START, _BUCKET_FACTOR, _BUCKET_COUNT)
        )
        if list(bounds) != sorted(bounds):
            raise ValueError("histogram buckets must be in increasing order")
        self.buckets = bounds
        self._counts = [0] * len(bounds)
        self.sample_count = 0
        self.sample_sum = 0.0
        self._lock = threading.Lock()

    def observe(self, value: float) -> None:
        """Record one observation."""
        with self._lock:
            self.sample_count += 1
            self.sample_sum += value
            for index, bound in enumerate(self.buckets):
                if value <= bound:
                    self._counts[index] += 1

    @property
    def bucket_counts(self) -> tuple[int, ...]:
        """Cumulative counts, one per bucket upper bound."""
        with self._lock:
            return tuple(self._counts)


_METRICS: dict[tuple[str, str], Histogram] = {}
_METRICS_LOCK = threading.Lock()


def _histogram_for(metadata_key: str, direction_label: str) -> Histogram:
    with _METRICS_LOCK:
        return _METRICS.setdefault((metadata_key, direction_label), Histogram())


@dataclass
class TimestampConfig:
    """The metadata key holding a UTC unix timestamp."""

    metadata_key: str

    @classmethod
    def from_dict(cls, data: Any) -> TimestampConfig:
        if not isinstance(data, Mapping):
            raise DeserializeFailedError("expected a mapping for Timestamp configuration")
        if "metadataKey" not in data:
            raise DeserializeFailedError("missing field `metadataKey`")
        key = data["metadataKey"]
        if not isinstance(key, str):
            raise DeserializeFailedError("invalid type for `metadataKey`: expected a string")
        return cls(key)

    def to_dict(self) -> dict[str, Any]:
        return {"metadataKey": self.metadata_key}

    @classmethod
    def from_proto(cls, message: Mapping[str, Any]) -> TimestampConfig:
        key = message.get("metadata_key")
        if key is None:
            raise ConvertProtoConfigError.missing_field("metadata_key")
        if not isinstance(key, str):
            raise ConvertProtoConfigError("expected a string", "metadata_key")
        return cls(key)

    def to_proto(self) -> dict[str, Any]:
        return {"metadata_key": self.metadata_key}


def _timestamp_from(item: Any) -> int | None:
    if isinstance(item, bool):
        return None
    if isinstance(item, int):
        value = item & 0xFFFF_FFFF_FFFF_FFFF
        return value - (1 << 64) if value >= 1 << 63 else value
    if isinstance(item, (bytes, bytearray)) and len(item) == 8:
        return int.from_bytes(item, "big", signed=True)
    return None


class Timestamp(StaticFilter):
    """Observes, in a histogram, the seconds since a timestamp stored in metadata."""

    NAME = "udpfilters.filters.timestamp.v1alpha1.Timestamp"
    Configuration = TimestampConfig

    def __init__(
        self, config: TimestampConfig, clock: Callable[[], float] | None = None
    ) -> None:
        self.config = config
        self._clock = clock if clock is not None else time.time

    def observe(self, metadata: DynamicMetadata, direction_label: str) -> None:
        """Record the age of the timestamp under the configured key, if present."""
        if self.config.metadata_key not in metadata:
            return
        value = _timestamp_from(metadata[self.config.metadata_key])
        if value is None:
            return
        if not _MIN_TIMESTAMP <= value <= _MAX_TIMESTAMP:
            logger.warning(
                "invalid unix timestamp timestamp=%d metadata_key=%s",
                value,
                self.config.metadata_key,
            )
            return
        seconds = math.trunc(self._clock() - value)
        self.metric(direction_label).observe(float(seconds))

    def metric(self, direction_label: str) -> Histogram:
        """The histogram for this filter's key and the given direction."""
        return _histogram_for(self.config.metadata_key, direction_label)

    def read(self, ctx: ReadContext) -> bool:
        self.observe(ctx.metadata, READ_DIRECTION_LABEL)
        return True

    def write(self, ctx: WriteContext) -> bool:
        self.observe(ctx.metadata, WRITE_DIRECTION_LABEL)
        return True