"""A filter that adds a fixed run of bytes to the start or end of each packet."""

from __future__ import annotations

import base64
import binascii
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from udpfilters.context import ReadContext, WriteContext
from udpfilters.errors import ConvertProtoConfigError, DeserializeFailedError
from udpfilters.factory import StaticFilter


class Strategy(Enum):
    """Where the configured bytes go in a packet."""

    APPEND = "APPEND"
    PREPEND = "PREPEND"
    DO_NOTHING = "DO_NOTHING"

    def apply(self, contents: bytearray, data: bytes) -> None:
        """Apply the strategy to ``contents`` in place."""
        if self is Strategy.APPEND:
            contents.extend(data)
        elif self is Strategy.PREPEND:
            contents[:0] = data


_STRATEGY_CODES = {
    Strategy.APPEND: 0,
    Strategy.PREPEND: 1,
    Strategy.DO_NOTHING: 2,
}
_STRATEGIES_BY_CODE = {code: strategy for strategy, code in _STRATEGY_CODES.items()}


def _strategy_from_text(value: Any, name: str) -> Strategy:
    if value is None:
        return Strategy.DO_NOTHING
    try:
        return Strategy(value)
    except ValueError:
        raise DeserializeFailedError(f"unknown variant {value!r} for `{name}`") from None


def _strategy_from_proto(value: Any, name: str) -> Strategy:
    if value is None:
        return Strategy.DO_NOTHING
    if not isinstance(value, Mapping):
        raise ConvertProtoConfigError("expected a strategy value", name)
    code = value.get("value", 0)
    try:
        return _STRATEGIES_BY_CODE[code]
    except (KeyError, TypeError):
        raise ConvertProtoConfigError(f"unknown strategy {code!r}", name) from None


@dataclass
class ConcatenateBytesConfig:
    """Configuration for ConcatenateBytes."""

    bytes: bytes
    on_read: Strategy = Strategy.DO_NOTHING
    on_write: Strategy = Strategy.DO_NOTHING

    def __post_init__(self) -> None:
        self.bytes = bytes(self.bytes)
        self.on_read = Strategy(self.on_read)
        self.on_write = Strategy(self.on_write)

    @classmethod
    def from_dict(cls, data: Any) -> ConcatenateBytesConfig:
        if not isinstance(data, Mapping):
            raise DeserializeFailedError(
                "expected a mapping for ConcatenateBytes configuration"
            )
        if "bytes" not in data:
            raise DeserializeFailedError("missing field `bytes`")
        encoded = data["bytes"]
        if not isinstance(encoded, str):
            raise DeserializeFailedError("invalid type for `bytes`: expected a base64 string")
        try:
            raw = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as err:
            raise DeserializeFailedError(f"invalid base64 in `bytes`: {err}") from err
        return cls(
            bytes=raw,
            on_read=_strategy_from_text(data.get("on_read"), "on_read"),
            on_write=_strategy_from_text(data.get("on_write"), "on_write"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "on_read": self.on_read.value,
            "on_write": self.on_write.value,
            "bytes": base64.b64encode(self.bytes).decode("ascii"),
        }

    @classmethod
    def from_proto(cls, message: Mapping[str, Any]) -> ConcatenateBytesConfig:
        raw = message.get("bytes", b"")
        if not isinstance(raw, (bytes, bytearray)):
            raise ConvertProtoConfigError("expected bytes", "bytes")
        return cls(
            bytes=bytes(raw),
            on_read=_strategy_from_proto(message.get("on_read"), "on_read"),
            on_write=_strategy_from_proto(message.get("on_write"), "on_write"),
        )

    def to_proto(self) -> dict[str, Any]:
        return {
            "on_read": {"value": _STRATEGY_CODES[self.on_read]},
            "on_write": {"value": _STRATEGY_CODES[self.on_write]},
            "bytes": self.bytes,
        }


class ConcatenateBytes(StaticFilter):
    """Adds configured bytes to the beginning or end of each packet."""

    NAME = "udpfilters.filters.concatenate_bytes.v1alpha1.ConcatenateBytes"
    Configuration = ConcatenateBytesConfig

    def __init__(self, config: ConcatenateBytesConfig) -> None:
        self.on_read = config.on_read
        self.on_write = config.on_write
        self.data = config.bytes

    def read(self, ctx: ReadContext) -> bool:
        self.on_read.apply(ctx.contents, self.data)
        return True

    def write(self, ctx: WriteContext) -> bool:
        self.on_write.apply(ctx.contents, self.data)
        return True