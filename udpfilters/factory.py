"""The filter interface and the factories that build filters from configuration."""

from __future__ import annotations

import base64
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar, Protocol

from udpfilters.context import ReadContext, WriteContext
from udpfilters.errors import (
    ConvertProtoConfigError,
    MismatchedTypesError,
    MissingConfigError,
)

_BYTES_TAG = "$bytes"


class Filter:
    """Processes packets. ``read`` and ``write`` return False to drop a packet."""

    def read(self, ctx: ReadContext) -> bool:
        """Handle a packet going upstream; passes it on unchanged by default."""
        if not isinstance(ctx, ReadContext):
            raise TypeError(f"read expects a ReadContext, got {type(ctx).__name__}")
        return True

    def write(self, ctx: WriteContext) -> bool:
        """Handle a packet going downstream; passes it on unchanged by default."""
        if not isinstance(ctx, WriteContext):
            raise TypeError(f"write expects a WriteContext, got {type(ctx).__name__}")
        return True


class _Configuration(Protocol):
    @classmethod
    def from_dict(cls, data: Any) -> Any: ...

    def to_dict(self) -> Any: ...

    @classmethod
    def from_proto(cls, message: Mapping[str, Any]) -> Any: ...

    def to_proto(self) -> dict[str, Any]: ...


@dataclass(frozen=True)
class AnyConfig:
    """A binary configuration tagged with the name of the filter it belongs to."""

    type_url: str
    value: bytes


@dataclass
class FilterInstance:
    """A created filter together with the configuration used to create it."""

    config: Any
    filter: Filter


@dataclass
class CreateFilterArgs:
    """Arguments for creating a filter: a static mapping, an AnyConfig, or None."""

    config: Any = None

    @classmethod
    def fixed(cls, config: Any) -> CreateFilterArgs:
        """Arguments holding a textual (mapping) configuration."""
        if isinstance(config, AnyConfig):
            raise TypeError("fixed configuration must not be a binary AnyConfig")
        return cls(config)

    @classmethod
    def dynamic(cls, config: AnyConfig | None) -> CreateFilterArgs:
        """Arguments holding a binary configuration."""
        if config is not None and not isinstance(config, AnyConfig):
            raise TypeError("dynamic configuration must be an AnyConfig")
        return cls(config)


def _encode_message(message: Mapping[str, Any]) -> bytes:
    def default(obj: Any) -> Any:
        if isinstance(obj, (bytes, bytearray)):
            return {_BYTES_TAG: base64.b64encode(bytes(obj)).decode("ascii")}
        raise TypeError(f"cannot encode value of type {type(obj).__name__}")

    try:
        text = json.dumps(message, default=default, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError) as err:
        raise ConvertProtoConfigError(err) from err
    return text.encode("utf-8")


def _decode_message(data: bytes) -> dict[str, Any]:
    def hook(obj: dict[str, Any]) -> Any:
        if obj.keys() == {_BYTES_TAG}:
            return base64.b64decode(obj[_BYTES_TAG], validate=True)
        return obj

    try:
        message = json.loads(bytes(data).decode("utf-8"), object_hook=hook)
    except (UnicodeDecodeError, ValueError) as err:
        raise ConvertProtoConfigError(f"failed to decode message: {err}") from err
    if not isinstance(message, dict):
        raise ConvertProtoConfigError("failed to decode message: not a structure")
    return message


class FilterFactory:
    """Creates filters of one StaticFilter type and converts their configuration."""

    def __init__(self, filter_cls: type[StaticFilter]) -> None:
        self._filter_cls = filter_cls

    def __repr__(self) -> str:
        return f"FilterFactory({self.name()!r})"

    def name(self) -> str:
        """The name the filter is registered under."""
        return self._filter_cls.NAME

    def create_filter(self, args: CreateFilterArgs) -> FilterInstance:
        """Build a filter from the given arguments."""
        if args.config is None:
            return FilterInstance(None, self._filter_cls.try_from_config(None))
        if isinstance(args.config, AnyConfig):
            config = self._from_any(args.config)
        else:
            config = self._filter_cls.Configuration.from_dict(args.config)
        return FilterInstance(config.to_dict(), self._filter_cls.try_from_config(config))

    def encode_config_to_protobuf(self, config: Any) -> AnyConfig:
        """Convert a textual configuration into its binary form."""
        typed = self._filter_cls.Configuration.from_dict(config)
        return AnyConfig(self.name(), _encode_message(typed.to_proto()))

    def encode_config_to_json(self, config: AnyConfig) -> Any:
        """Convert a binary configuration into its textual form."""
        return self._from_any(config).to_dict()

    def require_config(self, config: Any) -> Any:
        """Return the configuration, raising MissingConfigError if there is none."""
        if config is None:
            raise MissingConfigError(self.name())
        return config

    def _from_any(self, config: AnyConfig) -> Any:
        if config.type_url != self.name():
            raise MismatchedTypesError(self.name(), config.type_url)
        message = _decode_message(config.value)
        return self._filter_cls.Configuration.from_proto(message)


class StaticFilter(Filter):
    """A filter with a fixed name and configuration type."""

    NAME: ClassVar[str]
    Configuration: ClassVar[type[_Configuration]]

    @classmethod
    def factory(cls) -> FilterFactory:
        """A factory that creates this filter."""
        return FilterFactory(cls)

    @classmethod
    def try_from_config(cls, config: Any) -> StaticFilter:
        """Create the filter from a typed configuration, which must be present."""
        return cls(cls.ensure_config_exists(config))  # type: ignore[call-arg]

    @classmethod
    def from_config(cls, config: Any) -> StaticFilter:
        """Create the filter from a typed configuration or a mapping."""
        if isinstance(config, Mapping):
            config = cls.Configuration.from_dict(config)
        return cls.try_from_config(config)

    @classmethod
    def ensure_config_exists(cls, config: Any) -> Any:
        """Return the configuration, raising MissingConfigError if there is none."""
        if config is None:
            raise MissingConfigError(cls.NAME)
        return config