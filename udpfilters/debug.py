"""A filter that logs every packet passing through."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from udpfilters.context import ReadContext, WriteContext
from udpfilters.errors import ConvertProtoConfigError, DeserializeFailedError
from udpfilters.factory import StaticFilter

logger = logging.getLogger(__name__)


@dataclass
class DebugConfig:
    """Configuration for Debug: an optional identifier added to each log line."""

    id: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> DebugConfig:
        if not isinstance(data, Mapping):
            raise DeserializeFailedError("expected a mapping for Debug configuration")
        value = data.get("id")
        if value is not None and not isinstance(value, str):
            raise DeserializeFailedError("invalid type for `id`: expected a string")
        return cls(value)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id}

    @classmethod
    def from_proto(cls, message: Mapping[str, Any]) -> DebugConfig:
        value = message.get("id")
        if value is not None and not isinstance(value, str):
            raise ConvertProtoConfigError("expected a string", "id")
        return cls(value)

    def to_proto(self) -> dict[str, Any]:
        return {"id": self.id}


class Debug(StaticFilter):
    """Logs all incoming and outgoing packets."""

    NAME = "udpfilters.filters.debug.v1alpha1.Debug"
    Configuration = DebugConfig

    def __init__(self, config: DebugConfig | None = None) -> None:
        self.config = config if config is not None else DebugConfig()

    @classmethod
    def try_from_config(cls, config: DebugConfig | None) -> Debug:
        return cls(config)

    def read(self, ctx: ReadContext) -> bool:
        logger.info(
            "Read filter event id=%r source=%s contents=%r",
            self.config.id,
            ctx.source,
            bytes(ctx.contents).decode("utf-8", errors="replace"),
        )
        return True

    def write(self, ctx: WriteContext) -> bool:
        logger.info(
            "Write filter event id=%r endpoint=%s source=%s dest=%s contents=%r",
            self.config.id,
            ctx.endpoint.address,
            ctx.source,
            ctx.dest,
            bytes(ctx.contents).decode("utf-8", errors="replace"),
        )
        return True