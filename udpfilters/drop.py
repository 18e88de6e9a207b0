"""A filter that drops every packet."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from udpfilters.context import ReadContext, WriteContext
from udpfilters.errors import DeserializeFailedError
from udpfilters.factory import StaticFilter


@dataclass
class DropConfig:
    """Configuration for Drop, which takes no settings."""

    @classmethod
    def from_dict(cls, data: Any) -> DropConfig:
        if data is None or (isinstance(data, Mapping) and not data):
            return cls()
        raise DeserializeFailedError("Drop configuration takes no value")

    def to_dict(self) -> dict[str, Any]:
        return dict()

    @classmethod
    def from_proto(cls, message: Mapping[str, Any]) -> DropConfig:
        return cls()

    def to_proto(self) -> dict[str, Any]:
        return {}


class Drop(StaticFilter):
    """Always drops a packet; mostly useful together with other filters."""

    NAME = "udpfilters.filters.drop.v1alpha1.Drop"
    Configuration = DropConfig

    @classmethod
    def try_from_config(cls, config: DropConfig | None) -> Drop:
        return cls()

    def read(self, ctx: ReadContext) -> bool:
        return False

    def write(self, ctx: WriteContext) -> bool:
        return False