"""A filter that allows or blocks packets by source IP network and port."""

from __future__ import annotations

import ipaddress
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from udpfilters.context import EndpointAddress, ReadContext, WriteContext
from udpfilters.errors import ConvertProtoConfigError, DeserializeFailedError
from udpfilters.factory import StaticFilter

logger = logging.getLogger(__name__)

IpNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]

_MAX_PORT = 0xFFFF


class Action(Enum):
    """Whether a matching rule lets a packet through or blocks it."""

    ALLOW = "ALLOW"
    DENY = "DENY"


_ACTION_CODES = {Action.ALLOW: 0, Action.DENY: 1}
_ACTIONS_BY_CODE = {code: action for action, code in _ACTION_CODES.items()}


class PortRangeError(ValueError):
    """The minimum of a port range is not below its maximum."""

    def __init__(self, min: int, max: int) -> None:  # noqa: A002
        super().__init__(min, max)
        self.min = min
        self.max = max

    def __str__(self) -> str:
        return (
            f"invalid port range: min {self.min} is greater than or equal to max {self.max}"
        )


def _parse_port(text: str) -> int:
    if not (text.isascii() and text.isdigit()):
        raise ValueError(f"invalid port number {text!r}")
    value = int(text)
    if value > _MAX_PORT:
        raise ValueError(f"port number {text!r} is too large")
    return value


@dataclass(frozen=True)
class PortRange:
    """Ports from ``start`` (inclusive) to ``end`` (exclusive)."""

    start: int
    end: int

    def __post_init__(self) -> None:
        for value in (self.start, self.end):
            if not 0 <= value <= _MAX_PORT:
                raise ValueError(f"port {value} is out of range")
        if self.start >= self.end:
            raise PortRangeError(self.start, self.end)

    def contains(self, port: int) -> bool:
        """True if ``port`` lies within the range."""
        return self.start <= port < self.end

    def __contains__(self, port: object) -> bool:
        return isinstance(port, int) and self.contains(port)

    @classmethod
    def parse(cls, text: str) -> PortRange:
        """Parse a single port such as ``"10"`` or a range such as ``"10-20"``."""
        low, sep, high = text.partition("-")
        if not sep:
            value = _parse_port(low)
            return cls(value, value + 1)
        return cls(_parse_port(low), _parse_port(high))

    def to_str(self) -> str:
        """A single port if the range holds one, otherwise ``"start-end"``."""
        if self.start == self.end - 1:
            return str(self.start)
        return f"{self.start}-{self.end}"

    def __str__(self) -> str:
        return self.to_str()


def _address_parts(address: Any) -> tuple[Any, int]:
    if isinstance(address, EndpointAddress):
        return address.ip, address.port
    host, port = address
    return ipaddress.ip_address(host), int(port)


@dataclass
class Rule:
    """A network, the ports within it, and what to do with matching packets."""

    action: Action
    source: IpNetwork
    ports: list[PortRange] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.action = Action(self.action)
        if not isinstance(self.source, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
            self.source = ipaddress.ip_network(self.source, strict=False)
        self.ports = list(self.ports)

    def contains(self, address: EndpointAddress | tuple[str, int]) -> bool:
        """True if the address is in the network and in at least one port range.

        Raises ValueError if the address host is not an IP address.
        """
        ip, port = _address_parts(address)
        if ip not in self.source:
            return False
        return any(port_range.contains(port) for port_range in self.ports)

    @classmethod
    def from_dict(cls, data: Any) -> Rule:
        if not isinstance(data, Mapping):
            raise DeserializeFailedError("expected a mapping for a firewall rule")
        for name in ("action", "source", "ports"):
            if name not in data:
                raise DeserializeFailedError(f"missing field `{name}`")
        try:
            action = Action(data["action"])
        except ValueError:
            raise DeserializeFailedError(
                f"unknown variant {data['action']!r} for `action`"
            ) from None
        source = data["source"]
        if not isinstance(source, str):
            raise DeserializeFailedError("invalid type for `source`: expected a string")
        try:
            network = ipaddress.ip_network(source, strict=False)
        except ValueError as err:
            raise DeserializeFailedError(f"invalid source: {err}") from err
        raw_ports = data["ports"]
        if isinstance(raw_ports, (str, bytes)) or not isinstance(raw_ports, Sequence):
            raise DeserializeFailedError("invalid type for `ports`: expected a list")
        ports = []
        for item in raw_ports:
            if isinstance(item, bool) or not isinstance(item, (str, int)):
                raise DeserializeFailedError(
                    "A port range in the format of '10' or '10-20'"
                )
            try:
                ports.append(PortRange.parse(str(item)))
            except ValueError as err:
                raise DeserializeFailedError(err) from err
        return cls(action, network, ports)

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "source": str(self.source),
            "ports": [port_range.to_str() for port_range in self.ports],
        }

    def _to_proto(self) -> dict[str, Any]:
        return {
            "action": _ACTION_CODES[self.action],
            "source": str(self.source),
            "ports": [{"min": p.start, "max": p.end} for p in self.ports],
        }


def _port_from_proto(message: Any) -> PortRange:
    if not isinstance(message, Mapping):
        raise ConvertProtoConfigError("expected a port range", "ports")
    bounds = []
    for name in ("min", "max"):
        value = message.get(name, 0)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ConvertProtoConfigError(f"{name} is not a port number", f"port.{name}")
        if value > _MAX_PORT:
            raise ConvertProtoConfigError(
                f"{name} too large: {value} does not fit in a port number", f"port.{name}"
            )
        bounds.append(value)
    try:
        return PortRange(*bounds)
    except PortRangeError as err:
        raise ConvertProtoConfigError(err, "ports") from err


def _rule_from_proto(message: Any) -> Rule:
    if not isinstance(message, Mapping):
        raise ConvertProtoConfigError("expected a rule")
    # Unknown action codes fall back to the first variant.
    action = _ACTIONS_BY_CODE.get(message.get("action", 0), Action.ALLOW)
    source = message.get("source", "")
    try:
        network = ipaddress.ip_network(source, strict=False)
    except (TypeError, ValueError) as err:
        raise ConvertProtoConfigError(f"invalid source: {err!r}", "source") from err
    ports = [_port_from_proto(item) for item in message.get("ports", [])]
    return Rule(action, network, ports)


@dataclass
class FirewallConfig:
    """Rules applied to packets read from and written to clients."""

    on_read: list[Rule] = field(default_factory=list)
    on_write: list[Rule] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> FirewallConfig:
        if not isinstance(data, Mapping):
            raise DeserializeFailedError("expected a mapping for Firewall configuration")
        lists = []
        for name in ("on_read", "on_write"):
            if name not in data:
                raise DeserializeFailedError(f"missing field `{name}`")
            rules = data[name]
            if isinstance(rules, (str, bytes)) or not isinstance(rules, Sequence):
                raise DeserializeFailedError(f"invalid type for `{name}`: expected a list")
            lists.append([Rule.from_dict(rule) for rule in rules])
        return cls(*lists)

    def to_dict(self) -> dict[str, Any]:
        return {
            "on_read": [rule.to_dict() for rule in self.on_read],
            "on_write": [rule.to_dict() for rule in self.on_write],
        }

    @classmethod
    def from_proto(cls, message: Mapping[str, Any]) -> FirewallConfig:
        return cls(
            on_read=[_rule_from_proto(rule) for rule in message.get("on_read", [])],
            on_write=[_rule_from_proto(rule) for rule in message.get("on_write", [])],
        )

    def to_proto(self) -> dict[str, Any]:
        return {
            "on_read": [rule._to_proto() for rule in self.on_read],
            "on_write": [rule._to_proto() for rule in self.on_write],
        }


@dataclass
class FirewallMetrics:
    """Counts of packets allowed and denied in each direction."""

    packets_denied_read: int = 0
    packets_denied_write: int = 0
    packets_allowed_read: int = 0
    packets_allowed_write: int = 0


class Firewall(StaticFilter):
    """Allows or blocks traffic by IP network and port."""

    NAME = "udpfilters.filters.firewall.v1alpha1.Firewall"
    Configuration = FirewallConfig

    def __init__(
        self, config: FirewallConfig, metrics: FirewallMetrics | None = None
    ) -> None:
        self.on_read = list(config.on_read)
        self.on_write = list(config.on_write)
        self.metrics = metrics if metrics is not None else FirewallMetrics()

    def _record(self, event: str, allowed: bool) -> None:
        m = self.metrics
        if event == "read":
            if allowed:
                m.packets_allowed_read += 1
            else:
                m.packets_denied_read += 1
        elif allowed:
            m.packets_allowed_write += 1
        else:
            m.packets_denied_write += 1

    def _apply(self, rules: list[Rule], source: EndpointAddress, event: str) -> bool:
        for rule in rules:
            try:
                matched = rule.contains(source)
            except ValueError:
                # The source is not an IP address; drop it without counting.
                return False
            if matched:
                allowed = rule.action is Action.ALLOW
                logger.debug(
                    "action=%s event=%s source=%s",
                    "Allow" if allowed else "Deny",
                    event,
                    source,
                )
                self._record(event, allowed)
                return allowed
        logger.debug("action=default: Deny event=%s source=%s", event, source)
        self._record(event, False)
        return False

    def read(self, ctx: ReadContext) -> bool:
        return self._apply(self.on_read, ctx.source, "read")

    def write(self, ctx: WriteContext) -> bool:
        return self._apply(self.on_write, ctx.source, "write")