"""Packet addresses, endpoints and the contexts passed to filters."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Any, Dict

#: Default metadata key under which captured packet bytes are stored.
CAPTURED_BYTES = "udpfilters.dev/capture"

DynamicMetadata = Dict[str, Any]


@dataclass(frozen=True)
class EndpointAddress:
    """A host and port a packet came from or goes to."""

    host: str
    port: int

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("host must not be empty")
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"port {self.port} is out of range")

    @classmethod
    def parse(cls, text: str) -> EndpointAddress:
        """Parse ``host:port`` or ``[ipv6]:port``."""
        host, sep, port_text = text.rpartition(":")
        if not sep or not host:
            raise ValueError(f"invalid address {text!r}: expected host:port")
        if host.startswith("["):
            if not host.endswith("]"):
                raise ValueError(f"invalid address {text!r}: unterminated bracket")
            host = host[1:-1]
        elif ":" in host:
            raise ValueError(f"invalid address {text!r}: IPv6 hosts must be bracketed")
        if not port_text.isdigit():
            raise ValueError(f"invalid port in address {text!r}")
        return cls(host, int(port_text))

    @property
    def ip(self) -> ipaddress.IPv4Address | ipaddress.IPv6Address:
        """The host as an IP address; raises ValueError for host names."""
        return ipaddress.ip_address(self.host)

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class Endpoint:
    """An upstream endpoint packets can be forwarded to."""

    address: EndpointAddress


@dataclass
class ReadContext:
    """State handed to a filter for a packet travelling upstream."""

    endpoints: list[Endpoint]
    source: EndpointAddress
    contents: bytearray = field(default_factory=bytearray)
    metadata: DynamicMetadata = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.endpoints = list(self.endpoints)
        self.contents = bytearray(self.contents)

    def with_metadata(self, metadata: DynamicMetadata) -> ReadContext:
        """Replace the metadata and return this context."""
        self.metadata = metadata
        return self


@dataclass
class WriteContext:
    """State handed to a filter for a packet travelling downstream."""

    endpoint: Endpoint
    source: EndpointAddress
    dest: EndpointAddress
    contents: bytearray = field(default_factory=bytearray)
    metadata: DynamicMetadata = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.contents = bytearray(self.contents)