"""A filter that sends each packet to one of the upstream endpoints."""

from __future__ import annotations

import hashlib
import itertools
import random
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from udpfilters.context import ReadContext
from udpfilters.errors import ConvertProtoConfigError, DeserializeFailedError
from udpfilters.factory import StaticFilter


class EndpointChooser:
    """Chooses which of the context's endpoints a packet goes to."""

    def choose_endpoints(self, ctx: ReadContext) -> None:
        """Narrow ``ctx.endpoints`` down to the chosen endpoint(s)."""
        raise NotImplementedError


def _require_endpoints(ctx: ReadContext) -> int:
    count = len(ctx.endpoints)
    if count == 0:
        raise ValueError("no endpoints to choose from")
    return count


class RoundRobinEndpointChooser(EndpointChooser):
    """Chooses endpoints in turn."""

    def __init__(self) -> None:
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def choose_endpoints(self, ctx: ReadContext) -> None:
        count = _require_endpoints(ctx)
        with self._lock:
            index = next(self._counter)
        ctx.endpoints = [ctx.endpoints[index % count]]


class RandomEndpointChooser(EndpointChooser):
    """Chooses endpoints at random."""

    def choose_endpoints(self, ctx: ReadContext) -> None:
        count = _require_endpoints(ctx)
        ctx.endpoints = [ctx.endpoints[random.randrange(count)]]


class HashEndpointChooser(EndpointChooser):
    """Chooses endpoints by a hash of the packet's source host and port."""

    def choose_endpoints(self, ctx: ReadContext) -> None:
        count = _require_endpoints(ctx)
        digest = hashlib.blake2b(str(ctx.source).encode("utf-8"), digest_size=8).digest()
        ctx.endpoints = [ctx.endpoints[int.from_bytes(digest, "big") % count]]


class Policy(Enum):
    """How packets are spread across endpoints."""

    ROUND_ROBIN = "ROUND_ROBIN"
    RANDOM = "RANDOM"
    HASH = "HASH"

    def as_endpoint_chooser(self) -> EndpointChooser:
        """A fresh chooser implementing this policy."""
        if self is Policy.ROUND_ROBIN:
            return RoundRobinEndpointChooser()
        if self is Policy.RANDOM:
            return RandomEndpointChooser()
        return HashEndpointChooser()


_POLICY_CODES = {Policy.ROUND_ROBIN: 0, Policy.RANDOM: 1, Policy.HASH: 2}
_POLICIES_BY_CODE = {code: policy for policy, code in _POLICY_CODES.items()}


@dataclass
class LoadBalancerConfig:
    """Configuration for LoadBalancer."""

    policy: Policy = Policy.ROUND_ROBIN

    def __post_init__(self) -> None:
        self.policy = Policy(self.policy)

    @classmethod
    def from_dict(cls, data: Any) -> LoadBalancerConfig:
        if not isinstance(data, Mapping):
            raise DeserializeFailedError("expected a mapping for LoadBalancer configuration")
        value = data.get("policy")
        if value is None:
            return cls()
        try:
            return cls(Policy(value))
        except ValueError:
            raise DeserializeFailedError(f"unknown variant {value!r} for `policy`") from None

    def to_dict(self) -> dict[str, Any]:
        return {"policy": self.policy.value}

    @classmethod
    def from_proto(cls, message: Mapping[str, Any]) -> LoadBalancerConfig:
        value = message.get("policy")
        if value is None:
            return cls()
        if not isinstance(value, Mapping):
            raise ConvertProtoConfigError("expected a policy value", "policy")
        code = value.get("value", 0)
        try:
            return cls(_POLICIES_BY_CODE[code])
        except (KeyError, TypeError):
            raise ConvertProtoConfigError(f"unknown policy {code!r}", "policy") from None

    def to_proto(self) -> dict[str, Any]:
        return {"policy": {"value": _POLICY_CODES[self.policy]}}


class LoadBalancer(StaticFilter):
    """Balances packets over the upstream endpoints."""

    NAME = "udpfilters.filters.load_balancer.v1alpha1.LoadBalancer"
    Configuration = LoadBalancerConfig

    def __init__(self, config: LoadBalancerConfig) -> None:
        self.endpoint_chooser = config.policy.as_endpoint_chooser()

    def read(self, ctx: ReadContext) -> bool:
        self.endpoint_chooser.choose_endpoints(ctx)
        return True