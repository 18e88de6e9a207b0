"""Sets of filter factories and the process-wide registry of available filters."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from typing import ClassVar

from udpfilters.concatenate_bytes import ConcatenateBytes
from udpfilters.debug import Debug
from udpfilters.drop import Drop
from udpfilters.errors import NotFoundError
from udpfilters.factory import CreateFilterArgs, FilterFactory, FilterInstance
from udpfilters.firewall import Firewall
from udpfilters.load_balancer import LoadBalancer
from udpfilters.local_rate_limit import LocalRateLimit
from udpfilters.timestamp import Timestamp


def _default_factories() -> list[FilterFactory]:
    return [
        ConcatenateBytes.factory(),
        Debug.factory(),
        Drop.factory(),
        Firewall.factory(),
        LoadBalancer.factory(),
        LocalRateLimit.factory(),
        Timestamp.factory(),
    ]


class FilterSet:
    """Filter factories keyed by the name of the filter they create."""

    def __init__(self, factories: Iterable[FilterFactory] = ()) -> None:
        self._factories: dict[str, FilterFactory] = {}
        for factory in factories:
            self._factories[factory.name()] = factory

    @classmethod
    def default(cls) -> FilterSet:
        """The set of built-in filters."""
        return cls.default_with(())

    @classmethod
    def default_with(cls, filters: Iterable[FilterFactory]) -> FilterSet:
        """The built-in filters plus ``filters``; later factories override by name."""
        return cls.with_factories([*_default_factories(), *filters])

    @classmethod
    def with_factories(cls, filters: Iterable[FilterFactory]) -> FilterSet:
        """A set holding exactly ``filters``, without the built-in ones."""
        return cls(filters)

    def get(self, key: str) -> FilterFactory | None:
        """The factory registered under ``key``, or None."""
        return self._factories.get(key)

    def insert(self, factory: FilterFactory) -> FilterFactory | None:
        """Add ``factory``, returning the one it replaced, if any."""
        name = factory.name()
        previous = self._factories.get(name)
        self._factories[name] = factory
        return previous

    def copy(self) -> FilterSet:
        """A shallow copy of this set."""
        return FilterSet(self._factories.values())

    def names(self) -> set[str]:
        """The names of all filters in the set."""
        return set(self._factories)

    def __iter__(self) -> Iterator[FilterFactory]:
        return iter(list(self._factories.values()))

    def __len__(self) -> int:
        return len(self._factories)

    def __contains__(self, key: object) -> bool:
        return key in self._factories

    def __repr__(self) -> str:
        return f"FilterSet({sorted(self._factories)!r})"


class FilterRegistry:
    """The process-wide registry of filters that can be created by name."""

    _current: ClassVar[FilterSet] = FilterSet.default()
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self) -> None:
        raise TypeError("FilterRegistry is not meant to be instantiated")

    @classmethod
    def register(cls, factories: Iterable[FilterFactory]) -> None:
        """Add ``factories`` to the registry, replacing any with the same name."""
        with cls._lock:
            updated = cls._current.copy()
            for factory in factories:
                updated.insert(factory)
            cls._current = updated

    @classmethod
    def get(cls, key: str, args: CreateFilterArgs) -> FilterInstance:
        """Create the filter registered under ``key``.

        Raises NotFoundError if no such filter exists, or the factory's error if
        the configuration is unusable.
        """
        factory = cls._current.get(key)
        if factory is None:
            raise NotFoundError(key)
        return factory.create_filter(args)

    @classmethod
    def get_factory(cls, key: str) -> FilterFactory | None:
        """The factory registered under ``key``, or None."""
        return cls._current.get(key)