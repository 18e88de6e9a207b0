# udpfilters

A library of packet filters for a UDP proxy. Each filter looks at, or
rewrites, a packet as it travels from a client to the upstream endpoints
(`read`) or back again (`write`). `read` and `write` return `True` to let the
packet continue and `False` to drop it.

## Filters

| Module | Filter | What it does |
| --- | --- | --- |
| `udpfilters.debug` | `Debug` | Logs every packet through the `logging` module |
| `udpfilters.drop` | `Drop` | Drops every packet |
| `udpfilters.concatenate_bytes` | `ConcatenateBytes` | Appends or prepends a fixed byte string |
| `udpfilters.load_balancer` | `LoadBalancer` | Narrows the endpoints to one, by round robin, random or hash of the source |
| `udpfilters.firewall` | `Firewall` | Allows or denies packets by source network and port range |
| `udpfilters.local_rate_limit` | `LocalRateLimit` | Limits packets per source address within a time window |
| `udpfilters.timestamp` | `Timestamp` | Records in a histogram the age of a unix timestamp held in packet metadata |

Each filter has a configuration class (`FirewallConfig`, `LoadBalancerConfig`
and so on) with `from_dict`/`to_dict` for the textual form and
`from_proto`/`to_proto` for the binary message form.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Usage

Filters are created from their configuration through the registry, keyed by
the filter's `NAME`:

```python
from udpfilters.context import Endpoint, EndpointAddress, ReadContext
from udpfilters.factory import CreateFilterArgs
from udpfilters.firewall import Firewall
from udpfilters.registry import FilterRegistry

instance = FilterRegistry.get(
    Firewall.NAME,  # "udpfilters.filters.firewall.v1alpha1.Firewall"
    CreateFilterArgs.fixed({
        "on_read": [
            {"action": "ALLOW", "source": "192.168.75.0/24", "ports": ["10-100"]},
        ],
        "on_write": [],
    }),
)

ctx = ReadContext(
    [Endpoint(EndpointAddress.parse("127.0.0.1:8080"))],
    EndpointAddress.parse("192.168.75.20:80"),
    b"",
)
allowed = instance.filter.read(ctx)   # True
```

`instance.config` holds the configuration the filter was built from, in its
textual form.

A filter class can also be built straight from its configuration, either a
configuration object or a mapping:

```python
from udpfilters.load_balancer import LoadBalancer

balancer = LoadBalancer.from_config({"policy": "HASH"})
```

A bad or missing configuration raises a subclass of
`udpfilters.errors.FilterError`: `NotFoundError`, `MissingConfigError`,
`FieldInvalidError`, `DeserializeFailedError`, `MismatchedTypesError` or
`ConvertProtoConfigError`.

### Binary configuration

`FilterFactory.encode_config_to_protobuf` turns a textual configuration into
an `AnyConfig` tagged with the filter's name, and `encode_config_to_json`
turns it back. `CreateFilterArgs.dynamic` creates a filter from an
`AnyConfig`. The `value` bytes are a compact JSON encoding of the message
fields (byte strings are base64 encoded); they are not protobuf wire format.

### Counters and clocks

`Firewall.metrics` counts packets allowed and denied in each direction, and
`LocalRateLimit.metrics.packets_dropped_total` counts rate-limited packets.
`Timestamp.metric("read")` and `Timestamp.metric("write")` return the
`Histogram` for the filter's metadata key. `LocalRateLimit` and `Timestamp`
take an optional `clock` callable, which makes their timing testable.

## Custom filters

Subclass `udpfilters.factory.StaticFilter`, give it a `NAME` and a
`Configuration` class with `from_dict`, `to_dict`, `from_proto` and
`to_proto`, and implement `read` and `write`. The default `try_from_config`
passes the configuration to the constructor and raises `MissingConfigError`
when there is none. Then add the filter's factory to the registry:

```python
from udpfilters.registry import FilterRegistry

FilterRegistry.register([MyFilter.factory()])
```

`FilterSet.default()` gives the built-in filters, and
`FilterSet.default_with(factories)` the built-in filters plus your own; a
factory with the same name as a built-in one replaces it.

## What this package does not do

It holds only the filters and the machinery to configure them. It has no
proxy that receives or sends UDP packets, no command line, no configuration
file loading and no exporter for its counters and histograms; a program using
the package supplies those.