import pytest

from udpfilters.context import Endpoint, EndpointAddress, ReadContext, WriteContext
from udpfilters.errors import DeserializeFailedError, MissingConfigError
from udpfilters.factory import CreateFilterArgs
from udpfilters.load_balancer import (
    LoadBalancer,
    LoadBalancerConfig,
    Policy,
)


def get_response_addresses(filter_, input_addresses, source):
    ctx = ReadContext([Endpoint(a) for a in input_addresses], source, b"")
    assert filter_.read(ctx) is True
    return [ep.address for ep in ctx.endpoints]


def addresses():
    return [EndpointAddress(f"127.0.0.{i}", 8080) for i in (1, 2, 3)]


def flatten(sequences):
    return {addr for seq in sequences for chosen in seq for addr in chosen}


def choose(chooser, addrs, source):
    ctx = ReadContext([Endpoint(a) for a in addrs], source, b"")
    chooser.choose_endpoints(ctx)
    return [ep.address for ep in ctx.endpoints]


def test_round_robin_load_balancer_policy():
    addrs = addresses()
    filter_ = LoadBalancer.from_config({"policy": "ROUND_ROBIN"})
    expected = [[a] for a in addrs]
    source = EndpointAddress.parse("127.0.0.1:8080")
    for _ in range(10):
        got = [get_response_addresses(filter_, addrs, source) for _ in addrs]
        assert got == expected


def test_random_load_balancer_policy():
    addrs = addresses()
    filter_ = LoadBalancer.from_config({"policy": "RANDOM"})
    source = EndpointAddress.parse("127.0.0.1:8080")
    result = [
        [get_response_addresses(filter_, addrs, source) for _ in addrs]
        for _ in range(10)
    ]
    assert flatten(result) == set(addrs)
    assert any(seq != result[0] for seq in result[1:])


def test_hash_load_balancer_policy():
    addrs = addresses()
    source_ips = ["127.1.1.1", "127.2.2.2", "127.3.3.3"]
    source_ports = [11111, 22222, 33333, 44444, 55555]
    filter_ = LoadBalancer.from_config({"policy": "HASH"})

    fixed = EndpointAddress("127.0.0.1", 8080)
    result = [
        [get_response_addresses(filter_, addrs, fixed) for _ in addrs] for _ in range(10)
    ]
    assert len(flatten(result)) == 1

    result = [
        [get_response_addresses(filter_, addrs, EndpointAddress("127.0.0.1", port)) for _ in addrs]
        for port in source_ports
    ]
    assert len(flatten(result)) != 1

    result = [
        [get_response_addresses(filter_, addrs, EndpointAddress(ip, port)) for _ in addrs]
        for ip in source_ips
        for port in source_ports
    ]
    assert flatten(result) == set(addrs)
    assert any(seq != result[0] for seq in result[1:])


def test_round_robin_chooser_cycles():
    addrs = addresses()
    chooser = Policy.ROUND_ROBIN.as_endpoint_chooser()
    source = EndpointAddress("127.0.0.1", 80)
    got = [choose(chooser, addrs, source) for _ in range(4)]
    assert got == [[addrs[0]], [addrs[1]], [addrs[2]], [addrs[0]]]


def test_random_chooser_picks_one_endpoint():
    addrs = addresses()
    chooser = Policy.RANDOM.as_endpoint_chooser()
    source = EndpointAddress("127.0.0.1", 80)
    for _ in range(20):
        chosen = choose(chooser, addrs, source)
        assert len(chosen) == 1
        assert chosen[0] in addrs


def test_hash_chooser_is_stable_for_a_source():
    addrs = addresses()
    chooser = Policy.HASH.as_endpoint_chooser()
    source = EndpointAddress("127.9.9.9", 4242)
    first = choose(chooser, addrs, source)
    assert len(first) == 1
    assert first[0] in addrs
    assert all(choose(chooser, addrs, source) == first for _ in range(5))


def test_default_policy_is_round_robin():
    assert LoadBalancerConfig.from_dict({}).policy is Policy.ROUND_ROBIN


def test_from_dict_rejects_unknown_policy():
    with pytest.raises(DeserializeFailedError):
        LoadBalancerConfig.from_dict({"policy": "FASTEST"})


@pytest.mark.parametrize("policy", list(Policy))
def test_config_round_trips(policy):
    config = LoadBalancerConfig(policy)
    assert LoadBalancerConfig.from_dict(config.to_dict()) == config
    assert LoadBalancerConfig.from_proto(config.to_proto()) == config


def test_factory_encode_round_trip():
    factory = LoadBalancer.factory()
    encoded = factory.encode_config_to_protobuf({"policy": "HASH"})
    assert factory.encode_config_to_json(encoded) == {"policy": "HASH"}


def test_factory_requires_config():
    with pytest.raises(MissingConfigError):
        LoadBalancer.factory().create_filter(CreateFilterArgs.fixed(None))


def test_write_passes_through():
    filter_ = LoadBalancer.from_config({"policy": "RANDOM"})
    addr = EndpointAddress("127.0.0.1", 80)
    ctx = WriteContext(Endpoint(addr), addr, addr, b"abc")
    assert filter_.write(ctx) is True
    assert bytes(ctx.contents) == b"abc"


def test_empty_endpoints_raise():
    filter_ = LoadBalancer.from_config({"policy": "ROUND_ROBIN"})
    ctx = ReadContext([], EndpointAddress("127.0.0.1", 80), b"")
    with pytest.raises(ValueError):
        filter_.read(ctx)