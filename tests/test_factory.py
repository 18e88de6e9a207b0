from __future__ import annotations

from dataclasses import dataclass

import pytest

from udpfilters.context import Endpoint, EndpointAddress, ReadContext, WriteContext
from udpfilters.errors import (
    ConvertProtoConfigError,
    DeserializeFailedError,
    MismatchedTypesError,
    MissingConfigError,
)
from udpfilters.factory import (
    AnyConfig,
    CreateFilterArgs,
    Filter,
    FilterFactory,
    StaticFilter,
)


@dataclass
class EchoConfig:
    label: str
    payload: bytes = b""

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict) or not isinstance(data.get("label"), str):
            raise DeserializeFailedError("label must be a string")
        try:
            payload = bytes(data.get("payload", []))
        except (TypeError, ValueError) as err:
            raise DeserializeFailedError(err) from err
        return cls(data["label"], payload)

    def to_dict(self):
        return {"label": self.label, "payload": list(self.payload)}

    @classmethod
    def from_proto(cls, message):
        label = message.get("label")
        if not isinstance(label, str):
            raise ConvertProtoConfigError.missing_field("label")
        return cls(label, bytes(message.get("payload", b"")))

    def to_proto(self):
        return {"label": self.label, "payload": self.payload}


class Echo(StaticFilter):
    NAME = "test.filters.echo.v1.Echo"
    Configuration = EchoConfig

    def __init__(self, config):
        self.config = config

    def read(self, ctx):
        ctx.contents.extend(self.config.label.encode())
        return True


def make_read_context(contents=b""):
    addr = EndpointAddress("127.0.0.1", 8080)
    return ReadContext([Endpoint(addr)], addr, contents)


def test_base_filter_passes_packets_unchanged():
    addr = EndpointAddress("127.0.0.1", 8080)
    read_ctx = make_read_context(b"data")
    write_ctx = WriteContext(Endpoint(addr), addr, addr, b"data")
    base = Filter()
    assert base.read(read_ctx) is True
    assert base.write(write_ctx) is True
    assert bytes(read_ctx.contents) == b"data"
    assert bytes(write_ctx.contents) == b"data"


def test_factory_name_matches_filter():
    factory = Echo.factory()
    assert isinstance(factory, FilterFactory)
    assert factory.name() == Echo.NAME
    with pytest.raises(MissingConfigError) as info:
        factory.create_filter(CreateFilterArgs.fixed(None))
    assert info.value == MissingConfigError(factory.name())


def test_create_filter_from_fixed_config():
    instance = Echo.factory().create_filter(CreateFilterArgs.fixed({"label": "a"}))
    assert instance.config == {"label": "a", "payload": []}
    ctx = make_read_context(b"x")
    assert instance.filter.read(ctx) is True
    assert bytes(ctx.contents) == b"xa"


def test_create_filter_without_config_requires_one():
    with pytest.raises(MissingConfigError) as info:
        Echo.factory().create_filter(CreateFilterArgs.fixed(None))
    assert info.value == MissingConfigError(Echo.NAME)


def test_create_filter_with_bad_static_config():
    with pytest.raises(DeserializeFailedError):
        Echo.factory().create_filter(CreateFilterArgs.fixed({"label": 3}))


def test_protobuf_round_trip():
    factory = Echo.factory()
    config = {"label": "x", "payload": [0, 255, 7]}
    encoded = factory.encode_config_to_protobuf(config)
    assert encoded.type_url == Echo.NAME
    assert factory.encode_config_to_json(encoded) == config
    instance = factory.create_filter(CreateFilterArgs.dynamic(encoded))
    assert instance.config == config


def test_create_filter_from_dynamic_config():
    factory = Echo.factory()
    encoded = factory.encode_config_to_protobuf({"label": "dyn", "payload": [1, 2]})
    instance = factory.create_filter(CreateFilterArgs.dynamic(encoded))
    assert instance.config == {"label": "dyn", "payload": [1, 2]}
    assert instance.filter.config == EchoConfig("dyn", b"\x01\x02")


def test_mismatched_type_url():
    factory = Echo.factory()
    encoded = factory.encode_config_to_protobuf({"label": "x"})
    wrong = AnyConfig("other.Type", encoded.value)
    with pytest.raises(MismatchedTypesError) as info:
        factory.encode_config_to_json(wrong)
    assert info.value == MismatchedTypesError(Echo.NAME, "other.Type")


def test_undecodable_binary_config():
    with pytest.raises(ConvertProtoConfigError):
        Echo.factory().encode_config_to_json(AnyConfig(Echo.NAME, b"\xff\x00garbage"))


def test_missing_field_in_binary_config():
    with pytest.raises(ConvertProtoConfigError) as info:
        Echo.factory().create_filter(CreateFilterArgs.dynamic(AnyConfig(Echo.NAME, b"{}")))
    assert info.value.field == "label"


def test_require_config():
    factory = Echo.factory()
    assert factory.require_config({"label": "a"}) == {"label": "a"}
    dynamic = AnyConfig(Echo.NAME, b"{}")
    assert factory.require_config(dynamic) is dynamic
    with pytest.raises(MissingConfigError) as info:
        factory.require_config(None)
    assert info.value == MissingConfigError(Echo.NAME)


def test_from_config_accepts_mapping():
    echo = Echo.from_config({"label": "m"})
    assert echo.config == EchoConfig("m")
    ctx = ReadContext([], EndpointAddress("127.0.0.1", 1), b"y")
    assert echo.read(ctx) is True
    assert bytes(ctx.contents) == b"ym"


def test_ensure_config_exists():
    config = EchoConfig("e")
    assert Echo.ensure_config_exists(config) is config
    with pytest.raises(MissingConfigError) as info:
        Echo.ensure_config_exists(None)
    assert info.value == MissingConfigError(Echo.NAME)


def test_create_filter_args_kinds_are_checked():
    with pytest.raises(TypeError):
        CreateFilterArgs.dynamic({"label": "a"})
    with pytest.raises(TypeError):
        CreateFilterArgs.fixed(AnyConfig(Echo.NAME, b"{}"))
    assert CreateFilterArgs.dynamic(None).config is None