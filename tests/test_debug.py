import logging

import pytest

from udpfilters.context import Endpoint, EndpointAddress, ReadContext, WriteContext
from udpfilters.debug import Debug, DebugConfig
from udpfilters.errors import DeserializeFailedError
from udpfilters.factory import CreateFilterArgs

LOGGER = "udpfilters.debug"


def _records(caplog, text):
    return [r for r in caplog.records if text in r.getMessage()]


def test_read(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)
    df = Debug()
    addr = EndpointAddress("127.0.0.1", 8080)
    endpoints = [Endpoint(addr)]
    ctx = ReadContext(list(endpoints), EndpointAddress("127.0.0.1", 80), b"hello")
    assert df.read(ctx) is True
    assert bytes(ctx.contents) == b"hello"
    assert ctx.endpoints == endpoints
    assert _records(caplog, "Read filter event")


def test_write(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)
    df = Debug()
    endpoint = Endpoint(EndpointAddress("127.0.0.1", 80))
    ctx = WriteContext(
        endpoint, EndpointAddress("127.0.0.1", 80), EndpointAddress("127.0.0.1", 8081), b"abc"
    )
    assert df.write(ctx) is True
    assert bytes(ctx.contents) == b"abc"
    records = _records(caplog, "Write filter event")
    assert records
    assert all(r.name == LOGGER for r in records)


def test_log_includes_id(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)
    df = Debug.from_config({"id": "name"})
    ctx = ReadContext([], EndpointAddress("127.0.0.1", 80), b"")
    df.read(ctx)
    assert "'name'" in _records(caplog, "Read filter event")[0].getMessage()


def test_from_config_with_id():
    df = Debug.from_config(DebugConfig.from_dict({"id": "name"}))
    assert df.config == DebugConfig("name")


def test_from_config_without_id():
    df = Debug.from_config(DebugConfig.from_dict({}))
    assert df.config.id is None


def test_from_config_should_error():
    with pytest.raises(DeserializeFailedError):
        DebugConfig.from_dict({"id": {}})


def test_factory_without_config():
    instance = Debug.factory().create_filter(CreateFilterArgs.fixed(None))
    assert instance.config is None
    assert instance.filter.config == DebugConfig()


def test_proto_round_trip():
    factory = Debug.factory()
    encoded = factory.encode_config_to_protobuf({"id": "name"})
    assert encoded.type_url == Debug.NAME
    assert factory.encode_config_to_json(encoded) == {"id": "name"}
    assert DebugConfig.from_proto(DebugConfig("name").to_proto()) == DebugConfig("name")