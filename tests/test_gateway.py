#!/usr/bin/env python3
"""Tests for the push gateway client."""
import http.client
from urllib.error import HTTPError, URLError

import pytest
from prometheus_client import CollectorRegistry, Gauge

from pushagent.errors import DeliveryFailure
from pushagent.gateway import PushGatewayClient


@pytest.fixture
def registry():
    registry = CollectorRegistry()
    Gauge("test_pushed_value", "Test gauge", registry=registry).set(1)
    return registry


def test_push_add_uses_job_and_address(monkeypatch, registry):
    calls = []

    def fake_pushadd(gateway, job, registry, timeout):
        calls.append((gateway, job, registry, timeout))

    monkeypatch.setattr("pushagent.gateway.pushadd_to_gateway", fake_pushadd)

    client = PushGatewayClient("pushgateway:9091", timeout=5)
    client.push_add(registry, "worker-7_4242")

    assert calls == [("pushgateway:9091", "worker-7_4242", registry, 5)]


@pytest.mark.parametrize("error", [
    URLError("connection refused"),
    HTTPError("http://pushgateway:9091", 500, "Internal Server Error", {}, None),
    OSError("error talking to pushgateway: 400"),
    http.client.BadStatusLine("garbage\r\n"),
    http.client.IncompleteRead(b"partial", 100),
    http.client.LineTooLong("header line"),
    http.client.RemoteDisconnected("Remote end closed connection without response"),
])
def test_transport_errors_become_delivery_failures(monkeypatch, registry, error):
    def fake_pushadd(gateway, job, registry, timeout):
        raise error

    monkeypatch.setattr("pushagent.gateway.pushadd_to_gateway", fake_pushadd)

    client = PushGatewayClient("pushgateway:9091")
    with pytest.raises(DeliveryFailure) as excinfo:
        client.push_add(registry, "job")

    assert excinfo.value.address == "pushgateway:9091"
    assert excinfo.value.cause is error
    assert not excinfo.value.fatal
    assert "PushGateway: pushgateway:9091" in str(excinfo.value)


def test_unreachable_gateway(registry):
    # Nothing listens on port 1
    client = PushGatewayClient("127.0.0.1:1", timeout=2)
    with pytest.raises(DeliveryFailure):
        client.push_add(registry, "job")


def test_other_errors_propagate(monkeypatch, registry):
    def fake_pushadd(gateway, job, registry, timeout):
        raise ValueError("bad job")

    monkeypatch.setattr("pushagent.gateway.pushadd_to_gateway", fake_pushadd)

    with pytest.raises(ValueError):
        PushGatewayClient("pushgateway:9091").push_add(registry, "job")
