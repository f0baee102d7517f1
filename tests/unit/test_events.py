"""
Unit tests for the event bus.
"""

import asyncio
import logging

import pytest

from georesilience.services.events import EventBus


def test_emit_delivers_to_listeners_in_order():
    """Test listeners receive the payload in subscription order."""
    bus = EventBus()
    received = []

    bus.on("error", lambda payload: received.append(("first", payload)))
    bus.on("error", lambda payload: received.append(("second", payload)))

    assert bus.emit("error", {"code": 1}) == 2
    assert received == [("first", {"code": 1}), ("second", {"code": 1})]


def test_emit_without_listeners():
    """Test emitting an event nobody listens to."""
    bus = EventBus()

    assert bus.emit("circuitOpen") == 0


def test_listener_failure_is_isolated(caplog):
    """Test a raising listener does not stop delivery or reach the emitter."""
    bus = EventBus()
    received = []

    def broken(payload):
        raise RuntimeError("observer bug")

    bus.on("error", broken)
    bus.on("error", received.append)

    with caplog.at_level(logging.ERROR, logger="georesilience.services.events"):
        assert bus.emit("error", "payload") == 2

    assert received == ["payload"]
    assert any("observer bug" in record.getMessage() for record in caplog.records)


def test_once_and_off():
    """Test single-delivery listeners and unsubscription."""
    bus = EventBus()
    received = []

    bus.once("permissionGranted", received.append)
    bus.emit("permissionGranted", 1)
    bus.emit("permissionGranted", 2)
    assert received == [1]

    listener = received.append
    bus.on("retrySuccess", listener)
    assert bus.listener_count("retrySuccess") == 1
    assert bus.off("retrySuccess", listener) is True
    assert bus.off("retrySuccess", listener) is False
    assert bus.listener_count("retrySuccess") == 0


def test_once_returns_removable_wrapper():
    """Test a once listener can be removed before it fires."""
    bus = EventBus()
    received = []

    wrapper = bus.once("permissionGranted", received.append)
    assert bus.off("permissionGranted", wrapper) is True

    bus.emit("permissionGranted", 1)
    assert received == []


@pytest.mark.asyncio
async def test_async_listener_scheduled():
    """Test coroutine listeners run on the loop and can be drained."""
    bus = EventBus()
    received = []

    async def listener(payload):
        await asyncio.sleep(0)
        received.append(payload)

    bus.on("retryFailed", listener)
    bus.emit("retryFailed", "job1")
    assert received == []

    await bus.drain()
    assert received == ["job1"]


@pytest.mark.asyncio
async def test_async_listener_failure_logged(caplog):
    """Test async listener failures are logged, not raised."""
    bus = EventBus()

    async def listener(payload):
        raise ValueError("async observer bug")

    bus.on("error", listener)

    with caplog.at_level(logging.ERROR, logger="georesilience.services.events"):
        bus.emit("error", None)
        await bus.drain()

    assert any("async observer bug" in record.getMessage() for record in caplog.records)


def test_async_listener_without_loop_is_dropped():
    """Test coroutine listeners are dropped when no loop is running."""
    bus = EventBus()
    called = []

    async def listener(payload):
        called.append(payload)

    bus.on("error", listener)

    assert bus.emit("error", "x") == 1
    assert called == []


def test_clear():
    """Test removing all listeners."""
    bus = EventBus()
    bus.on("a", print)
    bus.on("b", print)

    bus.clear()

    assert bus.listener_count("a") == 0
    assert bus.listener_count("b") == 0
