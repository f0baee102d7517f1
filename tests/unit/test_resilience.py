"""
Unit tests for the resilience container and bootstrap.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from georesilience.config import Settings
from georesilience.errors import ResilienceError
from georesilience.models.error import ErrorKind
from georesilience.models.retry import RetryOptions
from georesilience.services import error_context as error_context_module
from georesilience.services import resilience as resilience_module
from georesilience.services.recovery import ServiceStatus
from georesilience.services.reporters import LoggingErrorReporter
from georesilience.services.resilience import (
    Resilience,
    get_resilience,
    initialize_error_handling,
)


@pytest.fixture
def resilience():
    return Resilience(
        config=Settings(),
        sleep=AsyncMock(),
        connectivity_check=AsyncMock(return_value=False),
        service_status_check=AsyncMock(return_value=ServiceStatus()),
        auto_start=False,
    )


def test_components_share_event_bus(resilience):
    """Test the container wires one bus through every component."""
    assert resilience.error_manager.events is resilience.events
    assert resilience.retry_manager.events is resilience.events
    assert resilience.recovery.events is resilience.events
    assert resilience.recovery.retry_manager is resilience.retry_manager
    assert resilience.error_manager._recovery is resilience.recovery
    assert resilience.debugger.context_manager is resilience.context


def test_initialize_registers_defaults(resilience):
    """Test bootstrap registers handlers, strategies and the reporter."""
    reporter = LoggingErrorReporter()

    instance = initialize_error_handling(reporter=reporter, resilience=resilience)

    assert instance is resilience
    assert resilience.error_manager._reporter is reporter
    assert len(resilience.error_manager._handlers[ErrorKind.PERMISSION_DENIED]) == 1
    assert len(resilience.recovery.strategies_for(ErrorKind.NETWORK_ERROR)) == 1


def test_initialize_reporter_from_settings():
    """Test the configured reporter type is used when none is passed."""
    instance = Resilience(config=Settings(reporter_type="logging"), auto_start=False)

    initialize_error_handling(resilience=instance, register_default_handlers=False)

    assert isinstance(instance.error_manager._reporter, LoggingErrorReporter)


@pytest.mark.asyncio
async def test_offline_upload_is_queued_through_dispatch(resilience):
    """Test an offline network failure flows dispatch -> recovery -> retry queue."""
    initialize_error_handling(resilience=resilience, register_default_handlers=False)
    recovered = []
    resilience.events.on("recoverySuccess", recovered.append)

    report = await resilience.error_manager.dispatch(
        ResilienceError(ErrorKind.NETWORK_ERROR, "offline", context={"operation": "upload"}),
    )

    assert report.recovered is True
    assert report.handled is False
    assert resilience.retry_manager.get_queue_status().operations == ["network-upload"]
    assert recovered[0]["strategy"] == "network_error_recovery"


def test_initialize_is_idempotent(resilience):
    """Test repeated bootstrap registers the defaults once."""
    initialize_error_handling(resilience=resilience)
    initialize_error_handling(resilience=resilience)

    assert len(resilience.error_manager._handlers[ErrorKind.PERMISSION_DENIED]) == 1
    assert len(resilience.recovery.strategies_for(ErrorKind.NETWORK_ERROR)) == 1
    assert len(resilience.recovery.strategies_for(ErrorKind.LOCATION_TIMEOUT)) == 1


@pytest.mark.asyncio
async def test_with_retry_raises_before_recovery_runs():
    """Test the caller gets its error while the recovery strategy is still waiting."""
    release = asyncio.Event()
    delays = []

    async def blocking_sleep(seconds):
        delays.append(seconds)
        await release.wait()

    instance = Resilience(
        config=Settings(),
        sleep=blocking_sleep,
        connectivity_check=AsyncMock(return_value=True),
        service_status_check=AsyncMock(return_value=ServiceStatus()),
        auto_start=False,
    )
    initialize_error_handling(resilience=instance, register_default_handlers=False)
    op = AsyncMock(side_effect=ConnectionError("connection reset"))

    with pytest.raises(ResilienceError) as exc_info:
        await instance.retry_manager.with_retry(op, RetryOptions(max_retries=0), "svcX")

    assert exc_info.value.kind == ErrorKind.NETWORK_ERROR
    assert instance.error_manager.history == []

    for _ in range(5):
        await asyncio.sleep(0)

    # Online network recovery backs off for 2 ** attempts seconds
    assert delays == [2]

    release.set()
    await instance.shutdown()

    report = instance.error_manager.history[0]
    assert report.error is exc_info.value
    assert report.recovered is True


@pytest.mark.asyncio
async def test_shutdown(resilience):
    """Test shutdown stops the scanner and drains observers."""
    await resilience.shutdown()


def test_get_resilience_is_cached(monkeypatch):
    """Test the default instance is created once."""
    monkeypatch.setattr(resilience_module, "_resilience", None)
    monkeypatch.setattr(error_context_module, "_error_context", None)

    first = get_resilience()
    second = get_resilience()

    assert first is second
