from __future__ import annotations

from exceptions import MonitorConfigError, QueueJobError, StorageQueryError


def test_monitor_config_error_carries_context() -> None:
    error = MonitorConfigError(
        "Invalid monitor configuration",
        errors=["URL is required"],
        monitor_id="m1",
        monitor_type="http",
    )

    assert error.error_code == 3010
    assert error.monitor_id == "m1"
    assert error.to_dict()["details"] == {
        "monitor_id": "m1",
        "errors": ["URL is required"],
        "monitor_type": "http",
    }
    assert str(error) == "[3010] Invalid monitor configuration"


def test_log_format_includes_details_and_cause() -> None:
    cause = TimeoutError("read timed out")
    error = QueueJobError("Check job failed", monitor_id="m7", attempts=3, cause=cause)

    line = error.log_format()
    assert line.startswith("QueueJobError[4001] Check job failed | ")
    assert "monitor_id=m7" in line
    assert "attempts=3" in line
    assert line.endswith("cause: TimeoutError('read timed out')")


def test_storage_messages_hide_literals() -> None:
    error = StorageQueryError("UNIQUE constraint failed: value 'secret-token'", operation="create_monitor")

    assert "secret-token" not in error.message
    assert error.details == {"operation": "create_monitor"}
    assert error.to_dict()["cause"] is None
