from __future__ import annotations

from redissmoke.app import fail_reason
from redissmoke.reporter import SmokeTestReport, fail_reason_of


def test_fail_reason_of_unwraps_json_messages() -> None:
    assert fail_reason_of(fail_reason("Failed to put")) == "Failed to put"
    assert fail_reason_of("plain failure") == "plain failure"
    assert fail_reason_of('{"other": 1}') == '{"other": 1}'
    assert fail_reason_of("[1, 2]") == "[1, 2]"


def test_report_passes_when_no_step_failed() -> None:
    report = SmokeTestReport()
    report.record_started("context setup")
    report.record_success("context setup")
    report.record_started("context teardown")
    report.record_success("context teardown")

    assert report.passed
    assert report.failures == []
    rendered = report.render()
    assert rendered.splitlines()[0] == "Redis Smoke Tests"
    assert "  1. [PASS] context setup" in rendered
    assert "  2. [PASS] context teardown" in rendered
    assert rendered.endswith("All 2 steps passed.")


def test_report_lists_failures_with_reasons() -> None:
    report = SmokeTestReport(title="Smoke")
    report.record_started("[shared-vm] push app")
    report.record_success("[shared-vm] push app")
    report.record_started("[shared-vm] read mykey")
    report.record_error("[shared-vm] read mykey", fail_reason("Failed to get https://app/mykey"))

    assert not report.passed
    assert [event.step for event in report.failures] == ["[shared-vm] read mykey"]
    lines = report.render().splitlines()
    assert "  2. [FAIL] [shared-vm] read mykey" in lines
    assert "1 of 2 steps failed:" in lines
    assert lines[-1] == "  - [shared-vm] read mykey: Failed to get https://app/mykey"
