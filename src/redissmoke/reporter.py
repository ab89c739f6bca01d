"""Step-by-step smoke test report."""

from __future__ import annotations

import json
from dataclasses import dataclass


@dataclass(frozen=True)
class StepEvent:
    step: str
    state: str
    message: str


def fail_reason_of(message: str) -> str:
    """Extract ``FailReason`` from a JSON failure message, else return it unchanged."""
    try:
        payload = json.loads(message)
    except (json.JSONDecodeError, TypeError):
        return message
    if isinstance(payload, dict):
        reason = payload.get("FailReason")
        if isinstance(reason, str):
            return reason
    return message


class SmokeTestReport:
    def __init__(self, title: str = "Redis Smoke Tests") -> None:
        self.title = title
        self.events: list[StepEvent] = []

    def record_started(self, step: str, message: str = "") -> None:
        self.events.append(StepEvent(step=step, state="started", message=message))

    def record_success(self, step: str, message: str = "") -> None:
        self.events.append(StepEvent(step=step, state="success", message=message))

    def record_error(self, step: str, message: str) -> None:
        self.events.append(StepEvent(step=step, state="error", message=message))

    @property
    def failures(self) -> list[StepEvent]:
        return [event for event in self.events if event.state == "error"]

    @property
    def passed(self) -> bool:
        return not self.failures

    def render(self) -> str:
        lines = [self.title, "=" * len(self.title)]
        completed = [event for event in self.events if event.state != "started"]
        for number, event in enumerate(completed, start=1):
            status = "PASS" if event.state == "success" else "FAIL"
            lines.append(f"{number:>3}. [{status}] {event.step}")
        lines.append("")
        if self.passed:
            lines.append(f"All {len(completed)} steps passed.")
            return "\n".join(lines)
        lines.append(f"{len(self.failures)} of {len(completed)} steps failed:")
        for event in self.failures:
            lines.append(f"  - {event.step}: {fail_reason_of(event.message)}")
        return "\n".join(lines)
