"""Alarm session models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class AlarmStage(str, Enum):
    IDLE = "idle"
    TRIGGERED = "triggered"
    WARNING = "warning"
    ALERT = "alert"
    EMERGENCY = "emergency"
    STOPPED_BY_USER = "stopped_by_user"
    STOPPED_BY_TIMEOUT = "stopped_by_timeout"
    STOPPED_BY_ERROR = "stopped_by_error"

    @property
    def is_active(self) -> bool:
        return self not in INACTIVE_STAGES


INACTIVE_STAGES = frozenset(
    {
        AlarmStage.IDLE,
        AlarmStage.STOPPED_BY_USER,
        AlarmStage.STOPPED_BY_TIMEOUT,
        AlarmStage.STOPPED_BY_ERROR,
    }
)

# Escalation order; the index doubles as the severity rank.
ESCALATION = (
    AlarmStage.TRIGGERED,
    AlarmStage.WARNING,
    AlarmStage.ALERT,
    AlarmStage.EMERGENCY,
)


def next_stage(stage: AlarmStage) -> AlarmStage | None:
    if stage not in ESCALATION:
        return None
    index = ESCALATION.index(stage)
    if index + 1 >= len(ESCALATION):
        return None
    return ESCALATION[index + 1]


def severity(stage: AlarmStage) -> int:
    if stage in ESCALATION:
        return ESCALATION.index(stage) + 1
    return 0


class StopCause(str, Enum):
    NONE = "none"
    REMOTE_COMMAND = "remote_command"
    PHYSICAL_BUTTON = "physical_button"
    SAFETY_TIMEOUT = "safety_timeout"
    HARDWARE_FAULT = "hardware_fault"
    RAN_TO_COMPLETION = "ran_to_completion"

    @property
    def label(self) -> str:
        return _CAUSE_LABELS[self]

    @property
    def stopped_stage(self) -> AlarmStage:
        if self is StopCause.SAFETY_TIMEOUT:
            return AlarmStage.STOPPED_BY_TIMEOUT
        if self is StopCause.HARDWARE_FAULT:
            return AlarmStage.STOPPED_BY_ERROR
        return AlarmStage.STOPPED_BY_USER


_CAUSE_LABELS = {
    StopCause.NONE: "Unknown",
    StopCause.REMOTE_COMMAND: "Telegram",
    StopCause.PHYSICAL_BUTTON: "Button",
    StopCause.SAFETY_TIMEOUT: "Safety timeout",
    StopCause.HARDWARE_FAULT: "Hardware fault",
    StopCause.RAN_TO_COMPLETION: "Completed",
}


@dataclass
class AlarmSession:
    """Live session state. Timestamps come from the controller's monotonic clock."""

    stage: AlarmStage = AlarmStage.IDLE
    started_at: float | None = None
    stage_entered_at: float | None = None
    highest_stage: AlarmStage = AlarmStage.IDLE
    stop_cause: StopCause = StopCause.NONE
    hardware_fault: bool = False


@dataclass(frozen=True)
class AlarmStatistics:
    """Snapshot of the last completed session."""

    started_at: float
    stopped_at: float
    duration_s: int
    stop_cause: StopCause
    highest_stage: AlarmStage
    final_stage: AlarmStage
    hardware_fault: bool
    hardware_error: str | None
    finished_at: datetime
