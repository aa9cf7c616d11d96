"""Alarm escalation controller and session models."""

from wakeassist.alarm.controller import AlarmController
from wakeassist.alarm.models import AlarmSession, AlarmStage, AlarmStatistics, StopCause

__all__ = [
    "AlarmController",
    "AlarmSession",
    "AlarmStage",
    "AlarmStatistics",
    "StopCause",
]
