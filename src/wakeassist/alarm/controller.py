"""Alarm escalation controller.

Drives one alarm session at a time through TRIGGERED -> WARNING -> ALERT ->
EMERGENCY on a timer. A session ends through :meth:`AlarmController.stop`,
which is also what the safety timeout and the periodic hardware health check
call. Every stop silences the buzzers, records one statistics snapshot and
emits exactly one notification.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import structlog

from wakeassist.alarm.models import (
    AlarmSession,
    AlarmStage,
    AlarmStatistics,
    StopCause,
    next_stage,
    severity,
)
from wakeassist.config import AlarmConfig
from wakeassist.hardware.base import (
    BUZZER_OFF,
    BuzzerChannel,
    ContinuityReport,
    HardwareInterface,
    Led,
    LedPattern,
)

logger = structlog.get_logger()

Notifier = Callable[[str], Awaitable[None]]
Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]

MSG_WARNING_STARTED = "⏰ WARNING stage started - small buzzer pulsing"
MSG_ALERT_STARTED = "🔔 ALERT stage - small buzzer continuous"
MSG_EMERGENCY_STARTED = "🚨 EMERGENCY - LARGE BUZZER ACTIVATED!"
MSG_ERROR_BUZZER_SMALL = "⚠️ Small buzzer circuit issue detected"
MSG_ERROR_BUZZER_LARGE = "❌ CRITICAL: Large buzzer not responding! Check device"
MSG_ERROR_BOTH_BUZZERS = "❌ CRITICAL: No buzzers responding! Device may not work!"
MSG_TEST_START = "🧪 Testing buzzers..."
MSG_TEST_SMALL = "Small buzzer test in 3... 2... 1..."
MSG_TEST_LARGE = "Large buzzer test (LOUD!) in 3... 2... 1..."
MSG_TEST_COMPLETE = "✅ Test complete! Both buzzers working."

_STAGE_LEDS = {
    AlarmStage.TRIGGERED: LedPattern.ON,
    AlarmStage.WARNING: LedPattern.BLINK_SLOW,
    AlarmStage.ALERT: LedPattern.BLINK_MEDIUM,
    AlarmStage.EMERGENCY: LedPattern.BLINK_FAST,
}


class AlarmController:
    def __init__(
        self,
        *,
        config: AlarmConfig,
        hardware: HardwareInterface,
        notifier: Notifier,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.config = config
        self.hardware = hardware
        self.notifier = notifier
        self.clock = clock
        self.sleep = sleep

        self.notifications_enabled = True
        self.health_checks_enabled = True

        self._session = AlarmSession()
        self._statistics: AlarmStatistics | None = None
        self._last_health_check: float | None = None
        self._last_hardware_error: str | None = None
        self._testing = False

    # Queries

    @property
    def stage(self) -> AlarmStage:
        return self._session.stage

    @property
    def session(self) -> AlarmSession:
        return self._session

    @property
    def last_hardware_error(self) -> str | None:
        return self._last_hardware_error

    @property
    def testing(self) -> bool:
        return self._testing

    def is_active(self) -> bool:
        return self._session.stage.is_active

    def get_statistics(self) -> AlarmStatistics | None:
        return self._statistics

    def stage_duration(self, stage: AlarmStage) -> float | None:
        """Seconds a stage lasts before escalating; None for open-ended stages."""
        if stage is AlarmStage.TRIGGERED:
            return self.config.triggered_delay_s
        if stage is AlarmStage.WARNING:
            return self.config.warning_duration_s
        if stage is AlarmStage.ALERT:
            return self.config.alert_duration_s
        return None

    def time_remaining_in_stage(self) -> int:
        if not self.is_active() or self._session.stage_entered_at is None:
            return 0
        duration = self.stage_duration(self._session.stage)
        if duration is None:
            return 0
        elapsed = self.clock() - self._session.stage_entered_at
        return max(0, int(duration - elapsed))

    def session_duration(self) -> int:
        if not self.is_active() or self._session.started_at is None:
            return 0
        return int(self.clock() - self._session.started_at)

    def get_state_string(self) -> str:
        stage = self._session.stage
        if stage is AlarmStage.TRIGGERED:
            return f"Triggered (starting in {self.time_remaining_in_stage()}s)"
        if stage is AlarmStage.WARNING:
            return f"WARNING ({self.time_remaining_in_stage()}s remaining)"
        if stage is AlarmStage.ALERT:
            return f"ALERT ({self.time_remaining_in_stage()}s remaining)"
        if stage is AlarmStage.EMERGENCY:
            return "EMERGENCY (stop to silence)"
        if stage is AlarmStage.STOPPED_BY_USER:
            return "Stopped by user"
        if stage is AlarmStage.STOPPED_BY_TIMEOUT:
            return "Stopped by timeout"
        if stage is AlarmStage.STOPPED_BY_ERROR:
            return "Stopped due to error"
        return "Idle"

    # Entry points

    async def start(self) -> bool:
        if self.is_active():
            logger.info("alarm.start.rejected", reason="busy", stage=self.stage.value)
            return False
        if self._testing:
            logger.info("alarm.start.rejected", reason="test_running")
            return False

        now = self.clock()
        self._session = AlarmSession(started_at=now)
        self._last_health_check = now
        self._last_hardware_error = None
        logger.info("alarm.started")
        self._enter(AlarmStage.TRIGGERED, now)
        await self._notify(
            f"✅ Command received. Starting alarm in {_format_seconds(self.config.triggered_delay_s)}..."
        )
        return True

    async def stop(self, cause: StopCause, detail: str | None = None) -> bool:
        if not self.is_active():
            logger.info("alarm.stop.rejected", reason="not_active", cause=cause.value)
            return False

        now = self.clock()
        self.hardware.stop_all_outputs()

        session = self._session
        session.stop_cause = cause
        session.hardware_fault = cause is StopCause.HARDWARE_FAULT
        started_at = session.started_at if session.started_at is not None else now
        final_stage = cause.stopped_stage

        stats = AlarmStatistics(
            started_at=started_at,
            stopped_at=now,
            duration_s=int(now - started_at),
            stop_cause=cause,
            highest_stage=session.highest_stage,
            final_stage=final_stage,
            hardware_fault=session.hardware_fault,
            hardware_error=detail if session.hardware_fault else None,
            finished_at=datetime.now(UTC),
        )
        self._statistics = stats
        logger.info(
            "alarm.stopped",
            cause=cause.value,
            duration_s=stats.duration_s,
            highest_stage=stats.highest_stage.value,
            hardware_fault=stats.hardware_fault,
        )

        self._enter(final_stage, now)
        self._reset_session()
        await self._notify(self._stop_message(stats, detail))
        return True

    async def update(self) -> None:
        """Advance the session; call on a short fixed cadence."""
        if not self.is_active():
            return

        now = self.clock()
        session = self._session
        since_start = now - (session.started_at if session.started_at is not None else now)
        in_stage = now - (session.stage_entered_at if session.stage_entered_at is not None else now)

        if since_start >= self.config.safety_timeout_s:
            logger.warning("alarm.safety_timeout", elapsed_s=round(since_start, 1))
            await self.stop(StopCause.SAFETY_TIMEOUT)
            return

        duration = self.stage_duration(session.stage)
        if duration is not None and in_stage >= duration:
            following = next_stage(session.stage)
            if following is not None:
                self._enter(following, now)
                await self._notify_stage(following)

        self._drive_outputs(now)

        if not self.health_checks_enabled:
            return
        if self._last_health_check is None or now - self._last_health_check >= self.config.health_check_interval_s:
            self._last_health_check = now
            failure = self._health_failure(self.hardware.check_continuity())
            if failure is not None:
                error, message = failure
                self._last_hardware_error = error
                logger.error("alarm.hardware_fault", error=error, stage=self.stage.value)
                await self.stop(StopCause.HARDWARE_FAULT, detail=message)

    async def test_alarm(self) -> bool:
        """Briefly sound each buzzer in turn. Never touches the session."""
        if self.is_active():
            logger.info("alarm.test.rejected", reason="alarm_active")
            return False
        if self._testing:
            logger.info("alarm.test.rejected", reason="test_running")
            return False

        self._testing = True
        logger.info("alarm.test.started")
        try:
            await self._notify(MSG_TEST_START)
            await self.sleep(1.0)

            await self._notify(MSG_TEST_SMALL)
            await self.sleep(self.config.test_countdown_s)
            self.hardware.set_output(BuzzerChannel.SMALL, self.config.low_level)
            await self.sleep(self.config.test_small_s)
            self.hardware.set_output(BuzzerChannel.SMALL, BUZZER_OFF)
            await self.sleep(2.0)

            await self._notify(MSG_TEST_LARGE)
            await self.sleep(self.config.test_countdown_s)
            self.hardware.set_output(BuzzerChannel.LARGE, self.config.high_level)
            await self.sleep(self.config.test_large_s)
            self.hardware.set_output(BuzzerChannel.LARGE, BUZZER_OFF)
            await self.sleep(1.0)
        finally:
            self.hardware.stop_all_outputs()
            self._testing = False

        report = self.hardware.check_continuity()
        if report.ok:
            await self._notify(MSG_TEST_COMPLETE)
        else:
            failure = self._describe_failure(report)
            await self._notify(f"🧪 Test finished with problems.\n{failure}")
        logger.info("alarm.test.finished", continuity_ok=report.ok)
        return True

    def reset(self) -> None:
        """Silence everything and forget the current session and statistics."""
        logger.info("alarm.reset")
        self.hardware.stop_all_outputs()
        self._reset_session()
        self._statistics = None
        self._last_hardware_error = None

    # Internals

    def _enter(self, stage: AlarmStage, now: float) -> None:
        session = self._session
        if stage is session.stage:
            return
        logger.info("alarm.stage.changed", previous=session.stage.value, stage=stage.value)
        session.stage = stage
        session.stage_entered_at = now
        if severity(stage) > severity(session.highest_stage):
            session.highest_stage = stage

        pattern = _STAGE_LEDS.get(stage)
        if pattern is not None:
            self.hardware.set_led(Led.ALARM, pattern)

    def _reset_session(self) -> None:
        self._session = AlarmSession()
        self._last_health_check = None
        self.hardware.stop_all_outputs()
        self.hardware.set_led(Led.ALARM, LedPattern.OFF)

    async def _notify_stage(self, stage: AlarmStage) -> None:
        if stage is AlarmStage.WARNING:
            await self._notify(MSG_WARNING_STARTED)
        elif stage is AlarmStage.ALERT:
            await self._notify(MSG_ALERT_STARTED)
        elif stage is AlarmStage.EMERGENCY:
            await self._notify(MSG_EMERGENCY_STARTED)

    def _drive_outputs(self, now: float) -> None:
        stage = self._session.stage
        if stage is AlarmStage.WARNING:
            entered = self._session.stage_entered_at or now
            period = self.config.pulse_on_s + self.config.pulse_off_s
            phase = (now - entered) % period
            level = self.config.low_level if phase < self.config.pulse_on_s else BUZZER_OFF
            self.hardware.set_output(BuzzerChannel.SMALL, level)
        elif stage is AlarmStage.ALERT:
            self.hardware.set_output(BuzzerChannel.SMALL, self.config.low_level)
        elif stage is AlarmStage.EMERGENCY:
            self.hardware.set_output(BuzzerChannel.SMALL, self.config.low_level)
            self.hardware.set_output(BuzzerChannel.LARGE, self.config.high_level)

    def _health_failure(self, report: ContinuityReport) -> tuple[str, str] | None:
        stage = self._session.stage
        if stage in (AlarmStage.WARNING, AlarmStage.ALERT) and not report.small_ok:
            if not report.large_ok:
                return "Both buzzer circuits failed", MSG_ERROR_BOTH_BUZZERS
            return "Small buzzer circuit failure", MSG_ERROR_BUZZER_SMALL
        if stage is AlarmStage.EMERGENCY and not report.large_ok:
            if not report.small_ok:
                return "Both buzzer circuits failed", MSG_ERROR_BOTH_BUZZERS
            return "Large buzzer circuit failure", MSG_ERROR_BUZZER_LARGE
        if not report.small_ok and not report.large_ok:
            return "Both buzzer circuits failed", MSG_ERROR_BOTH_BUZZERS
        return None

    @staticmethod
    def _describe_failure(report: ContinuityReport) -> str:
        if not report.small_ok and not report.large_ok:
            return MSG_ERROR_BOTH_BUZZERS
        if not report.small_ok:
            return MSG_ERROR_BUZZER_SMALL
        return MSG_ERROR_BUZZER_LARGE

    def _stop_message(self, stats: AlarmStatistics, detail: str | None) -> str:
        if stats.stop_cause is StopCause.SAFETY_TIMEOUT:
            return (
                f"⏰ Alarm auto-stopped after {_format_seconds(self.config.safety_timeout_s)} "
                f"(safety). Duration: {stats.duration_s}s"
            )
        if stats.stop_cause is StopCause.HARDWARE_FAULT:
            lead = detail or "❌ Hardware fault detected"
            return f"{lead}\nAlarm stopped. Duration: {stats.duration_s}s"
        return f"✅ Alarm stopped. Duration: {stats.duration_s}s. Source: {stats.stop_cause.label}"

    async def _notify(self, text: str) -> None:
        if not self.notifications_enabled:
            return
        try:
            await self.notifier(text)
        except Exception as exc:
            logger.warning("alarm.notify_failed", error=str(exc))


def _format_seconds(seconds: float) -> str:
    whole = int(seconds)
    if whole >= 60 and whole % 60 == 0:
        minutes = whole // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{whole}s"
