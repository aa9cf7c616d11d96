"""In-process hardware used for host runs and tests."""

from __future__ import annotations

import structlog

from wakeassist.hardware.base import (
    BUZZER_OFF,
    Button,
    BuzzerChannel,
    ContinuityReport,
    Led,
    LedPattern,
)

logger = structlog.get_logger()


class SimulatedHardware:
    """Records every output change instead of driving pins.

    Failures and button presses are injected with :meth:`fail`,
    :meth:`press` and :meth:`request_factory_reset`.
    """

    def __init__(self, *, init_ok: bool = True) -> None:
        self.init_ok = init_ok
        self.initialized = False
        self.levels: dict[BuzzerChannel, int] = {channel: BUZZER_OFF for channel in BuzzerChannel}
        self.leds: dict[Led, LedPattern] = {led: LedPattern.OFF for led in Led}
        self.output_log: list[tuple[BuzzerChannel, int]] = []
        self.continuity_checks = 0
        self.update_count = 0

        self._failed: set[BuzzerChannel] = set()
        self._pending_presses: set[Button] = set()
        self._reset_requested = False

    def begin(self) -> bool:
        self.initialized = self.init_ok
        if self.initialized:
            self.stop_all_outputs()
        logger.info("hardware.simulated.begin", ok=self.initialized)
        return self.initialized

    def set_output(self, channel: BuzzerChannel, level: int) -> None:
        level = max(0, min(255, int(level)))
        if self.levels[channel] == level:
            return
        self.levels[channel] = level
        self.output_log.append((channel, level))
        logger.debug("hardware.simulated.output", channel=channel.value, level=level)

    def stop_all_outputs(self) -> None:
        for channel in BuzzerChannel:
            self.set_output(channel, BUZZER_OFF)

    def check_continuity(self) -> ContinuityReport:
        self.continuity_checks += 1
        return ContinuityReport(
            small_ok=BuzzerChannel.SMALL not in self._failed,
            large_ok=BuzzerChannel.LARGE not in self._failed,
        )

    def set_led(self, led: Led, pattern: LedPattern) -> None:
        self.leds[led] = pattern

    def update(self) -> None:
        self.update_count += 1

    def consume_press(self, button: Button) -> bool:
        if button in self._pending_presses:
            self._pending_presses.discard(button)
            return True
        return False

    def factory_reset_requested(self) -> bool:
        requested = self._reset_requested
        self._reset_requested = False
        return requested

    # Injection helpers

    def fail(self, channel: BuzzerChannel) -> None:
        self._failed.add(channel)

    def repair(self, channel: BuzzerChannel) -> None:
        self._failed.discard(channel)

    def press(self, button: Button) -> None:
        self._pending_presses.add(button)

    def request_factory_reset(self) -> None:
        self._reset_requested = True
