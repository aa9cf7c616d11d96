"""Hardware interface consumed by the alarm controller and device runtime."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

BUZZER_OFF = 0
BUZZER_ON = 255


class BuzzerChannel(str, Enum):
    SMALL = "small"
    LARGE = "large"


class Led(str, Enum):
    WIFI = "wifi"
    ALARM = "alarm"
    STATUS = "status"


class LedPattern(str, Enum):
    OFF = "off"
    ON = "on"
    BLINK_SLOW = "blink_slow"
    BLINK_MEDIUM = "blink_medium"
    BLINK_FAST = "blink_fast"


class Button(str, Enum):
    TEST = "test"
    SILENCE = "silence"
    RESET = "reset"


@dataclass(frozen=True)
class ContinuityReport:
    """Result of a drive-then-read-back check on both buzzer circuits."""

    small_ok: bool = True
    large_ok: bool = True

    @property
    def ok(self) -> bool:
        return self.small_ok and self.large_ok

    def channel_ok(self, channel: BuzzerChannel) -> bool:
        if channel is BuzzerChannel.SMALL:
            return self.small_ok
        return self.large_ok

    @property
    def failed(self) -> tuple[BuzzerChannel, ...]:
        return tuple(
            channel for channel in BuzzerChannel if not self.channel_ok(channel)
        )


class HardwareInterface(Protocol):
    """GPIO/PWM side of the appliance.

    Implementations own debouncing and LED blinking; callers only see
    levels, patterns and debounced button presses.
    """

    def begin(self) -> bool:
        """Initialize outputs and inputs. False means the device has no actuators."""
        ...

    def set_output(self, channel: BuzzerChannel, level: int) -> None:
        """Set a buzzer duty cycle, 0..255."""
        ...

    def stop_all_outputs(self) -> None:
        ...

    def check_continuity(self) -> ContinuityReport:
        ...

    def set_led(self, led: Led, pattern: LedPattern) -> None:
        ...

    def update(self) -> None:
        """Sample buttons and advance LED blink patterns."""
        ...

    def consume_press(self, button: Button) -> bool:
        """Return True once per debounced press of ``button``."""
        ...

    def factory_reset_requested(self) -> bool:
        """True once the RESET button has been held for the reset period."""
        ...
