"""Hardware interface and the simulated implementation."""

from wakeassist.hardware.base import (
    BUZZER_OFF,
    BUZZER_ON,
    Button,
    BuzzerChannel,
    ContinuityReport,
    HardwareInterface,
    Led,
    LedPattern,
)
from wakeassist.hardware.simulated import SimulatedHardware

__all__ = [
    "BUZZER_OFF",
    "BUZZER_ON",
    "Button",
    "BuzzerChannel",
    "ContinuityReport",
    "HardwareInterface",
    "Led",
    "LedPattern",
    "SimulatedHardware",
]
