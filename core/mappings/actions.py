"""core/mappings/actions.py — The OBS operations a control can trigger.

``Action`` is a closed union of frozen dataclasses, one per operation.  The
dispatcher matches on the concrete class; adding a new action means adding
a case there as well.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

_MIDI_MAX = 127
_PERCENT = 100


class PassValue(Enum):
    """Marker volume: use the triggering control value (0-127) as the level."""

    PASS = "pass"

    def __str__(self) -> str:
        return "input value"


PASS = PassValue.PASS

Volume = PassValue | int
"""Either :data:`PASS` or a fixed percentage (0-100)."""


def volume_ratio(volume: Volume, triggering_value: int) -> float:
    """Convert a configured volume to the 0.0–1.0 multiplier sent to OBS.

    Args:
        volume: :data:`PASS` or a fixed percent.
        triggering_value: Raw control value (0-127) of the event.

    Returns:
        ``triggering_value / 127`` in pass mode, ``volume / 100`` otherwise.
    """
    if volume is PASS:
        return triggering_value / _MIDI_MAX
    return volume / _PERCENT


@dataclass(frozen=True)
class SetScene:
    name: str

    def __str__(self) -> str:
        return f"set current scene to {self.name}"


@dataclass(frozen=True)
class SetVolume:
    name: str
    value: Volume

    def __str__(self) -> str:
        return f"set volume of {self.name} to {self.value}"


@dataclass(frozen=True)
class ToggleInputMute:
    name: str

    def __str__(self) -> str:
        return f"toggle input {self.name}"


@dataclass(frozen=True)
class EnableSceneItem:
    name: str

    def __str__(self) -> str:
        return f"enable scene item {self.name}"


@dataclass(frozen=True)
class DisableSceneItem:
    name: str

    def __str__(self) -> str:
        return f"disable scene item {self.name}"


@dataclass(frozen=True)
class ToggleSceneItem:
    name: str

    def __str__(self) -> str:
        return f"toggle scene item {self.name}"


Action = (
    SetScene | SetVolume | ToggleInputMute | EnableSceneItem | DisableSceneItem | ToggleSceneItem
)
