"""core/lpd8/inputs.py — Raw LPD8 MIDI bytes → semantic input events.

The LPD8 emits two message shapes we care about:

    Program change  [0xCn, pad]            pad pressed in PC mode
    Control change  [0xBn, control, value] knob turned, or pad in CC mode

Raw code → :class:`Input` is many-to-one.  The pads report ``0..7`` in
program-change mode and ``12..19`` in control-change mode; both map to the
same eight pads.  Knobs report ``70..77``.

Anything else (notes, sysex, clock, short/long frames) decodes to ``None``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# MIDI constants
# ---------------------------------------------------------------------------

_STATUS_MASK = 0xF0
_PROGRAM_CHANGE = 0xC0
_CONTROL_CHANGE = 0xB0
_MAX_DATA_VALUE = 127

_PC_PAD_CODES = range(0, 8)
_CC_PAD_CODES = range(12, 20)
_KNOB_CODES = range(70, 78)


class UnknownInputError(ValueError):
    """Raised when a raw control number does not belong to any LPD8 control."""

    def __init__(self, code: int) -> None:
        super().__init__(f"Unknown LPD8 input with id {code}")
        self.code = code


class Input(str, Enum):
    """Physical LPD8 controls.  Values are the names used in mapping files."""

    PAD1 = "pad1"
    PAD2 = "pad2"
    PAD3 = "pad3"
    PAD4 = "pad4"
    PAD5 = "pad5"
    PAD6 = "pad6"
    PAD7 = "pad7"
    PAD8 = "pad8"
    KNOB1 = "knob1"
    KNOB2 = "knob2"
    KNOB3 = "knob3"
    KNOB4 = "knob4"
    KNOB5 = "knob5"
    KNOB6 = "knob6"
    KNOB7 = "knob7"
    KNOB8 = "knob8"

    @classmethod
    def from_code(cls, code: int) -> Input:
        """Resolve a raw control number to its :class:`Input`.

        Raises:
            UnknownInputError: If ``code`` is outside the pad and knob ranges.
        """
        try:
            return _CODE_TO_INPUT[code]
        except KeyError:
            raise UnknownInputError(code) from None


_PADS = [Input(f"pad{n}") for n in range(1, 9)]
_KNOBS = [Input(f"knob{n}") for n in range(1, 9)]

_CODE_TO_INPUT: dict[int, Input] = {
    **dict(zip(_PC_PAD_CODES, _PADS)),
    **dict(zip(_CC_PAD_CODES, _PADS)),
    **dict(zip(_KNOB_CODES, _KNOBS)),
}


# ---------------------------------------------------------------------------
# Decoded messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProgramChange:
    """A pad pressed while the LPD8 is in program-change mode."""

    input: Input


@dataclass(frozen=True)
class ControlChange:
    """A knob turned, or a pad hit in control-change mode."""

    input: Input
    value: int  # 0-127


Lpd8Message = ProgramChange | ControlChange


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def normalize(raw: Sequence[int]) -> Lpd8Message | None:
    """Decode one raw MIDI message into an :data:`Lpd8Message`.

    Args:
        raw: Message bytes as delivered by the MIDI backend.

    Returns:
        The decoded message, or ``None`` for any other message shape and for
        control numbers that are not LPD8 controls.
    """
    if not raw:
        return None

    status = raw[0] & _STATUS_MASK
    if status == _PROGRAM_CHANGE and len(raw) == 2:
        return _program_change(raw[1])
    if status == _CONTROL_CHANGE and len(raw) == 3:
        return _control_change(raw[1], raw[2])
    return None


def _program_change(code: int) -> ProgramChange | None:
    try:
        return ProgramChange(Input.from_code(code))
    except UnknownInputError as exc:
        logger.warning("Unable to detect program change input: %s", exc)
        return None


def _control_change(code: int, value: int) -> ControlChange | None:
    if not 0 <= value <= _MAX_DATA_VALUE:
        logger.debug("Dropping control change %d with out-of-range value %d", code, value)
        return None
    try:
        return ControlChange(Input.from_code(code), value)
    except UnknownInputError as exc:
        logger.warning("Unable to detect control change input: %s", exc)
        return None
