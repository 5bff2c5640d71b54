"""
Pedal decoding for the foot controller.

The controller (an FCB1010-style board in I/O mode) reports every pedal as a
Control Change whose controller number carries the phase and whose value
carries the pedal:

    CC 104 [value]  - pedal pressed (down)
    CC 105 [value]  - pedal released (up)

Values 1-9 are the numbered pedals, 0 is the tenth pedal and 10/11 are the
two side pedals (UP/DOWN). LED slots use the same 1-based numbering, with
slot 0 reserved for the tenth pedal.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional


# ============================================================================
# CONSTANTS
# ============================================================================

# Controller numbers carrying the pedal phase
CC_PEDAL_DOWN = 104
CC_PEDAL_UP = 105


class Pedal(IntEnum):
    """Logical pedal identifiers.

    Track pedals 0-3 select loops 0-3; the LED of each pedal shares its id.
    """
    TRACK1 = 0
    TRACK2 = 1
    TRACK3 = 2
    TRACK4 = 3
    RECORD = 4
    MULTIPLY = 5
    REPLACE = 6
    INSERT = 7
    SUBSTITUTE = 8
    UNDO = 9
    CLEAR = 10   # side pedal "UP"
    MUTE = 11    # side pedal "DOWN"


TRACK_PEDALS = (Pedal.TRACK1, Pedal.TRACK2, Pedal.TRACK3, Pedal.TRACK4)


@dataclass(frozen=True)
class PedalEvent:
    """One decoded pedal press or release.

    Attributes:
        pedal: Logical pedal id (a Pedal member, or the raw value for
               pedals this bridge does not know)
        down: True on press, False on release
    """
    pedal: int
    down: bool


# ============================================================================
# DECODING
# ============================================================================

def decode(raw_value: int) -> int:
    """Map a raw controller value to a logical pedal id.

    Args:
        raw_value: Control Change value sent by the controller

    Returns:
        Pedal id. Unmapped values pass through unchanged.

    Examples:
        >>> decode(1)
        <Pedal.TRACK1: 0>
        >>> decode(0)
        <Pedal.UNDO: 9>
        >>> decode(42)
        42
    """
    if 1 <= raw_value <= 9:
        return Pedal(raw_value - 1)
    if raw_value == 0:
        return Pedal.UNDO
    if raw_value == 10:
        return Pedal.CLEAR
    if raw_value == 11:
        return Pedal.MUTE
    return raw_value


def led_slot(pedal_id: int) -> int:
    """Map a pedal/LED id to the controller's hardware LED slot.

    Examples:
        >>> led_slot(Pedal.TRACK1)
        1
        >>> led_slot(Pedal.UNDO)
        0
        >>> led_slot(15)
        15
    """
    if 0 <= pedal_id <= 8:
        return pedal_id + 1
    if pedal_id == 9:
        return 0
    return pedal_id


def decode_event(control: int, value: int) -> Optional[PedalEvent]:
    """Decode a Control Change into a pedal event.

    Args:
        control: Controller number (104 = down, 105 = up)
        value: Controller value (raw pedal number)

    Returns:
        PedalEvent, or None if the controller number is not a pedal phase
    """
    if control == CC_PEDAL_DOWN:
        return PedalEvent(decode(value), True)
    if control == CC_PEDAL_UP:
        return PedalEvent(decode(value), False)
    return None


def pedal_name(pedal_id: int) -> str:
    """Human-readable pedal name for log lines."""
    try:
        return Pedal(pedal_id).name.lower()
    except ValueError:
        return f"pedal {pedal_id}"
