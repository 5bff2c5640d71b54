"""
Loop state tracking and the loop state → LED pattern state machine.

Each loop reported by the looper owns the LED with the same index (the track
pedals). Some states also light a function pedal LED for as long as any loop
stays in them ("side LEDs"): Multiplying lights Multiply, Replacing lights
Replace, and so on.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Dict, List, Optional

from footloop.leds import LedPanel, LedPattern
from footloop.log import get_logger
from footloop.pedals import Pedal

logger = get_logger(__name__)


class Mode(Enum):
    """Global pedal interpretation context."""
    PLAY = "play"
    RECORD = "record"


class LoopStatus(IntEnum):
    """Loop state codes as reported by the looper."""
    UNKNOWN = -1
    OFF = 0
    WAIT_START = 1
    RECORDING = 2
    WAIT_STOP = 3
    PLAYING = 4
    OVERDUBBING = 5
    MULTIPLYING = 6
    INSERTING = 7
    REPLACING = 8
    DELAY = 9
    MUTED = 10
    SCRATCHING = 11
    ONE_SHOT = 12
    SUBSTITUTE = 13
    PAUSED = 14
    LAST = 20


# States whose loop LED pattern does not depend on mode
STATE_PATTERNS: Dict[LoopStatus, LedPattern] = {
    LoopStatus.UNKNOWN: LedPattern.DARK,
    LoopStatus.OFF: LedPattern.DARK,
    LoopStatus.LAST: LedPattern.DARK,
    LoopStatus.WAIT_START: LedPattern.FAST_BLINK,
    LoopStatus.WAIT_STOP: LedPattern.FAST_BLINK,
    LoopStatus.RECORDING: LedPattern.LIGHT,
    LoopStatus.OVERDUBBING: LedPattern.LIGHT,
    LoopStatus.DELAY: LedPattern.LIGHT,
    LoopStatus.SCRATCHING: LedPattern.LIGHT,
    LoopStatus.ONE_SHOT: LedPattern.LIGHT,
    LoopStatus.MULTIPLYING: LedPattern.FAST_BLINK,
    LoopStatus.INSERTING: LedPattern.FAST_BLINK,
    LoopStatus.REPLACING: LedPattern.FAST_BLINK,
    LoopStatus.SUBSTITUTE: LedPattern.FAST_BLINK,
    LoopStatus.MUTED: LedPattern.BLINK,
    LoopStatus.PAUSED: LedPattern.BLINK,
}

SIDE_LEDS: Dict[LoopStatus, Pedal] = {
    LoopStatus.MULTIPLYING: Pedal.MULTIPLY,
    LoopStatus.REPLACING: Pedal.REPLACE,
    LoopStatus.INSERTING: Pedal.INSERT,
    LoopStatus.SUBSTITUTE: Pedal.SUBSTITUTE,
}

SILENT_STATES = (LoopStatus.UNKNOWN, LoopStatus.OFF, LoopStatus.MUTED, LoopStatus.PAUSED)


def to_status(code) -> LoopStatus:
    """Convert a reported state code (int or float) to LoopStatus.

    Codes the looper may add later, and non-finite values, map to UNKNOWN.
    """
    try:
        return LoopStatus(int(code))
    except (ValueError, TypeError, OverflowError):
        return LoopStatus.UNKNOWN


def pattern_for(state: LoopStatus, mode: Mode) -> LedPattern:
    """LED pattern for a loop in ``state`` under ``mode``.

    Playing is steady in Play mode and blinks in Record mode, so the
    performer can tell which loops a record pedal would overdub.
    """
    if state == LoopStatus.PLAYING:
        return LedPattern.LIGHT if mode == Mode.PLAY else LedPattern.BLINK
    return STATE_PATTERNS.get(state, LedPattern.DARK)


@dataclass
class Loop:
    """One looper track.

    Attributes:
        index: Loop number assigned by the looper; also its LED index
        state: Last reported (or assumed) state
        empty: True iff state is OFF
    """
    index: int
    state: LoopStatus = LoopStatus.OFF
    empty: bool = True

    @property
    def led(self) -> int:
        return self.index


class LoopBank:
    """The loop collection and its LED rendering.

    Args:
        panel: LedPanel owning the LEDs the loops render to
    """

    def __init__(self, panel: LedPanel):
        self.panel = panel
        self.loops: List[Loop] = []

    def __len__(self):
        return len(self.loops)

    def __iter__(self):
        return iter(self.loops)

    def __getitem__(self, index: int) -> Loop:
        return self.loops[index]

    def get(self, index: int) -> Optional[Loop]:
        if 0 <= index < len(self.loops):
            return self.loops[index]
        return None

    def _clamp(self, count: int) -> int:
        if count > len(self.panel):
            logger.warning(f"Looper reports {count} loops, only {len(self.panel)} LEDs available")
            return len(self.panel)
        return max(0, count)

    def rebuild(self, count: int) -> int:
        """Replace the collection with ``count`` empty loops.

        Returns:
            The number of loops actually created
        """
        count = self._clamp(count)
        for side in sorted({SIDE_LEDS[loop.state] for loop in self.loops if loop.state in SIDE_LEDS}):
            self.panel.turn_off(side)
        for loop in self.loops[count:]:
            self.panel.set_pattern(loop.led, LedPattern.DARK)
            self.panel.turn_off(loop.led)
        self.loops = [Loop(i) for i in range(count)]
        for loop in self.loops:
            self.panel.set_pattern(loop.led, LedPattern.DARK)
        return count

    def extend(self, count: int) -> List[Loop]:
        """Grow the collection to ``count`` loops; never shrinks.

        Returns:
            The newly added loops
        """
        count = self._clamp(count)
        added = [Loop(i) for i in range(len(self.loops), count)]
        self.loops.extend(added)
        return added

    def apply(self, loop: Loop, new_state: LoopStatus, mode: Mode) -> LedPattern:
        """Move ``loop`` to ``new_state`` and render it.

        Sets the loop LED's pattern, lights the side LED of the new state and,
        on an actual state change, switches off the side LED of the outgoing
        state unless another loop still holds it.

        Returns:
            The pattern now shown on the loop's LED
        """
        pattern = pattern_for(new_state, mode)
        self.panel.set_pattern(loop.led, pattern)
        if pattern == LedPattern.DARK:
            self.panel.turn_off(loop.led)
        else:
            self.panel.turn_on(loop.led)

        side = SIDE_LEDS.get(new_state)
        if side is not None:
            self.panel.turn_on(side)

        old_state = loop.state
        if new_state != old_state:
            old_side = SIDE_LEDS.get(old_state)
            if old_side is not None and old_side != side and not self._held_elsewhere(loop, old_state):
                self.panel.turn_off(old_side)

        loop.state = new_state
        loop.empty = new_state == LoopStatus.OFF
        logger.debug(f"Loop {loop.index}: {old_state.name} → {new_state.name} ({pattern.name})")
        return pattern

    def _held_elsewhere(self, loop: Loop, state: LoopStatus) -> bool:
        return any(other is not loop and other.state == state for other in self.loops)

    def refresh(self, mode: Mode):
        """Re-apply every loop's current state (after mode or command changes)."""
        for loop in self.loops:
            self.apply(loop, loop.state, mode)

    def all_silent(self) -> bool:
        """True when no loop is audible (Off, Muted, Paused or Unknown)."""
        return all(loop.state in SILENT_STATES for loop in self.loops)
