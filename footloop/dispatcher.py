"""
Pedal dispatch: turns pedal events into looper commands.

Two global modes decide what a pedal does:

    Pedal        Play mode                      Record mode
    Track 1-4    select, mute/unmute loop       select, record or overdub loop
    Multiply     -                              multiply selected loop
    Replace      -                              replace selected loop
    Insert       -                              insert selected loop
    Substitute   -                              substitute selected loop
    Undo         -                              undo selected loop
    Clear (UP)   clear all loops                clear selected loop
    Mute (DOWN)  mute all / unmute all          mute selected loop
    Record       release toggles mode           release toggles mode

Per-loop actions are forwarded as down/up pairs matching the pedal, so the
looper sees the same press/release timing as the performer's foot.
"""

from footloop import protocol
from footloop.log import get_logger
from footloop.loops import LoopStatus, Mode
from footloop.pedals import Pedal, PedalEvent, TRACK_PEDALS, pedal_name
from footloop.state import BridgeState

logger = get_logger(__name__)


# Record-mode function pedals acting on the selected loop
SELECTED_LOOP_ACTIONS = {
    Pedal.MULTIPLY: protocol.MULTIPLY,
    Pedal.REPLACE: protocol.REPLACE,
    Pedal.INSERT: protocol.INSERT,
    Pedal.SUBSTITUTE: protocol.SUBSTITUTE,
    Pedal.UNDO: protocol.UNDO,
}


def record_or_overdub(state: LoopStatus, empty: bool) -> str:
    """Pick the primary action for a loop in Record mode.

    A running record or overdub is toggled off with the same action; an
    empty loop starts recording; anything else starts an overdub.
    """
    if state == LoopStatus.RECORDING:
        return protocol.RECORD
    if state == LoopStatus.OVERDUBBING:
        return protocol.OVERDUB
    if empty:
        return protocol.RECORD
    return protocol.OVERDUB


class ModeDispatcher:
    """Maps pedal events to looper commands according to the global mode.

    After every event all loop LEDs are re-rendered, so the panel reflects
    the new mode and assumed command effects before the looper confirms
    them; the next state report corrects any wrong assumption.

    Args:
        state: Shared BridgeState
        looper: LooperClient for outbound commands
    """

    def __init__(self, state: BridgeState, looper: protocol.LooperClient):
        self.state = state
        self.looper = looper

    def handle(self, event: PedalEvent):
        pedal, down = event.pedal, event.down
        logger.debug(f"{pedal_name(pedal)} {'down' if down else 'up'} ({self.state.mode.value} mode)")

        if pedal in TRACK_PEDALS:
            self._handle_track(int(pedal), down)
        elif pedal == Pedal.RECORD:
            self._handle_record(down)
        elif pedal == Pedal.MUTE:
            self._handle_mute(down)
        elif pedal == Pedal.CLEAR:
            self._handle_clear(down)
        elif pedal in SELECTED_LOOP_ACTIONS:
            if self.state.mode == Mode.RECORD:
                self._press_selected(SELECTED_LOOP_ACTIONS[pedal], down)
        else:
            logger.debug(f"Unmapped pedal {pedal}")

        self.state.bank.refresh(self.state.mode)

    def _handle_track(self, loop_index: int, down: bool):
        loop = self.state.bank.get(loop_index)
        if loop is None:
            logger.warning(f"Track pedal for loop {loop_index} ignored: looper has {len(self.state.bank)} loops")
            return

        if down:
            self.state.selected_loop = loop_index
            self.looper.select_loop(loop_index)

        if self.state.mode == Mode.RECORD:
            action = record_or_overdub(loop.state, loop.empty)
        else:
            action = protocol.MUTE
        self.looper.press(loop_index, action, down)
        logger.info(f"Loop {loop_index}: {action} {'down' if down else 'up'}")

    def _handle_record(self, down: bool):
        if not down:
            self.state.mode = Mode.PLAY if self.state.mode == Mode.RECORD else Mode.RECORD
            logger.info(f"Mode → {self.state.mode.value}")

        if self.state.mode == Mode.RECORD:
            self.state.panel.turn_on(Pedal.RECORD)
        else:
            self.state.panel.turn_off(Pedal.RECORD)

    def _handle_mute(self, down: bool):
        if self.state.mode == Mode.RECORD:
            self._press_selected(protocol.MUTE, down)
            return

        if not down:
            return

        if self.state.bank.all_silent():
            # Empty loops do not start on trigger; un-mute them explicitly
            self.looper.hit(protocol.TRIGGER)
            self.looper.hit(protocol.MUTE_OFF)
            logger.info("Trigger all loops")
        else:
            self.looper.hit(protocol.MUTE_ON)
            logger.info("Mute all loops")

    def _handle_clear(self, down: bool):
        if self.state.mode == Mode.RECORD:
            self._press_selected(protocol.UNDO_ALL, down)
        else:
            self.looper.press(protocol.ALL_LOOPS, protocol.UNDO_ALL, down)
            if down:
                logger.info("Clear all loops")

    def _press_selected(self, action: str, down: bool):
        selected = self.state.selected_loop
        if self.state.bank.get(selected) is None:
            logger.warning(f"{action} ignored: no loop selected")
            return
        self.looper.press(selected, action, down)
        logger.info(f"Loop {selected}: {action} {'down' if down else 'up'}")
