"""Mutable bridge state shared by the dispatcher and the session."""

from footloop.leds import LedPanel
from footloop.log import get_logger
from footloop.loops import LoopBank, Mode

logger = get_logger(__name__)

NO_SELECTION = -1


class BridgeState:
    """Everything the event handlers mutate.

    Only the bridge's single event consumer touches this object; producers
    (ticker, MIDI callback, OSC server) only enqueue events.

    Attributes:
        panel: LED panel (owns every LED)
        bank: Loop collection rendering to ``panel``
        mode: Global Play/Record mode
        selected_loop: Selected loop index, -1 for none
    """

    def __init__(self, panel: LedPanel):
        self.panel = panel
        self.bank = LoopBank(panel)
        self.mode = Mode.PLAY
        self.selected_loop = NO_SELECTION

    def select(self, loop: int) -> bool:
        """Record a selection reported by the looper and show it.

        Returns:
            False (selection unchanged) if ``loop`` names no existing loop
        """
        if loop != NO_SELECTION and self.bank.get(loop) is None:
            logger.warning(f"Ignoring selection of loop {loop}: only {len(self.bank)} loops")
            return False
        self.selected_loop = loop
        self.panel.show_selected(loop)
        return True

    def rebuild_loops(self, count: int) -> int:
        """Rebuild the loop collection, dropping a selection that no longer exists."""
        created = self.bank.rebuild(count)
        if self.selected_loop >= created:
            self.selected_loop = NO_SELECTION
        return created
