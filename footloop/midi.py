"""
Foot controller MIDI ports (mido, python-rtmidi backend).

The controller is found by substring match against the port names mido
reports, so "FCB1010" matches "FCB1010:FCB1010 MIDI 1 20:0". Ports are
(re)opened from the bridge tick: a controller plugged in after startup is
picked up, one that disappears is closed and polled for again.
"""

from typing import Callable, Iterable, List, Optional

import mido

from footloop.log import get_logger

logger = get_logger(__name__)


def find_port(pattern: str, names: Iterable[str]) -> Optional[str]:
    """First port name containing ``pattern``, or None.

    Examples:
        >>> find_port("FCB", ["Midi Through:0", "FCB1010:FCB1010 MIDI 1 20:0"])
        'FCB1010:FCB1010 MIDI 1 20:0'
    """
    for name in names:
        if pattern in name:
            return name
    return None


def list_ports() -> List[str]:
    """Human-readable listing of every MIDI input and output port."""
    lines = ["MIDI input ports:"]
    lines += [f"  - {name}" for name in mido.get_input_names()] or ["  (none)"]
    lines.append("MIDI output ports:")
    lines += [f"  - {name}" for name in mido.get_output_names()] or ["  (none)"]
    return lines


class ControllerPorts:
    """Input and output port of the foot controller.

    Args:
        input_pattern: Substring identifying the controller input port
        output_pattern: Substring identifying the controller output port
        on_message: Called with every mido message from the controller
                    (runs on the MIDI backend's thread)

    Attributes:
        input: Open mido input port, or None
        output: Open mido output port, or None
    """

    def __init__(self, input_pattern: str, output_pattern: str,
                 on_message: Callable[[mido.Message], None]):
        self.input_pattern = input_pattern
        self.output_pattern = output_pattern
        self.on_message = on_message
        self.input = None
        self.output = None
        self._announced_missing = False

    @property
    def input_open(self) -> bool:
        return self.input is not None

    @property
    def output_open(self) -> bool:
        return self.output is not None

    def ensure_open(self) -> bool:
        """Open missing ports and close vanished ones.

        Returns:
            True if the output port was (re)opened by this call; the LED
            panel must then be re-rendered from scratch
        """
        try:
            input_names = mido.get_input_names()
            output_names = mido.get_output_names()
        except (OSError, IOError) as e:
            logger.warning(f"Could not enumerate MIDI ports: {e}")
            return False

        if self.input is not None and self.input.name not in input_names:
            logger.warning(f"Controller input {self.input.name} disappeared")
            self._close_input()
        if self.output is not None and self.output.name not in output_names:
            logger.warning(f"Controller output {self.output.name} disappeared")
            self._close_output()

        if self.input is None:
            name = find_port(self.input_pattern, input_names)
            if name is not None:
                try:
                    self.input = mido.open_input(name, callback=self._receive)
                    logger.info(f"Opened controller input: {name}")
                except (OSError, IOError) as e:
                    logger.warning(f"Could not open MIDI input {name}: {e}")

        opened_output = False
        if self.output is None:
            name = find_port(self.output_pattern, output_names)
            if name is not None:
                try:
                    self.output = mido.open_output(name)
                    opened_output = True
                    logger.info(f"Opened controller output: {name}")
                except (OSError, IOError) as e:
                    logger.warning(f"Could not open MIDI output {name}: {e}")

        missing = self.input is None or self.output is None
        if missing and not self._announced_missing:
            logger.warning(f"Controller not found (input '{self.input_pattern}', "
                           f"output '{self.output_pattern}'), polling")
        self._announced_missing = missing
        return opened_output

    def _receive(self, msg: mido.Message):
        logger.debug(f"MIDI in: {msg}")
        self.on_message(msg)

    def send(self, msg: mido.Message) -> bool:
        """Write one message to the controller.

        Returns:
            False if the output is not open. Backend errors propagate to the
            caller, which owns failure accounting.
        """
        if self.output is None:
            return False
        logger.debug(f"MIDI out: {msg}")
        self.output.send(msg)
        return True

    def _close_input(self):
        try:
            self.input.close()
        except (OSError, IOError) as e:
            logger.debug(f"Closing MIDI input: {e}")
        self.input = None

    def _close_output(self):
        try:
            self.output.close()
        except (OSError, IOError) as e:
            logger.debug(f"Closing MIDI output: {e}")
        self.output = None

    def close(self):
        if self.input is not None:
            self._close_input()
        if self.output is not None:
            self._close_output()
