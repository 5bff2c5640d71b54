"""
Looper OSC protocol: outbound commands and inbound message decoding.

OUTBOUND (to the looper control port):
    /sl/{loop}/down [action]        action press (loop -1 = all loops)
    /sl/{loop}/up [action]          action release
    /sl/-1/hit [action]             one-shot all-loop action
    /set [selected_loop_num, n]     select loop n
    /get [selected_loop_num, url, /ctrl]
    /sl/{loop}/get [state, url, /ctrl]
    /sl/{loop}/register_auto_update [state, 100, url, /ctrl]
    /sl/{loop}/unregister_auto_update [state, 100, url, /ctrl]
    /register_update [selected_loop_num, url, /ctrl]
    /unregister_update [selected_loop_num, url, /ctrl]
    /ping [url, /pingack]

INBOUND (on the bridge listen port):
    /pingack [url, version, loop_count, engine_id]
    /heartbeat [url, version, loop_count, engine_id]
    /ctrl [loop, control, value]
        loop -2: global update, control "selected_loop_num"
        loop -1: reserved, ignored
        loop >= 0: per-loop update, control "state"
    /{prefix}/ping [host, port, path]
    /{prefix}/leds [host, port, path]
    /{prefix}/display [host, port, path]
    /{prefix}/register_auto_update [host, port, (path)]
    /{prefix}/unregister_auto_update [host, port]

Inbound messages are decoded once into the dataclasses below; handlers then
work on typed payloads only.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from footloop.log import get_logger
from footloop.loops import LoopStatus, to_status

logger = get_logger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

ALL_LOOPS = -1
GLOBAL_CONTROL = -2

CTRL_PATH = "/ctrl"
PINGACK_PATH = "/pingack"
HEARTBEAT_PATH = "/heartbeat"

AUTO_UPDATE_INTERVAL_MS = 100

DEFAULT_PREFIX = "footloop"

DIAGNOSTIC_KINDS = ("ping", "leds", "display", "register_auto_update", "unregister_auto_update")

# Per-loop actions
RECORD = "record"
OVERDUB = "overdub"
MULTIPLY = "multiply"
REPLACE = "replace"
INSERT = "insert"
SUBSTITUTE = "substitute"
MUTE = "mute"
UNDO = "undo"

# All-loop actions
UNDO_ALL = "undo_all"
MUTE_ON = "mute_on"
MUTE_OFF = "mute_off"
TRIGGER = "trigger"


# ============================================================================
# OUTBOUND
# ============================================================================

class LooperClient:
    """Builds looper commands and hands them to the transport.

    Every command is fire-and-forget: the looper reports the outcome through
    state updates, never through a reply to the command itself.

    Args:
        transport: Object with ``send(address, args)`` and ``listen_url``
    """

    def __init__(self, transport):
        self.transport = transport

    def _send(self, address: str, *args) -> bool:
        return self.transport.send(address, list(args))

    def press(self, loop: int, action: str, down: bool) -> bool:
        """Send ``action`` press (down) or release (up) to a loop."""
        phase = "down" if down else "up"
        return self._send(f"/sl/{loop}/{phase}", action)

    def hit(self, action: str, loop: int = ALL_LOOPS) -> bool:
        return self._send(f"/sl/{loop}/hit", action)

    def select_loop(self, loop: int) -> bool:
        return self._send("/set", "selected_loop_num", int(loop))

    def request_state(self, loop: int) -> bool:
        return self._send(f"/sl/{loop}/get", "state", self.transport.listen_url, CTRL_PATH)

    def request_selected_loop(self) -> bool:
        return self._send("/get", "selected_loop_num", self.transport.listen_url, CTRL_PATH)

    def register_auto_update(self, loop: int, unregister: bool = False) -> bool:
        verb = "unregister_auto_update" if unregister else "register_auto_update"
        return self._send(f"/sl/{loop}/{verb}", "state", AUTO_UPDATE_INTERVAL_MS,
                          self.transport.listen_url, CTRL_PATH)

    def register_global_update(self, unregister: bool = False) -> bool:
        verb = "unregister_update" if unregister else "register_update"
        return self._send(f"/{verb}", "selected_loop_num", self.transport.listen_url, CTRL_PATH)

    def ping(self) -> bool:
        return self._send("/ping", self.transport.listen_url, PINGACK_PATH)


# ============================================================================
# INBOUND
# ============================================================================

@dataclass(frozen=True)
class LooperInfo:
    url: str
    version: str
    loop_count: int
    engine_id: int


@dataclass(frozen=True)
class PingAck(LooperInfo):
    pass


@dataclass(frozen=True)
class Heartbeat(LooperInfo):
    pass


@dataclass(frozen=True)
class SelectionUpdate:
    loop: int


@dataclass(frozen=True)
class StateUpdate:
    loop: int
    state: LoopStatus


@dataclass(frozen=True)
class DiagnosticRequest:
    kind: str
    host: str
    port: int
    path: Optional[str] = None


@dataclass(frozen=True)
class Malformed:
    address: str
    reason: str


Inbound = Union[PingAck, Heartbeat, SelectionUpdate, StateUpdate, DiagnosticRequest, Malformed]


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    """int32, or a finite float (NaN and infinities are rejected)."""
    return _is_int(value) or (isinstance(value, float) and math.isfinite(value))


def _decode_info(address: str, args: Sequence, cls):
    if len(args) < 4:
        return Malformed(address, f"expects 4 arguments, got {len(args)}")
    url, version, loop_count, engine_id = args[:4]
    if not isinstance(url, str) or not isinstance(version, str):
        return Malformed(address, "url and version must be strings")
    if not _is_int(loop_count) or not _is_int(engine_id):
        return Malformed(address, "loop count and engine id must be int32")
    if len(args) > 4:
        logger.debug(f"Ignoring {len(args) - 4} extra arguments on {address}")
    return cls(url, version, loop_count, engine_id)


def _decode_ctrl(address: str, args: Sequence):
    if len(args) < 1 or not _is_int(args[0]):
        return Malformed(address, "loop index must be int32")
    loop = args[0]

    if loop == GLOBAL_CONTROL:
        if len(args) < 3 or args[1] != "selected_loop_num":
            return None
        if not _is_number(args[2]):
            return Malformed(address, "selected_loop_num value must be a finite number")
        return SelectionUpdate(int(args[2]))

    if loop < 0:
        return None

    if len(args) < 3 or args[1] != "state":
        return None
    if not _is_number(args[2]):
        return Malformed(address, "state value must be a finite number")
    return StateUpdate(loop, to_status(args[2]))


def _decode_diagnostic(address: str, kind: str, args: Sequence):
    if len(args) < 2 or not isinstance(args[0], str) or not _is_int(args[1]):
        return Malformed(address, "expects reply host (string) and port (int32)")
    host, port = args[0], args[1]
    path = None
    if len(args) >= 3:
        if not isinstance(args[2], str):
            return Malformed(address, "reply path must be a string")
        path = args[2]
    if path is None and kind in ("ping", "leds", "display"):
        return Malformed(address, "expects a reply path")
    return DiagnosticRequest(kind, host, port, path)


def decode(address: str, args: Sequence, prefix: str = DEFAULT_PREFIX) -> Optional[Inbound]:
    """Decode one inbound OSC message.

    Args:
        address: OSC address
        args: Decoded OSC arguments
        prefix: Address prefix for diagnostic requests

    Returns:
        A typed message, Malformed if the address is known but the arguments
        are not, or None for addresses (and /ctrl controls) this bridge does
        not handle

    Examples:
        >>> decode("/ctrl", [0, "state", 4.0])
        StateUpdate(loop=0, state=<LoopStatus.PLAYING: 4>)
        >>> decode("/ctrl", [-1, "state", 4.0]) is None
        True
    """
    if address == PINGACK_PATH:
        return _decode_info(address, args, PingAck)
    if address == HEARTBEAT_PATH:
        return _decode_info(address, args, Heartbeat)
    if address == CTRL_PATH:
        return _decode_ctrl(address, args)

    diag_root = f"/{prefix}/"
    if address.startswith(diag_root):
        kind = address[len(diag_root):]
        if kind in DIAGNOSTIC_KINDS:
            return _decode_diagnostic(address, kind, args)

    return None
