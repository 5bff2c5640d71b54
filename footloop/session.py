"""
Looper session: connection, handshake, heartbeat liveness and loop discovery.

State machine (advanced by ``tick()`` and inbound messages):

    DISCONNECTED ──tick──▶ CONNECTING ──channels open──▶ AWAITING_PING_ACK
         ▲                     │ (retry each tick)              │ /pingack
         │                     ▼                                ▼
         └────── silence > budget ◀──────────────────────── LIVE

The heartbeat countdown starts at the budget and loses one per tick. Any
/pingack, /heartbeat or /ctrl traffic refills it. Once it drops below
``-budget`` the session is considered lost: both channels are closed and the
next tick starts over with a fresh ping.

The looper's engine id identifies one looper process. A heartbeat carrying
a new id means the looper restarted and forgot our registrations, so the
loop collection and every registration are rebuilt.
"""

from enum import Enum
from typing import Optional

from footloop import osc
from footloop.log import get_logger
from footloop.protocol import Heartbeat, LooperClient, PingAck, SelectionUpdate, StateUpdate
from footloop.state import BridgeState

logger = get_logger(__name__)


HEARTBEAT_BUDGET = 5


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_PING_ACK = "awaiting_ping_ack"
    LIVE = "live"


class SessionManager:
    """Owns the looper connection lifecycle.

    Args:
        state: Shared BridgeState (loops are rebuilt here)
        transport: OscTransport (or any object with open_sender/open_receiver,
                   sender_open/receiver_open, close, send, listen_url)
        heartbeat_budget: Ticks of silence tolerated before reconnecting
        stats: Optional MessageStatistics

    Attributes:
        status: Current SessionState
        heartbeat: Heartbeat countdown in ticks
        engine_id: Engine id of the looper process we registered with
        looper_url: URL reported by the looper
        looper_version: Version reported by the looper
    """

    def __init__(self, state: BridgeState, transport, heartbeat_budget: int = HEARTBEAT_BUDGET,
                 stats: Optional[osc.MessageStatistics] = None):
        self.state = state
        self.transport = transport
        self.looper = LooperClient(transport)
        self.heartbeat_budget = heartbeat_budget
        self.stats = stats

        self.status = SessionState.DISCONNECTED
        self.heartbeat = heartbeat_budget
        self.engine_id: Optional[int] = None
        self.looper_url = ""
        self.looper_version = ""

    @property
    def live(self) -> bool:
        return self.status == SessionState.LIVE

    # ------------------------------------------------------------------
    # Periodic tick
    # ------------------------------------------------------------------

    def tick(self):
        if self.status in (SessionState.DISCONNECTED, SessionState.CONNECTING):
            self._connect()
            return

        self.heartbeat -= 1
        if self.heartbeat < -self.heartbeat_budget:
            self._lose_session()
            return

        if self.status == SessionState.LIVE:
            self.state.panel.heartbeat()

    def _connect(self):
        self.status = SessionState.CONNECTING

        if not self.transport.sender_open:
            self.transport.open_sender()
        if not self.transport.receiver_open:
            self.transport.open_receiver()

        if not (self.transport.sender_open and self.transport.receiver_open):
            return

        self.status = SessionState.AWAITING_PING_ACK
        self.heartbeat = self.heartbeat_budget
        self.looper.ping()
        logger.info(f"Pinging looper, replies to {self.transport.listen_url}")

    def _lose_session(self):
        logger.warning(f"No looper traffic for {self.heartbeat_budget * 2} ticks, reconnecting")
        if self.stats is not None:
            self.stats.increment('reconnections')
        self.transport.close()
        self.status = SessionState.DISCONNECTED
        self.heartbeat = self.heartbeat_budget

    def note_traffic(self):
        """Refill the heartbeat countdown (we just heard from the looper)."""
        self.heartbeat = self.heartbeat_budget

    # ------------------------------------------------------------------
    # Looper messages
    # ------------------------------------------------------------------

    def on_ping_ack(self, msg: PingAck):
        self.looper_url = msg.url
        self.looper_version = msg.version
        self.engine_id = msg.engine_id
        count = self._rebuild(msg.loop_count)
        self.status = SessionState.LIVE
        logger.info(f"Looper {msg.url} v{msg.version} live ({count} loops, engine {msg.engine_id})")

    def on_heartbeat(self, msg: Heartbeat):
        self.looper_url = msg.url
        self.looper_version = msg.version

        if msg.engine_id != self.engine_id:
            logger.info(f"Looper engine changed ({self.engine_id} → {msg.engine_id}), re-registering")
            self.engine_id = msg.engine_id
            self._rebuild(msg.loop_count)
        elif msg.loop_count > len(self.state.bank):
            added = self.state.bank.extend(msg.loop_count)
            for loop in added:
                self.looper.register_auto_update(loop.index)
                self.looper.request_state(loop.index)
            self.looper.request_selected_loop()
            self.state.bank.refresh(self.state.mode)
            logger.info(f"Looper now has {len(self.state.bank)} loops")
        elif msg.loop_count < len(self.state.bank):
            logger.debug(f"Heartbeat reports {msg.loop_count} loops, keeping {len(self.state.bank)}")

        if self.transport.sender_open and self.transport.receiver_open:
            self.status = SessionState.LIVE

    def on_state_update(self, msg: StateUpdate) -> bool:
        loop = self.state.bank.get(msg.loop)
        if loop is None:
            logger.warning(f"State update for unknown loop {msg.loop} dropped")
            if self.stats is not None:
                self.stats.increment('malformed_messages')
            return False
        self.state.bank.apply(loop, msg.state, self.state.mode)
        return True

    def on_selection(self, msg: SelectionUpdate) -> bool:
        return self.state.select(msg.loop)

    def _rebuild(self, count: int) -> int:
        """Rebuild the loop collection and every registration."""
        created = self.state.rebuild_loops(count)
        for index in range(created):
            self.looper.register_auto_update(index)
            self.looper.request_state(index)
        self.looper.request_selected_loop()
        self.looper.register_global_update()
        self.state.bank.refresh(self.state.mode)
        return created

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self):
        """Unregister from the looper and close both channels."""
        if self.status == SessionState.LIVE:
            for loop in self.state.bank:
                self.looper.register_auto_update(loop.index, unregister=True)
            self.looper.register_global_update(unregister=True)
        self.transport.close()
        self.status = SessionState.DISCONNECTED
