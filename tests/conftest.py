"""Pytest fixtures for footloop unit tests.

Provides in-memory stand-ins for the two transports so no socket or MIDI
device is touched:
- transport: RecordingTransport, records every outbound looper message
- ports: FakeControllerPorts, records every controller write
- panel, state, looper, dispatcher, session, bridge: wired on top of them
"""

import pytest

from footloop.bridge import Bridge
from footloop.dispatcher import ModeDispatcher
from footloop.leds import LedPanel
from footloop.osc import MessageStatistics
from footloop.protocol import LooperClient, PingAck
from footloop.session import SessionManager
from footloop.state import BridgeState


LISTEN_URL = "osc.udp://127.0.0.1:9000/"


class RecordingTransport:
    """Looper transport that records sends instead of opening sockets.

    Set ``can_open = False`` to simulate an unavailable looper host/port.
    """

    def __init__(self, listen_url: str = LISTEN_URL):
        self.listen_url = listen_url
        self.on_message = None
        self.can_open = True
        self.sent = []
        self.close_count = 0
        self._sender = False
        self._receiver = False

    @property
    def sender_open(self):
        return self._sender

    @property
    def receiver_open(self):
        return self._receiver

    def open_sender(self):
        self._sender = self.can_open
        return self._sender

    def open_receiver(self):
        self._receiver = self.can_open
        return self._receiver

    def send(self, address, args):
        self.sent.append((address, list(args)))
        return True

    def close(self):
        self._sender = False
        self._receiver = False
        self.close_count += 1

    def addresses(self):
        return [address for address, _ in self.sent]

    def clear(self):
        self.sent = []


class FakeControllerPorts:
    """Controller ports that record writes.

    Set ``open_result = True`` to make the next ``ensure_open()`` report a
    freshly opened output.
    """

    def __init__(self):
        self.messages = []
        self.open_result = False
        self.closed = False
        self.fail = False

    def ensure_open(self):
        result = self.open_result
        self.open_result = False
        return result

    def send(self, msg):
        if self.fail:
            raise OSError("device unplugged")
        self.messages.append(msg)
        return True

    def close(self):
        self.closed = True

    def writes(self):
        """(control, value) pairs written so far."""
        return [(msg.control, msg.value) for msg in self.messages]

    def clear(self):
        self.messages = []


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def ports():
    return FakeControllerPorts()


@pytest.fixture
def stats():
    return MessageStatistics()


@pytest.fixture
def panel(ports, stats):
    return LedPanel(output=ports, stats=stats)


@pytest.fixture
def state(panel):
    return BridgeState(panel)


@pytest.fixture
def looper(transport):
    return LooperClient(transport)


@pytest.fixture
def dispatcher(state, looper):
    return ModeDispatcher(state, looper)


@pytest.fixture
def session(state, transport, stats):
    return SessionManager(state, transport, heartbeat_budget=5, stats=stats)


@pytest.fixture
def live_session(session, transport, ports):
    """Session that completed the handshake with a two-loop looper (engine 7)."""
    session.tick()
    session.on_ping_ack(PingAck("osc.udp://looper:9951/", "1.0", 2, 7))
    transport.clear()
    ports.clear()
    return session


@pytest.fixture
def bridge(ports, transport):
    return Bridge(ports=ports, transport=transport)
