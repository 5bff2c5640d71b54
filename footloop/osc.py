#!/usr/bin/env python3
"""
Footloop OSC Infrastructure - looper transport and shared utilities.

Provides the two logical looper channels (command sender, listen server),
one-shot reply clients for diagnostic requests, port validation and
statistics tracking.

Classes:
    - ReplyUDPClient: Short-lived UDP client with context manager support
    - OscTransport: Command channel + listen channel to the looper
    - MessageStatistics: Thread-safe message counter with formatted output

Functions:
    - osc_url(host, port): Build an osc.udp:// reply URL
    - validate_port(port): Validate port in range 1-65535

Constants:
    - PORT_LOOPER: Looper OSC control port (9951)
    - PORT_LISTEN: Bridge listen port for replies and updates (9000)
"""

import threading
from typing import Callable, Optional, Sequence
from pythonosc import dispatcher
from pythonosc import udp_client
from pythonosc.osc_server import BlockingOSCUDPServer

from footloop.log import get_logger

logger = get_logger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

PORT_LOOPER = 9951     # Looper control port (commands, ping, registrations)
PORT_LISTEN = 9000     # Bridge listen port (/pingack, /heartbeat, /ctrl, diagnostics)

DEFAULT_LOOPER_HOST = "127.0.0.1"
DEFAULT_LISTEN_HOST = "127.0.0.1"

# Port validation range
PORT_MIN = 1
PORT_MAX = 65535


def osc_url(host: str, port: int) -> str:
    """Build the reply URL the looper sends updates to.

    Examples:
        >>> osc_url("127.0.0.1", 9000)
        'osc.udp://127.0.0.1:9000/'
    """
    return f"osc.udp://{host}:{port}/"


def validate_port(port: int) -> None:
    """Validate UDP port number is in valid range.

    Args:
        port: Port number to validate

    Raises:
        ValueError: If port is outside range 1-65535
    """
    if not isinstance(port, int) or port < PORT_MIN or port > PORT_MAX:
        raise ValueError(f"Port must be in range {PORT_MIN}-{PORT_MAX}, got {port}")


# ============================================================================
# REPLY CLIENT
# ============================================================================

class ReplyUDPClient(udp_client.SimpleUDPClient):
    """UDP client for one-shot replies to diagnostic requests.

    Diagnostic requests carry their own reply host/port, so each reply opens
    a client, sends, and closes it again.

    Args:
        address: Target IP address or hostname
        port: Target UDP port
    """

    def close(self):
        """Close the UDP socket."""
        if hasattr(self, '_sock') and self._sock:
            self._sock.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def send_reply(host: str, port: int, path: str, messages: Sequence[list]) -> bool:
    """Send one or more messages to a reply address.

    Args:
        host: Reply host
        port: Reply port
        path: OSC address for every message
        messages: Argument lists, one per message

    Returns:
        True if every message was handed to the socket, False otherwise
    """
    try:
        validate_port(port)
        with ReplyUDPClient(host, port) as client:
            for args in messages:
                client.send_message(path, list(args))
    except (OSError, ValueError) as e:
        logger.warning(f"Could not reply to {host}:{port}{path}: {e}")
        return False
    return True


# ============================================================================
# LOOPER TRANSPORT
# ============================================================================

class OscTransport:
    """Command and listen channels between the bridge and the looper.

    The command channel is a UDP client aimed at the looper control port.
    The listen channel is a blocking OSC server running in its own daemon
    thread; every inbound message is handed to ``on_message(address, args)``
    without interpretation.

    Opening either channel may fail (host unresolvable, port in use); that
    is reported by returning False and retried by the session on a later
    tick.

    Args:
        looper_host: Looper host
        looper_port: Looper control port
        listen_host: Host this bridge binds and advertises in reply URLs
        listen_port: Port this bridge binds
        on_message: Callback for inbound messages (address, args tuple)
    """

    def __init__(self, looper_host: str = DEFAULT_LOOPER_HOST,
                 looper_port: int = PORT_LOOPER,
                 listen_host: str = DEFAULT_LISTEN_HOST,
                 listen_port: int = PORT_LISTEN,
                 on_message: Optional[Callable[[str, tuple], None]] = None):
        validate_port(looper_port)
        validate_port(listen_port)

        self.looper_host = looper_host
        self.looper_port = looper_port
        self.listen_host = listen_host
        self.listen_port = listen_port
        self.on_message = on_message

        self.client: Optional[udp_client.SimpleUDPClient] = None
        self.server: Optional[BlockingOSCUDPServer] = None
        self.server_thread: Optional[threading.Thread] = None

    @property
    def listen_url(self) -> str:
        return osc_url(self.listen_host, self.listen_port)

    @property
    def sender_open(self) -> bool:
        return self.client is not None

    @property
    def receiver_open(self) -> bool:
        return self.server is not None

    def open_sender(self) -> bool:
        """Open the command channel to the looper."""
        try:
            self.client = udp_client.SimpleUDPClient(self.looper_host, self.looper_port)
        except OSError as e:
            logger.warning(f"Could not open OSC send port {self.looper_host}:{self.looper_port}: {e}")
            self.client = None
            return False
        logger.info(f"Connected OSC send port {self.looper_host}:{self.looper_port}")
        return True

    def open_receiver(self) -> bool:
        """Bind the listen channel and start serving it."""
        disp = dispatcher.Dispatcher()
        disp.set_default_handler(self._handle_message)
        try:
            server = BlockingOSCUDPServer((self.listen_host, self.listen_port), disp)
        except OSError as e:
            logger.warning(f"Could not bind OSC listen port {self.listen_port}: {e}")
            return False

        self.server = server
        self.server_thread = threading.Thread(target=server.serve_forever, daemon=True)
        self.server_thread.start()
        logger.info(f"Listening for looper messages on port {self.listen_port}")
        return True

    def _handle_message(self, address: str, *args):
        if self.on_message is not None:
            self.on_message(address, args)

    def send(self, address: str, args: Sequence) -> bool:
        """Send one message on the command channel (fire-and-forget).

        Returns:
            False if the channel is closed or the socket refused the datagram
        """
        if self.client is None:
            logger.debug(f"Dropping {address} {list(args)}: command channel closed")
            return False
        try:
            self.client.send_message(address, list(args))
        except OSError as e:
            logger.warning(f"Failed to send {address}: {e}")
            return False
        logger.debug(f"→ {address} {list(args)}")
        return True

    def close(self):
        """Close both channels."""
        if self.server is not None:
            self.server.shutdown()
            self.server.server_close()
            self.server = None
            self.server_thread = None
        if self.client is not None:
            sock = getattr(self.client, '_sock', None)
            if sock is not None:
                sock.close()
            self.client = None


# ============================================================================
# MESSAGE STATISTICS
# ============================================================================

class MessageStatistics:
    """Thread-safe message statistics tracker with formatted output.

    Typical counters:
        - pedal_events: Decoded pedal presses and releases
        - osc_messages: Inbound looper messages
        - malformed_messages: Inbound messages dropped by validation
        - led_write_failures: Controller LED writes that raised
        - reconnections: Sessions lost to heartbeat silence

    Examples:
        >>> stats = MessageStatistics()
        >>> stats.increment('pedal_events')
        >>> stats.get('pedal_events')
        1
    """

    def __init__(self):
        self.counters = {}
        self.lock = threading.Lock()

    def increment(self, counter_name: str, amount: int = 1) -> None:
        """Increment a counter by specified amount (thread-safe)."""
        with self.lock:
            self.counters[counter_name] = self.counters.get(counter_name, 0) + amount

    def get(self, counter_name: str) -> int:
        """Get current value of a counter, 0 if never incremented."""
        with self.lock:
            return self.counters.get(counter_name, 0)

    def print_stats(self, title: str = "STATISTICS") -> None:
        """Print formatted statistics to console."""
        print("\n" + "=" * 60)
        print(title)
        print("=" * 60)

        with self.lock:
            snapshot = dict(self.counters)

        for name in sorted(snapshot.keys()):
            display_name = name.replace('_', ' ').title()
            print(f"{display_name}: {snapshot[name]}")

        print("=" * 60)
