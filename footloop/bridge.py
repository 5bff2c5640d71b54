#!/usr/bin/env python3
"""
Footloop Bridge - foot controller ⇄ looper control bridge.

Translates pedal presses on a MIDI foot controller into looper OSC commands
and mirrors looper state back onto the controller LEDs.

ARCHITECTURE:
    ticker thread ──────┐
    MIDI callback ──────┼──▶ queue.SimpleQueue ──▶ Bridge.run (single consumer)
    OSC server thread ──┘                              │
                                                       ├─ LedPanel (blink timers, LED writes)
                                                       ├─ SessionManager (connect, heartbeat)
                                                       └─ ModeDispatcher (pedals → commands)

Producers never touch bridge state; they only enqueue events. Every handler
runs to completion on the consumer thread.

DIAGNOSTICS (on the listen port, prefix configurable):
    /footloop/ping [host, port, path]     → path [url, version, led count, pid]
    /footloop/leds [host, port, path]     → path [index, on, timer, pattern] per LED
    /footloop/display [host, port, path]  → path [selected loop]
    /footloop/register_auto_update [host, port, (path)]  mirror LEDs to host:port
    /footloop/unregister_auto_update [host, port]        stop mirroring

Usage:
    python3 -m footloop
    python3 -m footloop --midi-in FCB --looper-port 9951
    python3 -m footloop --list
"""

import argparse
import os
import queue
import signal
import sys
import threading
from dataclasses import dataclass
from typing import Optional

import yaml

from footloop import __version__, osc, protocol
from footloop.config import DEFAULT_CONFIG_PATH, load_config, merge_defaults, validate_config
from footloop.dispatcher import ModeDispatcher
from footloop.leds import DEFAULT_MONITOR_PATH, LedPanel
from footloop.log import get_logger, set_level
from footloop.loops import Mode
from footloop.midi import ControllerPorts, list_ports
from footloop.pedals import Pedal, decode_event
from footloop.session import SessionManager
from footloop.state import NO_SELECTION, BridgeState

logger = get_logger(__name__)


# ============================================================================
# EVENTS
# ============================================================================

@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class ControllerMessage:
    control: int
    value: int


@dataclass(frozen=True)
class LooperMessage:
    address: str
    args: tuple


_STOP = object()

# Addresses that prove the looper is alive
LOOPER_TRAFFIC = (protocol.PINGACK_PATH, protocol.HEARTBEAT_PATH, protocol.CTRL_PATH)


# ============================================================================
# BRIDGE
# ============================================================================

class Bridge:
    """Composition root: owns the state and the single event consumer.

    Args:
        config: Merged configuration (see footloop.config)
        ports: Controller ports (default: ControllerPorts from config)
        transport: Looper transport (default: OscTransport from config)

    Attributes:
        events: Queue fed by the ticker, MIDI and OSC producers
        stats: Message statistics, printed at shutdown
    """

    def __init__(self, config: Optional[dict] = None, ports=None, transport=None):
        config = merge_defaults(config)
        validate_config(config)
        self.config = config

        self.events: "queue.SimpleQueue" = queue.SimpleQueue()
        self.stats = osc.MessageStatistics()
        self.prefix = config['osc']['prefix']
        self.tick_seconds = config['timing']['tick_ms'] / 1000.0

        if ports is None:
            ports = ControllerPorts(config['midi']['input'], config['midi']['output'],
                                    self.enqueue_midi)
        self.ports = ports

        if transport is None:
            transport = osc.OscTransport(
                looper_host=config['osc']['looper_host'],
                looper_port=config['osc']['looper_port'],
                listen_host=config['osc']['listen_host'],
                listen_port=config['osc']['listen_port'],
            )
        transport.on_message = self.enqueue_osc
        self.transport = transport

        self.panel = LedPanel(output=self.ports, stats=self.stats)
        self.state = BridgeState(self.panel)
        self.session = SessionManager(self.state, self.transport,
                                      heartbeat_budget=config['timing']['heartbeat_budget'],
                                      stats=self.stats)
        self.dispatcher = ModeDispatcher(self.state, self.session.looper)

        self.handlers = {
            protocol.PingAck: self.session.on_ping_ack,
            protocol.Heartbeat: self.session.on_heartbeat,
            protocol.StateUpdate: self.session.on_state_update,
            protocol.SelectionUpdate: self.session.on_selection,
            protocol.DiagnosticRequest: self.handle_diagnostic,
            protocol.Malformed: self.handle_malformed,
        }
        self.diagnostics = {
            "ping": self._diag_ping,
            "leds": self._diag_leds,
            "display": self._diag_display,
            "register_auto_update": self._diag_register,
            "unregister_auto_update": self._diag_unregister,
        }

        self._stop = threading.Event()
        self._ticker: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Producers (any thread)
    # ------------------------------------------------------------------

    def enqueue_midi(self, msg):
        if msg.type == 'control_change':
            self.events.put(ControllerMessage(msg.control, msg.value))

    def enqueue_osc(self, address: str, args):
        self.events.put(LooperMessage(address, tuple(args)))

    def _tick_loop(self):
        while not self._stop.wait(self.tick_seconds):
            self.events.put(Tick())

    # ------------------------------------------------------------------
    # Consumer
    # ------------------------------------------------------------------

    def handle(self, event):
        """Handle one event to completion."""
        if isinstance(event, Tick):
            self.handle_tick()
        elif isinstance(event, ControllerMessage):
            self.handle_controller(event)
        elif isinstance(event, LooperMessage):
            self.handle_looper(event)
        else:
            logger.warning(f"Unknown event {event!r}")

    def handle_tick(self):
        if self.ports.ensure_open():
            self.render_panel()
        self.panel.tick()
        self.session.tick()

    def handle_controller(self, event: ControllerMessage):
        pedal_event = decode_event(event.control, event.value)
        if pedal_event is None:
            logger.debug(f"Ignoring CC {event.control} {event.value}")
            return
        self.stats.increment('pedal_events')
        self.dispatcher.handle(pedal_event)

    def handle_looper(self, event: LooperMessage):
        self.stats.increment('osc_messages')
        logger.debug(f"← {event.address} {list(event.args)}")

        msg = protocol.decode(event.address, event.args, self.prefix)
        if event.address in LOOPER_TRAFFIC and not isinstance(msg, protocol.Malformed):
            self.session.note_traffic()

        if msg is None:
            logger.debug(f"Ignoring {event.address}")
            return
        self.handlers[type(msg)](msg)

    def handle_malformed(self, msg: protocol.Malformed):
        logger.warning(f"Dropped malformed {msg.address}: {msg.reason}")
        self.stats.increment('malformed_messages')

    def render_panel(self):
        """Redraw every LED from the model (controller output just opened)."""
        self.panel.clear()
        self.state.bank.refresh(self.state.mode)
        if self.state.mode == Mode.RECORD:
            self.panel.turn_on(Pedal.RECORD)
        if self.state.selected_loop != NO_SELECTION:
            self.panel.show_selected(self.state.selected_loop)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def handle_diagnostic(self, msg: protocol.DiagnosticRequest):
        logger.info(f"Diagnostic {msg.kind} from {msg.host}:{msg.port}")
        self.diagnostics[msg.kind](msg)

    def _diag_ping(self, msg: protocol.DiagnosticRequest):
        info = [self.transport.listen_url, __version__, len(self.panel), os.getpid()]
        osc.send_reply(msg.host, msg.port, msg.path, [info])

    def _diag_leds(self, msg: protocol.DiagnosticRequest):
        osc.send_reply(msg.host, msg.port, msg.path, [led.as_args() for led in self.panel.leds])

    def _diag_display(self, msg: protocol.DiagnosticRequest):
        osc.send_reply(msg.host, msg.port, msg.path, [[self.state.selected_loop]])

    def _diag_register(self, msg: protocol.DiagnosticRequest):
        self.panel.attach_monitor(msg.host, msg.port, msg.path or DEFAULT_MONITOR_PATH)

    def _diag_unregister(self, msg: protocol.DiagnosticRequest):
        monitor = self.panel.monitor
        if monitor is None or (monitor.host, monitor.port) != (msg.host, msg.port):
            logger.warning(f"No LED mirror registered for {msg.host}:{msg.port}")
            return
        self.panel.detach_monitor()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Start the ticker thread (first tick is immediate)."""
        self._stop.clear()
        self.events.put(Tick())
        self._ticker = threading.Thread(target=self._tick_loop, daemon=True)
        self._ticker.start()

    def stop(self):
        """Ask ``run()`` to return (safe from any thread or signal handler)."""
        self._stop.set()
        self.events.put(_STOP)

    def run(self):
        """Consume events until ``stop()``."""
        if self._ticker is None:
            self.start()
        logger.info("Footloop bridge running. Press Ctrl+C to exit.")
        while True:
            event = self.events.get()
            if event is _STOP:
                break
            try:
                self.handle(event)
            except Exception:
                logger.exception(f"Error handling {event!r}")
                self.stats.increment('handler_errors')

    def shutdown(self):
        """Unregister from the looper, darken the controller, close everything."""
        logger.info("Shutting down footloop bridge...")
        self._stop.set()
        self.session.shutdown()
        self.panel.clear()
        self.panel.detach_monitor()
        self.ports.close()
        self.stats.print_stats("FOOTLOOP BRIDGE STATISTICS")


# ============================================================================
# ENTRY POINT
# ============================================================================

def apply_overrides(config: dict, args: argparse.Namespace) -> dict:
    """Lay command-line flags over the loaded configuration."""
    if args.looper_port is not None:
        config['osc']['looper_port'] = args.looper_port
    if args.listen_port is not None:
        config['osc']['listen_port'] = args.listen_port
    if args.midi_in is not None:
        config['midi']['input'] = args.midi_in
    if args.midi_out is not None:
        config['midi']['output'] = args.midi_out
    validate_config(config)
    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Footloop - MIDI foot controller to looper OSC bridge"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=DEFAULT_CONFIG_PATH,
        help="Path to bridge.yaml config (default: footloop/config/bridge.yaml)",
    )
    parser.add_argument(
        "--looper-port",
        type=int,
        default=None,
        help=f"Looper control port (default: {osc.PORT_LOOPER})",
    )
    parser.add_argument(
        "--listen-port",
        type=int,
        default=None,
        help=f"Port for looper replies and updates (default: {osc.PORT_LISTEN})",
    )
    parser.add_argument(
        "--midi-in",
        type=str,
        default=None,
        help="Controller input port name (substring match)",
    )
    parser.add_argument(
        "--midi-out",
        type=str,
        default=None,
        help="Controller output port name (substring match)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=os.getenv("FOOTLOOP_LOG_LEVEL", "INFO"),
        help="Logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List MIDI ports and exit",
    )
    return parser


def main(argv=None):
    """Main entry point for the footloop bridge.

    Exits with code 1 if the configuration is missing or invalid.
    """
    args = build_parser().parse_args(argv)

    set_level(args.log_level)

    if args.list:
        for line in list_ports():
            print(line)
        return

    try:
        config = apply_overrides(load_config(args.config), args)
    except FileNotFoundError as e:
        logger.error(f"{e}")
        sys.exit(1)
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML in {args.config}: {e}")
        sys.exit(1)
    except ValueError as e:
        logger.error(f"{e}")
        sys.exit(1)

    logger.info("=" * 60)
    logger.info(f"FOOTLOOP BRIDGE v{__version__}")
    logger.info("=" * 60)
    logger.info(f"Looper: {config['osc']['looper_host']}:{config['osc']['looper_port']}")
    logger.info(f"Listen: {config['osc']['listen_host']}:{config['osc']['listen_port']}")
    logger.info(f"Controller: in '{config['midi']['input']}', out '{config['midi']['output']}'")

    bridge = Bridge(config)

    def signal_handler(sig, frame):
        bridge.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        bridge.run()
    finally:
        bridge.shutdown()


if __name__ == "__main__":
    main()
