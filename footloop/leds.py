"""
LED panel model for the foot controller.

Every pedal has one LED. The controller switches LEDs with Control Change
messages on channel 1 (status 0xB0):

    CC 106 [slot]  - LED on
    CC 107 [slot]  - LED off
    CC 108 [n]     - show loop number n on the display

Blinking is not done by the hardware: the panel keeps a per-LED countdown
and flips the LED from ``tick()``.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional

import mido
from pythonosc import udp_client

from footloop import osc
from footloop.log import get_logger
from footloop.pedals import led_slot

logger = get_logger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

LED_COUNT = 23

CC_LED_ON = 106
CC_LED_OFF = 107
CC_DISPLAY = 108

# Value written with the heartbeat CCs (the controller's config slot)
HEARTBEAT_SLOT = 23

# Blink periods in ticks (200 ms ticks: 800 ms and 400 ms half-cycles)
BLINK_PERIOD = 4
FAST_BLINK_PERIOD = 2

DEFAULT_MONITOR_PATH = "/led"


class LedPattern(IntEnum):
    """Visual behaviour of one LED."""
    DARK = 0
    LIGHT = 1
    BLINK = 2
    FAST_BLINK = 3


PATTERN_PERIODS = {
    LedPattern.DARK: 0,
    LedPattern.LIGHT: 0,
    LedPattern.BLINK: BLINK_PERIOD,
    LedPattern.FAST_BLINK: FAST_BLINK_PERIOD,
}


@dataclass
class Led:
    index: int
    on: bool = False
    timer: int = 0
    pattern: LedPattern = LedPattern.DARK

    @property
    def blinking(self) -> bool:
        return self.pattern in (LedPattern.BLINK, LedPattern.FAST_BLINK)

    def clear(self):
        self.on = False
        self.timer = 0
        self.pattern = LedPattern.DARK

    def as_args(self) -> list:
        """OSC argument list [index, on, timer, pattern]."""
        return [self.index, 1 if self.on else 0, self.timer, int(self.pattern)]


# ============================================================================
# MONITOR
# ============================================================================

class OscMonitor:
    """LED mirror: forwards LED and display events to an OSC listener.

    Args:
        host: Listener host
        port: Listener port
        led_path: Address for LED events (default: /led)
    """

    def __init__(self, host: str, port: int, led_path: str = DEFAULT_MONITOR_PATH):
        osc.validate_port(port)
        self.host = host
        self.port = port
        self.led_path = led_path
        self.client = udp_client.SimpleUDPClient(host, port)

    def publish_led(self, led: Led):
        self.publish(self.led_path, led.as_args())

    def publish(self, address: str, args: list):
        try:
            self.client.send_message(address, args)
        except OSError as e:
            logger.warning(f"LED monitor {self.host}:{self.port} unreachable: {e}")

    def close(self):
        sock = getattr(self.client, '_sock', None)
        if sock is not None:
            sock.close()


# ============================================================================
# LED PANEL
# ============================================================================

class LedPanel:
    """Owns every LED's state and renders it to the controller.

    Args:
        output: Object with a mido-style ``send(message)`` (the controller
                output port), or None while the controller is absent
        led_count: Number of LEDs on the controller
        channel: MIDI channel for LED writes (0-based, default 0 = status 0xB0)
        stats: Optional MessageStatistics for write failure counting

    Attributes:
        leds: Fixed list of Led, index == LED id
        monitor: Attached OscMonitor (LED mirror), or None
    """

    def __init__(self, output=None, led_count: int = LED_COUNT, channel: int = 0,
                 stats: Optional[osc.MessageStatistics] = None):
        self.output = output
        self.channel = channel
        self.stats = stats
        self.leds: List[Led] = [Led(i) for i in range(led_count)]
        self.monitor: Optional[OscMonitor] = None
        self.heartbeat_on = False

    def __len__(self):
        return len(self.leds)

    def __getitem__(self, index: int) -> Led:
        return self.leds[index]

    # ------------------------------------------------------------------
    # Controller writes
    # ------------------------------------------------------------------

    def _write(self, control: int, value: int) -> bool:
        """Write one Control Change to the controller.

        Failures are logged and counted, never retried here: the next state
        change re-asserts the LED.
        """
        if self.output is None:
            return False
        msg = mido.Message('control_change', channel=self.channel, control=control, value=value)
        try:
            sent = self.output.send(msg)
        except Exception as e:
            logger.warning(f"Could not write CC {control} {value}: {e}")
            if self.stats is not None:
                self.stats.increment('led_write_failures')
            return False
        return sent is not False

    def turn_on(self, index: int):
        led = self.leds[index]
        led.on = True
        self._write(CC_LED_ON, led_slot(index))
        if self.monitor is not None:
            self.monitor.publish_led(led)

    def turn_off(self, index: int):
        led = self.leds[index]
        led.on = False
        self._write(CC_LED_OFF, led_slot(index))
        if self.monitor is not None:
            self.monitor.publish_led(led)

    def set_pattern(self, index: int, pattern: LedPattern):
        """Set an LED's pattern and reload its timer (does not write)."""
        led = self.leds[index]
        led.pattern = pattern
        led.timer = PATTERN_PERIODS[pattern]

    def tick(self):
        """Advance blink timers by one tick.

        Blink/FastBlink LEDs flip when their countdown reaches zero and
        reload it; Dark/Light LEDs are left alone.
        """
        for led in self.leds:
            if not led.blinking:
                continue
            led.timer -= 1
            if led.timer <= 0:
                if led.on:
                    self.turn_off(led.index)
                else:
                    self.turn_on(led.index)
                led.timer = PATTERN_PERIODS[led.pattern]

    def clear(self):
        """Switch every LED dark (used when the controller output opens)."""
        for led in self.leds:
            led.clear()
            self.turn_off(led.index)

    def show_selected(self, loop_index: int):
        """Show the selected loop (1-based) on the controller display."""
        self._write(CC_DISPLAY, max(0, min(127, loop_index + 1)))
        if self.monitor is not None:
            self.monitor.publish("/display", [loop_index])

    def heartbeat(self):
        """Alternate the bridge-alive indicator."""
        control = CC_LED_OFF if self.heartbeat_on else CC_LED_ON
        self._write(control, HEARTBEAT_SLOT)
        self.heartbeat_on = not self.heartbeat_on

    # ------------------------------------------------------------------
    # LED mirror
    # ------------------------------------------------------------------

    def attach_monitor(self, host: str, port: int, led_path: str = DEFAULT_MONITOR_PATH) -> bool:
        """Mirror LED events to host:port. Re-attaching replaces the old mirror."""
        if self.monitor is not None:
            if (self.monitor.host, self.monitor.port, self.monitor.led_path) == (host, port, led_path):
                return True
            self.detach_monitor()
        try:
            self.monitor = OscMonitor(host, port, led_path)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not attach LED monitor {host}:{port}: {e}")
            return False
        logger.info(f"Mirroring LEDs to {host}:{port}{led_path}")
        return True

    def detach_monitor(self):
        if self.monitor is None:
            return
        logger.info(f"Stopped mirroring LEDs to {self.monitor.host}:{self.monitor.port}")
        self.monitor.close()
        self.monitor = None

    def snapshot(self) -> List[dict]:
        """Copy of every LED's state."""
        return [
            {'index': led.index, 'on': led.on, 'timer': led.timer, 'pattern': led.pattern}
            for led in self.leds
        ]
