"""Bridge tests: event routing, diagnostics and the serialized event loop."""

import os
from unittest.mock import Mock, patch

import mido
import pytest

from footloop import __version__
from footloop.bridge import (
    Bridge,
    ControllerMessage,
    LooperMessage,
    Tick,
    apply_overrides,
    build_parser,
)
from footloop.leds import CC_LED_OFF, LED_COUNT, LedPattern
from footloop.loops import LoopStatus, Mode
from footloop.session import SessionState


@pytest.fixture
def live_bridge(bridge, transport, ports):
    """Bridge whose session is live with a two-loop looper."""
    bridge.handle(Tick())
    bridge.handle(LooperMessage("/pingack", ("osc.udp://looper:9951/", "1.0", 2, 7)))
    transport.clear()
    ports.clear()
    return bridge


# =============================================================================
# Routing
# =============================================================================

class TestLooperMessages:

    def test_pingack_makes_session_live(self, live_bridge):
        assert live_bridge.session.status == SessionState.LIVE
        assert len(live_bridge.state.bank) == 2

    def test_state_update_in_play_mode(self, live_bridge, ports):
        """/ctrl [0, state, 4.0] in Play mode → loop 0 lit, side LEDs untouched."""
        live_bridge.handle(LooperMessage("/ctrl", (0, "state", 4.0)))

        assert live_bridge.panel[0].pattern == LedPattern.LIGHT
        assert live_bridge.panel[0].on
        assert ports.writes() == [(106, 1)]

    def test_ctrl_traffic_refills_heartbeat(self, live_bridge):
        live_bridge.session.heartbeat = -3
        live_bridge.handle(LooperMessage("/ctrl", (-2, "selected_loop_num", 0.0)))
        assert live_bridge.session.heartbeat == 5
        assert live_bridge.state.selected_loop == 0

    def test_malformed_is_counted_and_dropped(self, live_bridge):
        live_bridge.handle(LooperMessage("/ctrl", (0, "state", "playing")))
        assert live_bridge.stats.get('malformed_messages') == 1
        assert live_bridge.state.bank[0].state == LoopStatus.OFF

    def test_malformed_ctrl_does_not_refill_heartbeat(self, live_bridge):
        live_bridge.session.heartbeat = -3
        live_bridge.handle(LooperMessage("/ctrl", (0, "state", "playing")))
        assert live_bridge.session.heartbeat == -3

    @pytest.mark.parametrize("args", [
        (-2, "selected_loop_num", float("nan")),
        (0, "state", float("inf")),
    ])
    def test_non_finite_ctrl_values_dropped(self, live_bridge, args):
        live_bridge.handle(LooperMessage("/ctrl", args))
        assert live_bridge.stats.get('malformed_messages') == 1
        assert live_bridge.state.selected_loop == -1
        assert live_bridge.state.bank[0].state == LoopStatus.OFF

    def test_unknown_address_ignored(self, live_bridge, transport):
        live_bridge.handle(LooperMessage("/something/else", (1,)))
        assert transport.sent == []
        assert live_bridge.stats.get('osc_messages') == 1


class TestControllerMessages:

    def test_pedal_is_dispatched(self, live_bridge, transport):
        live_bridge.handle(ControllerMessage(104, 2))
        assert transport.sent == [("/set", ["selected_loop_num", 1]), ("/sl/1/down", ["mute"])]
        assert live_bridge.stats.get('pedal_events') == 1

    def test_record_pedal_release_toggles_mode(self, live_bridge):
        live_bridge.handle(ControllerMessage(104, 5))
        live_bridge.handle(ControllerMessage(105, 5))
        assert live_bridge.state.mode == Mode.RECORD

    def test_other_controllers_ignored(self, live_bridge, transport):
        live_bridge.handle(ControllerMessage(7, 100))
        assert transport.sent == []
        assert live_bridge.stats.get('pedal_events') == 0

    def test_enqueue_midi_keeps_control_changes(self, bridge):
        bridge.enqueue_midi(mido.Message('control_change', control=104, value=1))
        bridge.enqueue_midi(mido.Message('note_on', note=60))
        assert bridge.events.get_nowait() == ControllerMessage(104, 1)
        assert bridge.events.empty()

    def test_transport_feeds_queue(self, bridge, transport):
        transport.on_message("/ctrl", (0, "state", 2.0))
        assert bridge.events.get_nowait() == LooperMessage("/ctrl", (0, "state", 2.0))


class TestTick:

    def test_reopened_controller_is_redrawn(self, live_bridge, ports):
        live_bridge.handle(LooperMessage("/ctrl", (1, "state", 2.0)))
        live_bridge.state.mode = Mode.RECORD
        ports.clear()
        ports.open_result = True

        live_bridge.handle(Tick())

        writes = ports.writes()
        assert all(control == CC_LED_OFF for control, _ in writes[:LED_COUNT])
        assert live_bridge.panel[1].on
        assert live_bridge.panel[4].on


# =============================================================================
# Diagnostics
# =============================================================================

class TestDiagnostics:

    @patch('footloop.bridge.osc.send_reply')
    def test_ping(self, mock_reply, live_bridge, transport):
        live_bridge.handle(LooperMessage("/footloop/ping", ("127.0.0.1", 9100, "/pong")))
        mock_reply.assert_called_once_with(
            "127.0.0.1", 9100, "/pong",
            [[transport.listen_url, __version__, LED_COUNT, os.getpid()]],
        )

    @patch('footloop.bridge.osc.send_reply')
    def test_leds_one_message_per_led(self, mock_reply, live_bridge):
        live_bridge.handle(LooperMessage("/footloop/leds", ("127.0.0.1", 9100, "/led")))
        host, port, path, messages = mock_reply.call_args[0]
        assert (host, port, path) == ("127.0.0.1", 9100, "/led")
        assert len(messages) == LED_COUNT
        assert messages[3] == [3, 0, 0, 0]

    @patch('footloop.bridge.osc.send_reply')
    def test_display(self, mock_reply, live_bridge):
        live_bridge.state.select(1)
        live_bridge.handle(LooperMessage("/footloop/display", ("127.0.0.1", 9100, "/d")))
        mock_reply.assert_called_once_with("127.0.0.1", 9100, "/d", [[1]])

    @patch('footloop.leds.udp_client.SimpleUDPClient')
    def test_register_and_unregister_mirror(self, mock_client_class, live_bridge):
        live_bridge.handle(LooperMessage("/footloop/register_auto_update", ("127.0.0.1", 9100)))
        assert live_bridge.panel.monitor.led_path == "/led"

        live_bridge.handle(LooperMessage("/footloop/unregister_auto_update", ("10.0.0.1", 9100)))
        assert live_bridge.panel.monitor is not None

        live_bridge.handle(LooperMessage("/footloop/unregister_auto_update", ("127.0.0.1", 9100)))
        assert live_bridge.panel.monitor is None


# =============================================================================
# Event loop and lifecycle
# =============================================================================

class TestLifecycle:

    def test_run_drains_queue_until_stop(self, bridge, transport):
        bridge._ticker = Mock()
        bridge.events.put(Tick())
        bridge.events.put(LooperMessage("/pingack", ("x", "1.0", 1, 3)))
        bridge.stop()

        bridge.run()

        assert bridge.session.status == SessionState.LIVE
        assert len(bridge.state.bank) == 1

    def test_run_survives_handler_error(self, bridge):
        """A failing handler is logged and counted; later events still run."""
        bridge._ticker = Mock()
        bridge.events.put(Tick())
        bridge.events.put(LooperMessage("/pingack", ("x", "1.0", 1, 3)))
        bridge.stop()

        with patch.object(bridge, 'handle_tick', side_effect=RuntimeError("boom")):
            bridge.run()

        assert bridge.stats.get('handler_errors') == 1
        assert len(bridge.state.bank) == 1

    def test_shutdown(self, live_bridge, transport, ports, capsys):
        live_bridge.shutdown()

        assert "/unregister_update" in transport.addresses()
        assert ports.closed
        assert "FOOTLOOP BRIDGE STATISTICS" in capsys.readouterr().out


class TestCommandLine:

    def test_overrides(self):
        from footloop.config import merge_defaults

        args = build_parser().parse_args(["--looper-port", "9960", "--midi-in", "FCB"])
        config = apply_overrides(merge_defaults({}), args)

        assert config['osc']['looper_port'] == 9960
        assert config['osc']['listen_port'] == 9000
        assert config['midi']['input'] == "FCB"
        assert config['midi']['output'] == "FCB1010"

    def test_invalid_override_rejected(self):
        from footloop.config import merge_defaults

        args = build_parser().parse_args(["--listen-port", "0"])
        with pytest.raises(ValueError):
            apply_overrides(merge_defaults({}), args)

    @patch('footloop.midi.mido.get_output_names', return_value=["FCB1010 out"])
    @patch('footloop.midi.mido.get_input_names', return_value=["FCB1010 in"])
    def test_list_ports(self, mock_inputs, mock_outputs, capsys):
        from footloop.bridge import main

        main(["--list"])

        out = capsys.readouterr().out
        assert "FCB1010 in" in out
        assert "FCB1010 out" in out

    @patch('footloop.midi.mido.get_output_names', return_value=[])
    @patch('footloop.midi.mido.get_input_names', return_value=[])
    def test_log_level_reaches_every_module(self, mock_inputs, mock_outputs, monkeypatch):
        import logging

        from footloop.bridge import main
        from footloop.log import set_level

        monkeypatch.setenv("FOOTLOOP_LOG_LEVEL", "INFO")
        try:
            main(["--list", "--log-level", "DEBUG"])
            assert logging.getLogger("footloop.session").level == logging.DEBUG
            assert logging.getLogger("footloop.bridge").level == logging.DEBUG
        finally:
            set_level("INFO")

    def test_missing_config_exits(self, tmp_path):
        from footloop.bridge import main

        with pytest.raises(SystemExit) as exc:
            main(["--config", str(tmp_path / "missing.yaml")])
        assert exc.value.code == 1


def test_bridge_rejects_invalid_config(ports, transport):
    with pytest.raises(ValueError):
        Bridge({'timing': {'tick_ms': 0}}, ports=ports, transport=transport)
