"""Controller port discovery tests (mido mocked, no hardware)."""

from unittest.mock import Mock, patch

import mido
import pytest

from footloop.midi import ControllerPorts, find_port, list_ports

IN_NAME = "FCB1010:FCB1010 MIDI 1 20:0"
OUT_NAME = "FCB1010:FCB1010 MIDI 1 20:0"


def fake_port(name):
    port = Mock()
    port.name = name
    return port


@pytest.fixture
def received():
    return []


@pytest.fixture
def controller(received):
    return ControllerPorts("FCB1010", "FCB1010", received.append)


def test_find_port_substring():
    names = ["Midi Through:Midi Through Port-0 14:0", IN_NAME]
    assert find_port("FCB", names) == IN_NAME
    assert find_port("Launchpad", names) is None


@patch('footloop.midi.mido.get_output_names', return_value=[])
@patch('footloop.midi.mido.get_input_names', return_value=[])
def test_list_ports_without_devices(mock_inputs, mock_outputs):
    assert list_ports() == ["MIDI input ports:", "  (none)", "MIDI output ports:", "  (none)"]


class TestEnsureOpen:

    @patch('footloop.midi.mido.open_output')
    @patch('footloop.midi.mido.open_input')
    @patch('footloop.midi.mido.get_output_names', return_value=[OUT_NAME])
    @patch('footloop.midi.mido.get_input_names', return_value=[IN_NAME])
    def test_opens_matching_ports(self, mock_inputs, mock_outputs, mock_open_in, mock_open_out,
                                  controller):
        mock_open_in.return_value = fake_port(IN_NAME)
        mock_open_out.return_value = fake_port(OUT_NAME)

        assert controller.ensure_open()
        assert controller.input_open and controller.output_open
        mock_open_in.assert_called_once_with(IN_NAME, callback=controller._receive)

        # Already open: nothing reopened
        assert not controller.ensure_open()
        assert mock_open_out.call_count == 1

    @patch('footloop.midi.mido.get_output_names', return_value=[])
    @patch('footloop.midi.mido.get_input_names', return_value=[])
    def test_missing_controller_keeps_polling(self, mock_inputs, mock_outputs, controller):
        assert not controller.ensure_open()
        assert not controller.input_open
        assert not controller.send(mido.Message('control_change', control=106, value=1))

    @patch('footloop.midi.mido.open_output')
    @patch('footloop.midi.mido.open_input')
    @patch('footloop.midi.mido.get_output_names')
    @patch('footloop.midi.mido.get_input_names')
    def test_vanished_ports_are_closed(self, mock_inputs, mock_outputs, mock_open_in, mock_open_out,
                                       controller):
        mock_inputs.return_value = [IN_NAME]
        mock_outputs.return_value = [OUT_NAME]
        in_port, out_port = fake_port(IN_NAME), fake_port(OUT_NAME)
        mock_open_in.return_value = in_port
        mock_open_out.return_value = out_port
        controller.ensure_open()

        mock_inputs.return_value = []
        mock_outputs.return_value = []
        assert not controller.ensure_open()

        in_port.close.assert_called_once()
        out_port.close.assert_called_once()
        assert not controller.input_open and not controller.output_open

    @patch('footloop.midi.mido.open_output', side_effect=OSError("busy"))
    @patch('footloop.midi.mido.open_input', side_effect=OSError("busy"))
    @patch('footloop.midi.mido.get_output_names', return_value=[OUT_NAME])
    @patch('footloop.midi.mido.get_input_names', return_value=[IN_NAME])
    def test_open_failure_is_not_fatal(self, mock_inputs, mock_outputs, mock_open_in, mock_open_out,
                                       controller):
        assert not controller.ensure_open()
        assert not controller.output_open


def test_received_messages_are_forwarded(controller, received):
    msg = mido.Message('control_change', control=104, value=3)
    controller._receive(msg)
    assert received == [msg]


def test_send_and_close(controller):
    controller.output = fake_port(OUT_NAME)
    msg = mido.Message('control_change', control=106, value=1)

    assert controller.send(msg)
    controller.output.send.assert_called_once_with(msg)

    output = controller.output
    controller.close()
    output.close.assert_called_once()
    assert not controller.output_open
