"""
Command-line interface tests.

``serialcon.cli.LinkHandle`` and ``serialcon.cli.list_ports`` are patched so
every command runs against simulated devices.

Run with full visibility:
    pytest tests/test_cli.py -v -s
"""

from __future__ import annotations

import io

import pytest

from conftest import FakeLink, SimulatedDevice
from serialcon import RELAY_READ_TIMEOUT, __version__
from serialcon import cli
from serialcon.link import PortInfo

PORT = "/dev/ttyFAKE0"

PORTS = [
    PortInfo("/dev/ttyS0"),
    PortInfo("/dev/ttyUSB0", is_usb=True, vid=0x0403, pid=0x6001, product="FT232R USB UART"),
]


class SessionDevice(SimulatedDevice):
    """Answers negotiation probes; relay links play *script* and then drop."""

    def __init__(self, replies=None, busy_rates=(), script=(), link_class=FakeLink):
        super().__init__(replies=replies, busy_rates=busy_rates)
        self.script = list(script)
        self.link_class = link_class

    def factory(self, port, **kwargs):
        link = self.link_class(self, port, **kwargs)
        if kwargs.get("read_timeout") == RELAY_READ_TIMEOUT:
            link.inbound = list(self.script)
            link.fail_read_after_inbound = True
        self.links.append(link)
        return link


class InterruptedLink(FakeLink):
    """Raises KeyboardInterrupt on the first read, like Ctrl+C mid-session."""

    def read(self, size=1024):
        raise KeyboardInterrupt


@pytest.fixture()
def quiet_stdin(monkeypatch):
    """Give the relay's outbound thread an empty operator input."""
    monkeypatch.setattr("sys.stdin", io.TextIOWrapper(io.BytesIO(b"")))


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS — Argument parsing
# ═══════════════════════════════════════════════════════════════════════════

class TestArguments:

    def test_help(self, capsys):
        # type: (object) -> None
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--help"])
        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        for command in ("list", "connect", "probe"):
            assert command in out

    def test_version(self, capsys):
        # type: (object) -> None
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["--version"])
        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_command_required(self):
        # type: () -> None
        with pytest.raises(SystemExit) as exc_info:
            cli.main([])
        assert exc_info.value.code == 2

    def test_unknown_encoding_rejected(self):
        # type: () -> None
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["connect", PORT, "--encoding", "latin-1"])
        assert exc_info.value.code == 2


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS — list and the port picker
# ═══════════════════════════════════════════════════════════════════════════

class TestPortSelection:

    def test_list(self, monkeypatch, capsys):
        # type: (object, object) -> None
        monkeypatch.setattr(cli, "list_ports", lambda: PORTS)
        assert cli.main(["list"]) == 0
        out = capsys.readouterr().out
        assert "  /dev/ttyS0" in out
        assert "  /dev/ttyUSB0 [USB: 0403 6001] - FT232R USB UART" in out

    def test_list_empty(self, monkeypatch, capsys):
        # type: (object, object) -> None
        monkeypatch.setattr(cli, "list_ports", lambda: [])
        assert cli.main(["list"]) == 0
        assert "No serial ports found." in capsys.readouterr().out

    def test_choose_port(self, monkeypatch, capsys):
        # type: (object, object) -> None
        monkeypatch.setattr(cli, "list_ports", lambda: PORTS)
        monkeypatch.setattr("builtins.input", lambda prompt: "2")
        assert cli.choose_port() == "/dev/ttyUSB0"
        out = capsys.readouterr().out
        assert "  [1] /dev/ttyS0" in out
        assert "  [2] /dev/ttyUSB0" in out

    @pytest.mark.parametrize("answer", ["0", "3", "abc", ""])
    def test_choose_port_invalid(self, monkeypatch, answer):
        # type: (object, str) -> None
        monkeypatch.setattr(cli, "list_ports", lambda: PORTS)
        monkeypatch.setattr("builtins.input", lambda prompt: answer)
        assert cli.choose_port() is None

    def test_choose_port_eof(self, monkeypatch):
        # type: (object) -> None
        def eof(prompt):
            raise EOFError

        monkeypatch.setattr(cli, "list_ports", lambda: PORTS)
        monkeypatch.setattr("builtins.input", eof)
        assert cli.choose_port() is None

    def test_connect_without_ports(self, monkeypatch, capsys):
        # type: (object, object) -> None
        monkeypatch.setattr(cli, "list_ports", lambda: [])
        assert cli.main(["connect"]) == 1
        assert "No serial ports found" in capsys.readouterr().err


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS — probe
# ═══════════════════════════════════════════════════════════════════════════

class TestProbeCommand:

    def test_probe_detects(self, monkeypatch, capsys):
        # type: (object, object) -> None
        device = SimulatedDevice(replies={(19200, b"\r"): b"Router>"})
        monkeypatch.setattr(cli, "LinkHandle", device.factory)
        assert cli.main(["probe", PORT, "--quiet"]) == 0
        out = capsys.readouterr().out
        assert "Scores for {}:".format(PORT) in out
        assert "  19200 bps  score 18" in out
        assert "Best baud rate: 19200 bps (score 18)" in out
        assert "Encoding: UTF-8" in out

    def test_probe_silent_device(self, monkeypatch, capsys):
        # type: (object, object) -> None
        monkeypatch.setattr(cli, "LinkHandle", SimulatedDevice().factory)
        assert cli.main(["probe", PORT, "--quiet"]) == 1
        assert "No response at any baud rate." in capsys.readouterr().out


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS — connect
# ═══════════════════════════════════════════════════════════════════════════

@pytest.mark.usefixtures("quiet_stdin")
class TestConnectCommand:

    def test_negotiated_session(self, monkeypatch, capsys, tmp_path):
        # type: (object, object, object) -> None
        device = SessionDevice(replies={(19200, b"\r"): b"Router>"}, script=[b"Router>"])
        monkeypatch.setattr(cli, "LinkHandle", device.factory)
        log_path = tmp_path / "logs" / "session.log"

        # The scripted link drops after one cycle: a fatal read error
        assert cli.main(["connect", PORT, "--log", str(log_path)]) == 1

        captured = capsys.readouterr()
        assert "Log file: {}".format(log_path) in captured.out
        assert "Best baud rate: 19200 bps (score 18)" in captured.out
        assert "Connected: {} (baud rate: 19200, data bits: 8)".format(PORT) in captured.out
        assert "Encoding: UTF-8" in captured.out
        assert "Press Ctrl+C to exit" in captured.out
        assert "simulated disconnect" in captured.err
        assert log_path.read_bytes().endswith(b"Baud: 19200, Encoding: UTF-8\n\nRouter>")

    def test_manual_settings(self, monkeypatch, capsys):
        # type: (object, object) -> None
        device = SessionDevice(script=[])
        monkeypatch.setattr(cli, "LinkHandle", device.factory)
        rc = cli.main([
            "connect", PORT, "--no-auto-negotiate",
            "--baud-rate", "115200", "--encoding", "Shift-JIS",
        ])
        assert rc == 1
        assert len(device.links) == 1
        assert device.links[0].baud_rate == 115200
        out = capsys.readouterr().out
        assert "Negotiating" not in out
        assert "Connected: {} (baud rate: 115200, data bits: 8)".format(PORT) in out
        assert "Encoding: Shift-JIS" in out

    def test_ctrl_c_exits_cleanly(self, monkeypatch, capsys):
        # type: (object, object) -> None
        device = SessionDevice(link_class=InterruptedLink)
        monkeypatch.setattr(cli, "LinkHandle", device.factory)
        assert cli.main(["connect", PORT, "--no-auto-negotiate"]) == 0
        assert "Disconnected." in capsys.readouterr().out
        assert device.links[0].closed

    def test_ctrl_c_during_negotiation(self, monkeypatch, capsys):
        # type: (object, object) -> None
        device = SessionDevice(link_class=InterruptedLink)
        monkeypatch.setattr(cli, "LinkHandle", device.factory)
        assert cli.main(["connect", PORT]) == 0
        out = capsys.readouterr().out
        assert "Negotiating baud rate ..." in out
        assert "Disconnected." in out
        assert "Connected:" not in out
        assert len(device.links) == 1
        assert device.links[0].closed

    def test_open_failure(self, monkeypatch, capsys):
        # type: (object, object) -> None
        device = SessionDevice(busy_rates={9600})
        monkeypatch.setattr(cli, "LinkHandle", device.factory)
        assert cli.main(["connect", PORT, "--no-auto-negotiate"]) == 1
        assert "port busy" in capsys.readouterr().err

    def test_invalid_baud_rate(self, capsys):
        # type: (object) -> None
        assert cli.main(["connect", PORT, "--no-auto-negotiate", "--baud-rate", "0"]) == 1
        assert "Invalid baud rate" in capsys.readouterr().err
