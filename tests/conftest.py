"""Pytest configuration: path setup, logging, and shared serial test doubles."""

import logging
import os
import sys

import pytest

# ---------------------------------------------------------------------------
# Path setup: ensure the package is importable regardless of installation
# ---------------------------------------------------------------------------
_SRC_DIR = os.path.join(os.path.dirname(__file__), os.pardir, "src")
_SRC_DIR = os.path.normpath(_SRC_DIR)
if _SRC_DIR not in sys.path:
    sys.path.insert(0, _SRC_DIR)

# ---------------------------------------------------------------------------
# Logging: route all library log output to the console so pytest -s shows it
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)

from serialcon.exceptions import LinkOpenError, LinkReadError  # noqa: E402
from serialcon.link import LinkHandle  # noqa: E402


class SimulatedDevice:
    """A serial device that answers some probes at some baud rates.

    ``replies`` maps ``(baud_rate, probe_bytes)`` to the reply bytes; any
    other combination stays silent.  ``busy_rates`` are rates at which the
    port refuses to open.  Every link opened against the device is recorded
    in ``links`` so tests can check that each was closed.
    """

    def __init__(self, replies=None, busy_rates=()):
        self.replies = dict(replies or {})
        self.busy_rates = set(busy_rates)
        self.links = []

    def factory(self, port, **kwargs):
        link = FakeLink(self, port, **kwargs)
        self.links.append(link)
        return link


class FakeLink(LinkHandle):
    """``LinkHandle`` backed by a ``SimulatedDevice`` instead of a real port."""

    def __init__(self, device, port, **kwargs):
        super().__init__(port, **kwargs)
        self.device = device
        self.opened = False
        self.closed = False
        self.written = []
        self._pending = b""
        # Scripted inbound chunks for relay tests; None entries mean "timeout"
        self.inbound = []
        self.fail_read_after_inbound = False

    def open(self, context):
        if self.baud_rate in self.device.busy_rates:
            raise LinkOpenError(
                "[{}] port busy".format(context), port=self.port, baud_rate=self.baud_rate,
            )
        self.opened = True

    def is_open(self):
        return self.opened and not self.closed

    def close(self):
        self.closed = True

    def write(self, data):
        self.written.append(bytes(data))
        self._pending = self.device.replies.get((self.baud_rate, bytes(data)), b"")
        return len(data)

    def read(self, size=1024):
        if self.inbound:
            chunk = self.inbound.pop(0)
            return chunk or b""
        if self.fail_read_after_inbound:
            raise LinkReadError("simulated disconnect on {}".format(self.port))
        data, self._pending = self._pending[:size], b""
        return data


@pytest.fixture()
def simulated_device():
    """A silent simulated device; tests fill in ``replies``."""
    return SimulatedDevice()


# ---------------------------------------------------------------------------
# Virtual serial port pair (PTY-based)
# ---------------------------------------------------------------------------
try:
    import pty
    _HAS_PTY = True
except ImportError:
    _HAS_PTY = False


class VirtualSerialPair:
    """Creates a connected pair of pseudo-terminal serial ports.

    ``slave_path`` behaves like the device end of a serial cable: bytes
    written to the master appear on the slave and vice versa.

    Only works on POSIX systems that support ``pty.openpty()``.
    """

    def __init__(self):
        if not _HAS_PTY:
            raise RuntimeError(
                "pty module not available - virtual serial pairs require "
                "a POSIX system (Linux / macOS)"
            )
        self.master_fd, self.slave_fd = pty.openpty()
        self.slave_path = os.ttyname(self.slave_fd)

    def write_to_master(self, data):
        # type: (bytes) -> int
        """Write bytes into the master end (appears on the slave)."""
        return os.write(self.master_fd, data)

    def read_from_master(self, timeout=1.0, size=4096):
        # type: (float, int) -> bytes
        """Read what was written to the slave, waiting up to *timeout* seconds."""
        import select
        ready, _, _ = select.select([self.master_fd], [], [], timeout)
        if not ready:
            return b""
        return os.read(self.master_fd, size)

    def close(self):
        # type: () -> None
        for fd in (self.master_fd, self.slave_fd):
            try:
                os.close(fd)
            except OSError:
                pass


@pytest.fixture()
def serial_pair():
    """Create a virtual serial pair for one test."""
    if not _HAS_PTY or sys.platform == "win32":
        pytest.skip("Serial tests require PTY support (Linux/macOS only)")
    pair = VirtualSerialPair()
    yield pair
    pair.close()
