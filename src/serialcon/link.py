"""Serial link handle and port enumeration.

``LinkHandle`` wraps a pyserial port as a byte-oriented duplex channel with
a configurable read timeout.  A read that times out returns ``b""``; every
other failure is raised as a ``SerialCommunicationError`` subclass so callers
can tell "no data yet" apart from "the device is gone".

The handle is cheap to construct and does not touch the port until
``open()`` is called, so negotiation can create one per attempt and release
it with a ``with`` block.

Cross-platform: works on Windows (COMx), Linux (/dev/ttyUSB*, /dev/ttyS*,
/dev/ttyACM*) and macOS (/dev/cu.*).
"""

from __future__ import annotations

import dataclasses
import logging
import platform
from typing import List, Optional

import serial
import serial.tools.list_ports

from . import (
    DEFAULT_BAUD_RATE,
    SERIAL_BYTESIZE,
    SERIAL_PARITY,
    SERIAL_STOPBITS,
    SERIAL_WRITE_TIMEOUT,
    PROBE_READ_TIMEOUT,
    RELAY_READ_SIZE,
)
from .exceptions import (
    ConfigurationError,
    LinkOpenError,
    LinkReadError,
    LinkWriteError,
    SerialCommunicationError,
)

logger = logging.getLogger("serialcon.link")

_IS_WINDOWS = platform.system() == "Windows"
_IS_MACOS = platform.system() == "Darwin"

# Map string parity values to pyserial constants
_PARITY_MAP = {
    "N": serial.PARITY_NONE,
    "O": serial.PARITY_ODD,
    "E": serial.PARITY_EVEN,
}

# Map integer stopbits to pyserial constants
_STOPBITS_MAP = {
    1: serial.STOPBITS_ONE,
    2: serial.STOPBITS_TWO,
}

# Map integer bytesize to pyserial constants.  Only 8 data bits are supported.
_BYTESIZE_MAP = {
    8: serial.EIGHTBITS,
}


# ---------------------------------------------------------------------------
# Port enumeration
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class PortInfo:
    """One serial port as reported by the operating system.

    Attributes:
        device: Port identifier to open (``/dev/ttyUSB0``, ``COM3``, ...).
        is_usb: ``True`` for USB serial adapters.
        vid: USB vendor id, or ``None``.
        pid: USB product id, or ``None``.
        product: USB product string, or ``""``.
    """
    device: str
    is_usb: bool = False
    vid: Optional[int] = None
    pid: Optional[int] = None
    product: str = ""

    def describe(self) -> str:
        """Render as ``/dev/ttyUSB0 [USB: 0403 6001] - FT232R USB UART``."""
        info = self.device
        if self.is_usb:
            vid = f"{self.vid:04X}" if self.vid is not None else "????"
            pid = f"{self.pid:04X}" if self.pid is not None else "????"
            info += f" [USB: {vid} {pid}]"
        if self.product:
            info += f" - {self.product}"
        return info


def list_ports() -> List[PortInfo]:
    """Return the serial ports visible to the operating system, by device name."""
    ports = []
    for p in serial.tools.list_ports.comports():
        info = PortInfo(
            device=p.device,
            is_usb=p.vid is not None,
            vid=p.vid,
            pid=p.pid,
            product=p.product or "",
        )
        logger.debug("[LINK-LIST] Found port: %s", info.describe())
        ports.append(info)
    ports.sort(key=lambda info: info.device)
    return ports


def _platform_hint() -> str:
    """Return a platform-specific troubleshooting hint."""
    available = ", ".join(p.device for p in serial.tools.list_ports.comports()) or "none"
    if _IS_WINDOWS:
        return (
            "On Windows: verify the COM port number in Device Manager "
            "(Ports -> COM & LPT). Ensure no other application (PuTTY, "
            "TeraTerm) has the port open. "
            f"Available ports: {available}."
        )
    if _IS_MACOS:
        return (
            "On macOS: verify the device path exists (ls /dev/cu.* /dev/tty.*). "
            "Use the /dev/cu.* node for outgoing connections and ensure no other "
            "process (screen, minicom, CoolTerm) has the port open. "
            f"Available ports: {available}."
        )
    return (
        "On Linux: verify the device path exists (ls /dev/ttyUSB* /dev/ttyACM* "
        "/dev/ttyS*). Ensure your user is in the 'dialout' group "
        "(sudo usermod -aG dialout $USER) and that no other process "
        "(minicom, screen, picocom) has the port open. "
        f"Available ports: {available}."
    )


# ---------------------------------------------------------------------------
# Link handle
# ---------------------------------------------------------------------------


class LinkHandle:
    """A serial port opened on demand, with guaranteed release.

    Example::

        with LinkHandle("/dev/ttyUSB0", baud_rate=19200, read_timeout=0.3) as link:
            link.write(b"\\r")
            reply = link.read(1024)
    """

    def __init__(
        self,
        port: str,
        baud_rate: int = DEFAULT_BAUD_RATE,
        bytesize: int = SERIAL_BYTESIZE,
        parity: str = SERIAL_PARITY,
        stopbits: int = SERIAL_STOPBITS,
        read_timeout: float = PROBE_READ_TIMEOUT,
        write_timeout: Optional[float] = SERIAL_WRITE_TIMEOUT,
    ) -> None:
        """Initialize the link handle.  Does not open the port.

        Args:
            port: Serial port path, e.g. ``/dev/ttyUSB0`` or ``COM3``.
            baud_rate: Baud rate (default: 9600).
            bytesize: Number of data bits (only 8 is supported).
            parity: ``"N"`` (none), ``"O"`` (odd) or ``"E"`` (even).
            stopbits: Number of stop bits (1 or 2; default: 1).
            read_timeout: How long ``read()`` waits for the first byte, in
                seconds.
            write_timeout: Write timeout in seconds.  ``None`` blocks forever.

        Raises:
            ConfigurationError: If any parameter value is invalid.
        """
        if bytesize not in _BYTESIZE_MAP:
            raise ConfigurationError(
                f"Invalid bytesize {bytesize!r} for port {port}. "
                f"Must be one of: {', '.join(str(k) for k in sorted(_BYTESIZE_MAP))}."
            )
        parity_upper = parity.upper()
        if parity_upper not in _PARITY_MAP:
            raise ConfigurationError(
                f"Invalid parity {parity!r} for port {port}. "
                f'Must be one of: "N", "O", "E".'
            )
        if stopbits not in _STOPBITS_MAP:
            raise ConfigurationError(
                f"Invalid stopbits {stopbits!r} for port {port}. Must be 1 or 2."
            )
        if baud_rate <= 0:
            raise ConfigurationError(
                f"Invalid baud rate {baud_rate!r} for port {port}. "
                f"Baud rate must be a positive integer."
            )
        if read_timeout < 0:
            raise ConfigurationError(
                f"Invalid read_timeout {read_timeout!r} for port {port}. "
                f"Must be zero or a positive number of seconds."
            )

        self.port = port
        self.baud_rate = baud_rate
        self.bytesize = _BYTESIZE_MAP[bytesize]
        self.parity = _PARITY_MAP[parity_upper]
        self.stopbits = _STOPBITS_MAP[stopbits]
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout
        self._serial: Optional[serial.Serial] = None

        logger.debug(
            "[LINK-INIT] Configured %s: %d %d%s%d (read_timeout=%.3fs)",
            port, baud_rate, bytesize, parity_upper, stopbits, read_timeout,
        )

    def open(self, context: str) -> None:
        """Open the serial port.

        Args:
            context: Description of the purpose, embedded into error messages.

        Raises:
            LinkOpenError: If the port cannot be opened.  The message includes
                the OS-level reason and platform-specific hints.
        """
        if self.is_open():
            logger.debug("[LINK-OPEN] [%s] Port %s is already open, skipping", context, self.port)
            return

        logger.debug("[LINK-OPEN] [%s] Opening %s at %d baud ...", context, self.port, self.baud_rate)

        try:
            self._serial = serial.Serial(
                port=self.port,
                baudrate=self.baud_rate,
                bytesize=self.bytesize,
                parity=self.parity,
                stopbits=self.stopbits,
                timeout=self.read_timeout,
                write_timeout=self.write_timeout,
                xonxoff=False,
                rtscts=False,
                dsrdtr=False,
            )
        except (serial.SerialException, OSError, ValueError) as exc:
            msg = (
                f"[{context}] Failed to open serial port {self.port} at "
                f"{self.baud_rate} baud: {exc}. {_platform_hint()}"
            )
            logger.debug("[LINK-OPEN] FAILED: %s", msg)
            raise LinkOpenError(msg, port=self.port, baud_rate=self.baud_rate) from exc

        logger.debug("[LINK-OPEN] [%s] Opened %s", context, self.port)

    def is_open(self) -> bool:
        """Check whether the serial port is currently open."""
        return self._serial is not None and self._serial.is_open

    def close(self) -> None:
        """Close the serial port if open.  Safe to call more than once."""
        if self._serial is None:
            return
        try:
            self._serial.close()
        except (serial.SerialException, OSError) as exc:
            logger.warning("[LINK-CLOSE] Error closing port %s: %s", self.port, exc)
        finally:
            self._serial = None
        logger.debug("[LINK-CLOSE] Closed %s", self.port)

    def get_serial(self) -> serial.Serial:
        """Return the underlying ``serial.Serial`` object.

        Raises:
            SerialCommunicationError: If the port is not open.
        """
        if self._serial is None or not self._serial.is_open:
            raise SerialCommunicationError(
                f"Cannot access serial port {self.port}: port is not open. "
                f"Call open() or use the context manager first."
            )
        return self._serial

    def set_read_timeout(self, seconds: float) -> None:
        """Change how long ``read()`` waits for the first byte."""
        self.read_timeout = seconds
        if self.is_open():
            self.get_serial().timeout = seconds

    def read(self, size: int = RELAY_READ_SIZE) -> bytes:
        """Read up to *size* bytes.

        Waits at most ``read_timeout`` for the first byte, then returns it
        together with whatever else is already buffered.  Returns ``b""`` when
        the timeout expires with nothing received.

        Raises:
            LinkReadError: On any I/O failure other than a timeout.
        """
        ser = self.get_serial()
        try:
            first = ser.read(1)
            if not first:
                return b""
            waiting = ser.in_waiting
            if waiting > 0 and size > 1:
                return first + ser.read(min(waiting, size - 1))
            return first
        except (serial.SerialException, OSError) as exc:
            raise LinkReadError(
                f"Serial read error on {self.port}: {exc}. "
                f"The device may have been disconnected."
            ) from exc

    def write(self, data: bytes) -> int:
        """Write *all* bytes and flush the OS transmit buffer.

        Returns:
            Number of bytes written (always ``len(data)`` on success).

        Raises:
            LinkWriteError: On I/O failure or a short write.
        """
        ser = self.get_serial()
        try:
            n = ser.write(data)
            if n != len(data):
                raise LinkWriteError(
                    f"Short write on {self.port}: wrote {n}/{len(data)} bytes."
                )
            ser.flush()
        except (serial.SerialException, OSError) as exc:
            raise LinkWriteError(
                f"Failed to write {len(data)} bytes to serial port {self.port}: {exc}. "
                f"The device may have been disconnected."
            ) from exc
        return n

    # ---- Context manager ----

    def __enter__(self) -> LinkHandle:
        """Context manager entry: opens the serial port."""
        self.open(context=f"Opening {self.port}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        """Context manager exit: ensures the port is closed."""
        self.close()
