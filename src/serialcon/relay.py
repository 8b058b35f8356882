"""Interactive terminal relay between the operator and a serial device.

Two activities run side by side on one open ``LinkHandle``:

- **Outbound** (daemon thread): operator input is read one byte at a time
  and written to the link immediately.  Nothing is echoed locally; echo is
  the device's job.
- **Inbound** (caller's thread): a fixed-period poll loop reads from the
  link, decodes through the session encoding, and writes the result to the
  operator's display and the optional session log.

The outbound side only writes to the link and the inbound side only reads
from it, so no locking is needed.  The link and the log are released on
every exit path.
"""

from __future__ import annotations

import datetime
import logging
import os
import sys
import threading
import time
from typing import BinaryIO, Callable, Optional

from typeguard import typechecked

from . import RELAY_POLL_INTERVAL_S, RELAY_READ_SIZE, RELAY_READ_TIMEOUT
from .encoding import SessionDecoder
from .exceptions import SerialCommunicationError, SessionLogError
from .link import LinkHandle
from .types import LinkConfig

logger = logging.getLogger("serialcon.relay")

SESSION_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def session_banner(config: LinkConfig, now: Optional[datetime.datetime] = None) -> str:
    """Return the header written at the start of every logged session."""
    timestamp = (now or datetime.datetime.now()).strftime(SESSION_TIMESTAMP_FORMAT)
    return (
        f"\n\n===== Session start: {timestamp} =====\n"
        f"Port: {config.port}, Baud: {config.baud_rate}, Encoding: {config.encoding}\n\n"
    )


class SessionLog:
    """Append-only session log file.

    Creates missing parent directories, opens the file in append mode and
    writes the session banner.  Written only by the inbound direction.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._file: Optional[BinaryIO] = None

    def open(self, config: LinkConfig) -> None:
        """Create the log file (and its directory) and write the banner.

        Raises:
            SessionLogError: If the directory or file cannot be created.
        """
        log_dir = os.path.dirname(self.path)
        try:
            if log_dir and log_dir != ".":
                os.makedirs(log_dir, exist_ok=True)
            self._file = open(self.path, "ab")
        except OSError as exc:
            msg = f"Cannot open session log {self.path}: {exc}"
            logger.error("[SESSION-LOG] %s", msg)
            raise SessionLogError(msg) from exc

        self.write(session_banner(config).encode("utf-8"))
        logger.info("[SESSION-LOG] Logging session to %s", self.path)

    def write(self, data: bytes) -> None:
        """Append *data* and flush it to disk.

        Raises:
            SessionLogError: If the write fails.
        """
        if self._file is None:
            raise SessionLogError(f"Session log {self.path} is not open")
        try:
            self._file.write(data)
            self._file.flush()
        except OSError as exc:
            msg = f"Cannot write to session log {self.path}: {exc}"
            logger.error("[SESSION-LOG] %s", msg)
            raise SessionLogError(msg) from exc

    def close(self) -> None:
        """Close the log file.  Safe to call more than once."""
        if self._file is None:
            return
        try:
            self._file.close()
        except OSError as exc:
            logger.warning("[SESSION-LOG] Error closing %s: %s", self.path, exc)
        finally:
            self._file = None


@typechecked
class TerminalRelay:
    """Runs a live bidirectional session on a finalized ``LinkConfig``.

    Example::

        config = LinkConfig(port="/dev/ttyUSB0", baud_rate=9600,
                            log_path="./logs/session.log")
        TerminalRelay(config).run()   # until Ctrl+C
    """

    def __init__(
        self,
        config: LinkConfig,
        input_stream: Optional[BinaryIO] = None,
        output_stream: Optional[BinaryIO] = None,
        link_factory: Callable[..., LinkHandle] = LinkHandle,
        read_timeout: float = RELAY_READ_TIMEOUT,
        poll_interval_s: float = RELAY_POLL_INTERVAL_S,
    ) -> None:
        """Initialize the relay.

        Args:
            config: Finalized settings (concrete baud rate and encoding).
            input_stream: Operator keystrokes.  Default: ``sys.stdin.buffer``.
            output_stream: Operator display.  Default: ``sys.stdout.buffer``.
            link_factory: Builds the ``LinkHandle`` for the session.
            read_timeout: Per-cycle link read timeout in seconds.
            poll_interval_s: Sleep between inbound cycles in seconds.
        """
        self.config = config
        self.input_stream = input_stream
        self.output_stream = output_stream
        self.link_factory = link_factory
        self.read_timeout = read_timeout
        self.poll_interval_s = poll_interval_s
        # Set once the link (and log, if any) are open
        self.connected = threading.Event()
        self.bytes_in = 0
        self.bytes_out = 0

    def _outbound(self, link: LinkHandle, source: BinaryIO) -> None:
        """Forward operator input to the link, one byte at a time."""
        while True:
            try:
                byte = source.read(1)
            except (OSError, ValueError) as exc:
                logger.error("[RELAY-OUT] Input stream failed: %s", exc)
                return
            if not byte:
                logger.info("[RELAY-OUT] Input stream closed, outbound direction stopped")
                return
            try:
                link.write(byte)
            except SerialCommunicationError as exc:
                logger.error("[RELAY-OUT] Write error, outbound direction stopped: %s", exc)
                return
            self.bytes_out += 1

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """Run the session until interrupted, *stop_event* is set, or the link fails.

        Args:
            stop_event: Optional event that ends the inbound loop when set.

        Raises:
            LinkOpenError: If the port cannot be opened.
            SessionLogError: If the session log cannot be created or written.
            LinkReadError: On a non-timeout read failure.
        """
        config = self.config
        source = self.input_stream if self.input_stream is not None else sys.stdin.buffer
        display = self.output_stream if self.output_stream is not None else sys.stdout.buffer
        decoder = SessionDecoder(config.encoding)

        link = self.link_factory(
            config.port,
            baud_rate=config.baud_rate,
            bytesize=config.data_bits,
            parity=config.parity,
            stopbits=config.stop_bits,
            read_timeout=self.read_timeout,
        )
        session_log: Optional[SessionLog] = None

        link.open(context=f"relay session on {config.port}")
        try:
            if config.log_path:
                session_log = SessionLog(config.log_path)
                session_log.open(config)

            logger.info("[RELAY] Connected: %s", config.describe())
            self.connected.set()

            writer = threading.Thread(
                target=self._outbound,
                args=(link, source),
                name=f"serialcon-outbound-{config.port}",
                daemon=True,
            )
            writer.start()

            while stop_event is None or not stop_event.is_set():
                data = link.read(RELAY_READ_SIZE)
                if data:
                    self.bytes_in += len(data)
                    output = decoder.decode(data)
                    if output:
                        display.write(output)
                        display.flush()
                        if session_log is not None:
                            session_log.write(output)
                time.sleep(self.poll_interval_s)
        finally:
            try:
                tail = decoder.flush()
                if tail:
                    display.write(tail)
                    display.flush()
                    if session_log is not None:
                        session_log.write(tail)
            finally:
                link.close()
                if session_log is not None:
                    session_log.close()
            logger.info(
                "[RELAY] Session on %s ended (%d bytes in, %d bytes out)",
                config.port, self.bytes_in, self.bytes_out,
            )
