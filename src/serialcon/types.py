"""Type definitions for SerialCon."""

from __future__ import annotations

import dataclasses
from typing import Optional, Tuple

from . import (
    DEFAULT_BAUD_RATE,
    DEFAULT_ENCODING,
    ENCODINGS,
    SERIAL_BYTESIZE,
    SERIAL_PARITY,
    SERIAL_STOPBITS,
)
from .exceptions import ConfigurationError

# (baud_rate, cumulative_score) pairs in probe order
ScoreTable = Tuple[Tuple[int, int], ...]

_VALID_PARITIES = ("N", "O", "E")
_VALID_STOPBITS = (1, 2)


@dataclasses.dataclass(frozen=True)
class LinkConfig:
    """Immutable settings for one serial session.

    Baud rate and encoding are always concrete: negotiation and detection
    produce a new ``LinkConfig`` via ``dataclasses.replace`` before the relay
    ever sees it.

    Attributes:
        port: Serial port path, e.g. ``/dev/ttyUSB0`` or ``COM3``.
        baud_rate: Positive baud rate.
        data_bits: Always 8.
        parity: ``"N"`` (none), ``"O"`` (odd) or ``"E"`` (even).
        stop_bits: 1 or 2.
        encoding: One of the names in ``serialcon.ENCODINGS``.
        log_path: Session log file, or ``None`` for no logging.
        auto_negotiate: Probe the port for the baud rate before connecting.
        auto_detect_encoding: Detect the encoding from the negotiation sample.
    """
    port: str
    baud_rate: int = DEFAULT_BAUD_RATE
    data_bits: int = SERIAL_BYTESIZE
    parity: str = SERIAL_PARITY
    stop_bits: int = SERIAL_STOPBITS
    encoding: str = DEFAULT_ENCODING
    log_path: Optional[str] = None
    auto_negotiate: bool = True
    auto_detect_encoding: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.baud_rate, bool) or not isinstance(self.baud_rate, int) or self.baud_rate <= 0:
            raise ConfigurationError(
                f"Invalid baud rate {self.baud_rate!r} for port {self.port}. "
                f"Baud rate must be a positive integer. "
                f"Common values: 9600, 19200, 38400, 57600, 115200."
            )
        if self.data_bits != SERIAL_BYTESIZE:
            raise ConfigurationError(
                f"Invalid data bits {self.data_bits!r} for port {self.port}. "
                f"Only {SERIAL_BYTESIZE} data bits are supported."
            )
        if self.parity not in _VALID_PARITIES:
            valid = ", ".join(f'"{p}"' for p in _VALID_PARITIES)
            raise ConfigurationError(
                f"Invalid parity {self.parity!r} for port {self.port}. "
                f"Must be one of: {valid}."
            )
        if self.stop_bits not in _VALID_STOPBITS:
            raise ConfigurationError(
                f"Invalid stop bits {self.stop_bits!r} for port {self.port}. "
                f"Must be 1 or 2."
            )
        if self.encoding not in ENCODINGS:
            valid = ", ".join(ENCODINGS)
            raise ConfigurationError(
                f"Unknown encoding {self.encoding!r}. Must be one of: {valid}."
            )

    @property
    def codec(self) -> str:
        """Python codec name for ``encoding``."""
        return ENCODINGS[self.encoding]

    def describe(self) -> str:
        """One-line summary, e.g. ``/dev/ttyUSB0 9600 8N1 UTF-8``."""
        return (
            f"{self.port} {self.baud_rate} "
            f"{self.data_bits}{self.parity}{self.stop_bits} {self.encoding}"
        )
