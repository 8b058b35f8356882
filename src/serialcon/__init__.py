"""
SerialCon - serial console terminal with link parameter auto-negotiation

This package talks to a device on a serial console port (router, switch,
embedded board) when the right line settings are not known up front. It
includes:

- **Baud rate negotiation** by probing the port and scoring the replies
- **Encoding detection** for Japanese legacy encodings (Shift-JIS, EUC-JP,
  ISO-2022-JP) on the device's first reply
- **Interactive relay** between the operator's terminal and the device, with
  encoding translation and an optional append-only session log
- **Port enumeration** with USB vendor/product details
"""

import logging
import os

logging.getLogger("serialcon").addHandler(logging.NullHandler())

__version__ = "0.1.0"

# Defaults for the CLI.  Override via environment variables:
#   SERIALCON_PORT  - port to connect to without showing the picker
#   SERIALCON_LOG   - session log path (e.g. ./logs/session.log)
DEFAULT_PORT = os.environ.get("SERIALCON_PORT", "")
DEFAULT_LOG_PATH = os.environ.get("SERIALCON_LOG", "")

# Line settings.  9600 8N1 is the factory default of most console ports.
DEFAULT_BAUD_RATE = 9600
SERIAL_BYTESIZE = 8       # 8 data bits, fixed
SERIAL_PARITY = "N"       # No parity
SERIAL_STOPBITS = 1       # 1 stop bit
SERIAL_WRITE_TIMEOUT = 10  # seconds, blocking with failsafe

# Encodings: display name -> Python codec.  Order matters for detection ties.
DEFAULT_ENCODING = "UTF-8"
ENCODINGS = {
    "UTF-8": "utf-8",
    "Shift-JIS": "shift_jis",
    "EUC-JP": "euc_jp",
    "ISO-2022-JP": "iso2022_jp",
}
# UTF-8 is the baseline and is never re-tried by the detector
DETECTION_CANDIDATES = ("Shift-JIS", "EUC-JP", "ISO-2022-JP")

# Negotiation settings.  Most common rates first; order is the tie-break.
CANDIDATE_BAUD_RATES = (9600, 115200, 19200, 38400, 57600, 4800, 2400, 1200)
PROBE_SEQUENCES = (
    b"\r",        # CR
    b"\r\n",      # CR+LF
    b"\x1b[A",    # up-arrow
    b"?\r",       # help
)
PROBE_ATTEMPTS = 3
PROBE_READ_TIMEOUT = 0.3  # seconds
PROBE_READ_SIZE = 1024

# Relay settings
RELAY_READ_TIMEOUT = 0.01  # seconds
RELAY_POLL_INTERVAL_S = 0.01  # sleep between inbound cycles
RELAY_READ_SIZE = 1024
