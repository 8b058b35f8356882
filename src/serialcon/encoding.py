"""Encoding detection and session decoding.

``detect_encoding`` guesses the text encoding of a short device reply.  It is
a structural plausibility check, not a validator: each candidate is decoded,
the result is re-encoded as UTF-8, and high-bit bytes that are not followed
by a UTF-8 continuation byte are counted as "malformed".  The candidate with
the fewest malformed bytes wins, provided it beats the UTF-8 baseline (the
full sample length).

``SessionDecoder`` turns raw link bytes into UTF-8 display bytes for the
relay.
"""

from __future__ import annotations

import codecs
import logging
from typing import Optional, Sequence

from typeguard import typechecked

from . import DEFAULT_ENCODING, DETECTION_CANDIDATES, ENCODINGS

logger = logging.getLogger("serialcon.encoding")


def count_malformed(decoded: bytes) -> int:
    """Count high-bit bytes not immediately followed by a ``10xxxxxx`` byte."""
    malformed = 0
    for i, b in enumerate(decoded):
        if b >= 0x80:
            if i + 1 >= len(decoded) or (decoded[i + 1] & 0xC0) != 0x80:
                malformed += 1
    return malformed


@typechecked
def detect_encoding(
    sample: bytes,
    candidates: Sequence[str] = DETECTION_CANDIDATES,
) -> str:
    """Return the most plausible encoding name for *sample*.

    A candidate that decodes the sample to exactly the same text as UTF-8
    does (plain ASCII through Shift-JIS or EUC-JP, for instance) carries no
    evidence and is skipped, as is any candidate that cannot decode it.

    Args:
        sample: Raw bytes received from the device.
        candidates: Encoding names (keys of ``serialcon.ENCODINGS``) to try,
            in tie-break order.

    Returns:
        An encoding name.  ``"UTF-8"`` when the sample is empty or no
        candidate beats the baseline.
    """
    if not sample:
        return DEFAULT_ENCODING

    baseline_text: Optional[str]
    try:
        baseline_text = sample.decode("utf-8")
    except UnicodeDecodeError:
        baseline_text = None

    best_name = DEFAULT_ENCODING
    lowest = len(sample)

    for name in candidates:
        try:
            text = sample.decode(ENCODINGS[name])
        except UnicodeDecodeError as exc:
            logger.debug("[DETECT] %s rejected: %s", name, exc)
            continue

        if text == baseline_text:
            logger.debug("[DETECT] %s reads the same as %s, skipped", name, DEFAULT_ENCODING)
            continue

        malformed = count_malformed(text.encode("utf-8"))
        logger.debug("[DETECT] %s: %d malformed bytes", name, malformed)

        if malformed < lowest:
            lowest = malformed
            best_name = name

    logger.info(
        "[DETECT] Detected %s from %d-byte sample (%d malformed)",
        best_name, len(sample), lowest,
    )
    return best_name


class SessionDecoder:
    """Convert raw link bytes to UTF-8 bytes for display and logging.

    UTF-8 sessions pass bytes through untouched.  Other encodings go through
    an incremental decoder, so a multibyte character split across two reads
    is emitted once its trailing bytes arrive.  A chunk that fails to decode
    is returned raw, together with any bytes held back from the previous
    chunk, and the decoder is reset.  ``flush()`` releases what is still held
    when the session ends.
    """

    def __init__(self, encoding: str) -> None:
        self.encoding = encoding
        self.passthrough = ENCODINGS[encoding] == "utf-8"
        self._decoder = None
        if not self.passthrough:
            self._decoder = codecs.getincrementaldecoder(ENCODINGS[encoding])("strict")

    def decode(self, data: bytes) -> bytes:
        """Return the display bytes for one received chunk (may be ``b""``)."""
        if self._decoder is None:
            return data
        # Bytes held back from the previous chunk (an incomplete character)
        pending, _ = self._decoder.getstate()
        try:
            return self._decoder.decode(data, False).encode("utf-8")
        except UnicodeDecodeError as exc:
            logger.warning(
                "[DECODE] %d bytes are not valid %s (%s), passing them through raw",
                len(pending) + len(data), self.encoding, exc,
            )
            self._decoder.reset()
            return pending + data

    def flush(self) -> bytes:
        """Return whatever the decoder still holds at the end of a session.

        An incomplete trailing character is returned as its raw bytes.
        """
        if self._decoder is None:
            return b""
        pending, _ = self._decoder.getstate()
        try:
            output = self._decoder.decode(b"", True).encode("utf-8")
        except UnicodeDecodeError as exc:
            logger.warning(
                "[DECODE] Session ended inside a %s character (%s), passing %d bytes through raw",
                self.encoding, exc, len(pending),
            )
            output = pending
        self._decoder.reset()
        return output
