"""Baud rate auto-negotiation.

Opens the port at each candidate baud rate, sends a handful of probe
sequences that make most consoles print *something* (a bare CR, CR+LF, an
up-arrow escape, ``?``+CR), and scores every reply:

- **+1** for any reply at all;
- **+3** if it contains a prompt terminator (``>``, ``#``, ``$``, ``:``);
- **+2** if more than 70% of its bytes are printable ASCII or CR/LF/TAB.

A wrong bit rate produces framing noise, so the rate with the strictly
highest cumulative score wins; earlier candidates win ties.  Negotiation
never fails: when nothing answers, the caller's configuration comes back
unchanged.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Callable, List, Optional, Sequence

from tqdm import tqdm
from typeguard import typechecked

from . import (
    CANDIDATE_BAUD_RATES,
    PROBE_ATTEMPTS,
    PROBE_READ_SIZE,
    PROBE_READ_TIMEOUT,
    PROBE_SEQUENCES,
)
from .encoding import detect_encoding
from .exceptions import SerialCommunicationError
from .link import LinkHandle
from .types import LinkConfig, ScoreTable

logger = logging.getLogger("serialcon.negotiation")

PROMPT_CHARS = b">#$:"
PRINTABLE_RATIO = 0.7


def _is_readable(b: int) -> bool:
    return 32 <= b <= 126 or b in (13, 10, 9)


def score_response(data: bytes) -> int:
    """Score one probe reply.  An empty reply scores 0."""
    if not data:
        return 0
    score = 1
    if any(c in PROMPT_CHARS for c in data):
        score += 3
    readable = sum(1 for b in data if _is_readable(b))
    if readable / len(data) > PRINTABLE_RATIO:
        score += 2
    return score


@dataclasses.dataclass
class ProbeResult:
    """Cumulative score for one candidate baud rate.

    Attributes:
        baud_rate: The candidate rate.
        score: Sum of ``score_response`` over every probe of every attempt.
        sample: First non-empty reply received at this rate, kept verbatim.
        replies: Number of non-empty replies.
    """
    baud_rate: int
    score: int = 0
    sample: Optional[bytes] = None
    replies: int = 0

    def record(self, data: bytes) -> None:
        """Add one probe reply to the result."""
        if not data:
            return
        self.replies += 1
        self.score += score_response(data)
        if self.sample is None:
            self.sample = bytes(data)


@dataclasses.dataclass(frozen=True)
class NegotiationResult:
    """Outcome of a negotiation run.

    Attributes:
        config: The configuration to connect with.  Equal to the base
            configuration when ``detected`` is ``False``.
        detected: ``True`` if at least one candidate scored above zero.
        baud_rate: Winning baud rate, or ``None``.
        score: Winning score (0 when nothing was detected).
        encoding: Detected encoding, or ``None`` when detection did not run.
        scores: ``(baud_rate, score)`` for every candidate, in probe order.
    """
    config: LinkConfig
    detected: bool
    baud_rate: Optional[int]
    score: int
    encoding: Optional[str]
    scores: ScoreTable


@typechecked
class BaudRateNegotiator:
    """Finds the baud rate a device answers on.

    Example::

        base = LinkConfig(port="/dev/ttyUSB0")
        result = BaudRateNegotiator().run("/dev/ttyUSB0", base)
        if result.detected:
            print(f"{result.baud_rate} bps, {result.config.encoding}")
    """

    def __init__(
        self,
        baud_rates: Sequence[int] = CANDIDATE_BAUD_RATES,
        probes: Sequence[bytes] = PROBE_SEQUENCES,
        attempts: int = PROBE_ATTEMPTS,
        read_timeout: float = PROBE_READ_TIMEOUT,
        link_factory: Callable[..., LinkHandle] = LinkHandle,
        show_progress: bool = True,
    ) -> None:
        """Initialize the negotiator.

        Args:
            baud_rates: Candidate rates in priority order.
            probes: Byte sequences sent on every attempt, in order.
            attempts: Independent open/probe/close cycles per rate.
            read_timeout: Seconds to wait for a reply after each probe.
            link_factory: Builds a ``LinkHandle``; called with the port and
                the ``baud_rate``, ``bytesize``, ``parity``, ``stopbits`` and
                ``read_timeout`` keywords.
            show_progress: Show a tqdm progress bar and per-rate results.
        """
        if not baud_rates:
            raise ValueError("At least one candidate baud rate is required")
        if attempts <= 0:
            raise ValueError(f"attempts must be positive, got {attempts}")
        self.baud_rates = tuple(baud_rates)
        self.probes = tuple(probes)
        self.attempts = attempts
        self.read_timeout = read_timeout
        self.link_factory = link_factory
        self.show_progress = show_progress

    def _report(self, line: str) -> None:
        if self.show_progress:
            tqdm.write(line)

    def probe_rate(self, port: str, baud_rate: int, base_config: LinkConfig) -> ProbeResult:
        """Run every attempt at one baud rate and return its cumulative result.

        Open failures skip the attempt; write and read failures skip the
        probe.  None of them are raised.
        """
        result = ProbeResult(baud_rate=baud_rate)
        context = f"probe {port} @ {baud_rate}"

        for attempt in range(1, self.attempts + 1):
            link = self.link_factory(
                port,
                baud_rate=baud_rate,
                bytesize=base_config.data_bits,
                parity=base_config.parity,
                stopbits=base_config.stop_bits,
                read_timeout=self.read_timeout,
            )
            try:
                link.open(context=context)
            except SerialCommunicationError as exc:
                logger.debug("[NEGOTIATE] [%s] attempt %d skipped: %s", context, attempt, exc)
                continue

            try:
                for probe in self.probes:
                    try:
                        link.write(probe)
                        data = link.read(PROBE_READ_SIZE)
                    except SerialCommunicationError as exc:
                        logger.debug(
                            "[NEGOTIATE] [%s] probe %r failed: %s", context, probe, exc,
                        )
                        continue
                    if data:
                        logger.debug(
                            "[NEGOTIATE] [%s] probe %r -> %d bytes (score %d): %r",
                            context, probe, len(data), score_response(data), data[:64],
                        )
                    result.record(data)
            finally:
                link.close()

        return result

    def run(self, port: str, base_config: LinkConfig) -> NegotiationResult:
        """Probe every candidate rate and build the resulting configuration.

        Args:
            port: Port to probe.  Overrides ``base_config.port``.
            base_config: Settings to start from; its encoding is kept unless
                detection replaces it, and it is returned unchanged when no
                rate gets a reply.

        Returns:
            A ``NegotiationResult``.  Never raises for link problems.
        """
        config = dataclasses.replace(base_config, port=port)
        best: Optional[ProbeResult] = None
        scores: List[tuple] = []

        logger.info(
            "[NEGOTIATE] Probing %s at %d rates (%d attempts x %d probes each)",
            port, len(self.baud_rates), self.attempts, len(self.probes),
        )

        for baud_rate in tqdm(
            self.baud_rates,
            desc=f"Negotiating {port}",
            unit="rate",
            leave=False,
            disable=not self.show_progress,
        ):
            result = self.probe_rate(port, baud_rate, config)
            scores.append((baud_rate, result.score))

            if result.score > 0:
                logger.info("[NEGOTIATE] %d bps: %d replies, score %d", baud_rate, result.replies, result.score)
                self._report(f"  {baud_rate} bps: response (score {result.score})")
            else:
                logger.info("[NEGOTIATE] %d bps: no response", baud_rate)
                self._report(f"  {baud_rate} bps: no response")

            if result.score > (best.score if best is not None else 0):
                best = result

        if best is None:
            logger.warning(
                "[NEGOTIATE] No rate answered on %s, keeping %d bps / %s",
                port, config.baud_rate, config.encoding,
            )
            self._report(f"Negotiation failed: using {config.baud_rate} bps / {config.encoding}")
            return NegotiationResult(
                config=config,
                detected=False,
                baud_rate=None,
                score=0,
                encoding=None,
                scores=tuple(scores),
            )

        config = dataclasses.replace(config, baud_rate=best.baud_rate)
        self._report(f"Best baud rate: {best.baud_rate} bps (score {best.score})")

        detected_encoding = None
        if config.auto_detect_encoding and best.sample:
            detected_encoding = detect_encoding(best.sample)
            config = dataclasses.replace(config, encoding=detected_encoding)
            self._report(f"Detected encoding: {detected_encoding}")

        logger.info(
            "[NEGOTIATE] Selected %d bps (score %d), encoding %s",
            best.baud_rate, best.score, config.encoding,
        )

        return NegotiationResult(
            config=config,
            detected=True,
            baud_rate=best.baud_rate,
            score=best.score,
            encoding=detected_encoding,
            scores=tuple(scores),
        )


@typechecked
def negotiate(
    port: str,
    base_config: LinkConfig,
    link_factory: Callable[..., LinkHandle] = LinkHandle,
    show_progress: bool = True,
) -> LinkConfig:
    """Return *base_config* with the negotiated baud rate (and encoding).

    Falls back to *base_config* (with ``port`` set) when nothing answers.
    """
    negotiator = BaudRateNegotiator(link_factory=link_factory, show_progress=show_progress)
    return negotiator.run(port, base_config).config
