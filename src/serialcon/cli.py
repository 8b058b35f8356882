"""Command-line interface for SerialCon."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from . import (
    DEFAULT_BAUD_RATE,
    DEFAULT_ENCODING,
    DEFAULT_LOG_PATH,
    DEFAULT_PORT,
    ENCODINGS,
    SERIAL_PARITY,
    SERIAL_STOPBITS,
    __version__,
)
from .exceptions import SerialConError
from .link import LinkHandle, list_ports
from .negotiation import BaudRateNegotiator
from .relay import TerminalRelay
from .types import LinkConfig


def choose_port() -> Optional[str]:
    """Show the available ports and let the operator pick one by number."""
    ports = list_ports()
    if not ports:
        print("Error: No serial ports found.", file=sys.stderr)
        return None

    print("Available serial ports (select one):")
    for i, info in enumerate(ports, start=1):
        print(f"  [{i}] {info.describe()}")

    try:
        answer = input("Port number: ").strip()
    except EOFError:
        print("\nError: No port selected.", file=sys.stderr)
        return None

    if not answer.isdigit() or not 1 <= int(answer) <= len(ports):
        print(f"Error: Invalid selection {answer!r}. Enter 1-{len(ports)}.", file=sys.stderr)
        return None

    return ports[int(answer) - 1].device


def build_config(args, port: str) -> LinkConfig:
    """Build the initial ``LinkConfig`` from parsed ``connect``/``probe`` arguments."""
    return LinkConfig(
        port=port,
        baud_rate=getattr(args, "baud_rate", DEFAULT_BAUD_RATE),
        parity=getattr(args, "parity", SERIAL_PARITY),
        stop_bits=getattr(args, "stop_bits", SERIAL_STOPBITS),
        encoding=getattr(args, "encoding", DEFAULT_ENCODING),
        log_path=getattr(args, "log", None) or None,
        auto_negotiate=getattr(args, "auto_negotiate", True),
        auto_detect_encoding=args.auto_detect_encoding,
    )


def command_list(args) -> int:
    """List available serial ports."""
    ports = list_ports()
    if not ports:
        print("No serial ports found.")
    else:
        print("Available serial ports:")
        for info in ports:
            print(f"  {info.describe()}")
    return 0


def command_probe(args) -> int:
    """Negotiate link parameters and report the scores without connecting."""
    try:
        base = build_config(args, args.serial_port)
        negotiator = BaudRateNegotiator(link_factory=LinkHandle, show_progress=not args.quiet)
        result = negotiator.run(args.serial_port, base)
    except SerialConError as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return 1

    print(f"Scores for {args.serial_port}:")
    for baud_rate, score in result.scores:
        print(f"  {baud_rate:>7} bps  score {score}")

    if not result.detected:
        print("No response at any baud rate.")
        return 1

    print(f"Best baud rate: {result.baud_rate} bps (score {result.score})")
    print(f"Encoding: {result.config.encoding}")
    return 0


def command_connect(args) -> int:
    """Negotiate (when enabled) and start an interactive session."""
    port = args.serial_port or choose_port()
    if not port:
        return 1

    try:
        config = build_config(args, port)
    except SerialConError as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return 1

    if config.log_path:
        print(f"Log file: {config.log_path}")

    try:
        if config.auto_negotiate:
            print(f"Connecting to {port} ...")
            print("Negotiating baud rate ...")
            negotiator = BaudRateNegotiator(link_factory=LinkHandle, show_progress=True)
            config = negotiator.run(port, config).config

        print(
            f"\nConnected: {config.port} (baud rate: {config.baud_rate}, "
            f"data bits: {config.data_bits})"
        )
        print(f"Encoding: {config.encoding}")
        print("Press Ctrl+C to exit", flush=True)

        TerminalRelay(config, link_factory=LinkHandle).run()
    except KeyboardInterrupt:
        print("\nDisconnected.")
        return 0
    except SerialConError as e:
        print(f"\nError: {str(e)}", file=sys.stderr)
        return 1

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        description="SerialCon - serial console with baud rate and encoding auto-detection"
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", default=False,
        help="Log debug output to stderr",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # List ports
    list_parser = subparsers.add_parser("list", help="List available serial ports")
    list_parser.set_defaults(func=command_list)

    # Connect
    connect_parser = subparsers.add_parser(
        "connect", help="Open an interactive session (auto-negotiates by default)",
    )
    connect_parser.add_argument(
        "serial_port", metavar="PORT", nargs="?", default=DEFAULT_PORT or None,
        help="Serial port path (e.g. /dev/ttyUSB0 or COM3). "
             "Prompts with a list of ports when omitted.",
    )
    connect_parser.add_argument(
        "--baud-rate", type=int, default=DEFAULT_BAUD_RATE,
        help=f"Baud rate, used as-is with --no-auto-negotiate and as the "
             f"fallback otherwise (default: {DEFAULT_BAUD_RATE})",
    )
    connect_parser.add_argument(
        "--encoding", choices=list(ENCODINGS), default=DEFAULT_ENCODING,
        help=f"Device text encoding (default: {DEFAULT_ENCODING})",
    )
    connect_parser.add_argument(
        "--parity", choices=["N", "O", "E"], default=SERIAL_PARITY,
        help="Parity (default: N)",
    )
    connect_parser.add_argument(
        "--stop-bits", type=int, choices=[1, 2], default=SERIAL_STOPBITS,
        help="Stop bits (default: 1)",
    )
    connect_parser.add_argument(
        "--no-auto-negotiate", dest="auto_negotiate", action="store_false",
        help="Connect with --baud-rate without probing",
    )
    connect_parser.add_argument(
        "--no-auto-detect-encoding", dest="auto_detect_encoding", action="store_false",
        help="Keep --encoding even when negotiation sees a reply",
    )
    connect_parser.add_argument(
        "--log", type=str, default=DEFAULT_LOG_PATH or None,
        help="Append the session to this file (e.g. ./logs/session.log)",
    )
    connect_parser.set_defaults(func=command_connect)

    # Probe only
    probe_parser = subparsers.add_parser(
        "probe", help="Negotiate baud rate and encoding, print the scores, and exit",
    )
    probe_parser.add_argument(
        "serial_port", metavar="PORT",
        help="Serial port path (e.g. /dev/ttyUSB0 or COM3)",
    )
    probe_parser.add_argument(
        "--no-auto-detect-encoding", dest="auto_detect_encoding", action="store_false",
        help="Skip encoding detection",
    )
    probe_parser.add_argument(
        "--quiet", action="store_true", default=False,
        help="Hide the progress bar",
    )
    probe_parser.set_defaults(func=command_probe)

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
