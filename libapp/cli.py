"""Process argument parsing for applications built on libapp."""

import argparse
from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass
class ProcessArguments:
    port: Optional[int] = None
    environment: Optional[str] = None
    debug: bool = False
    verbose: bool = False


def build_parser(prog: Optional[str] = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description="Run a libapp web application")
    parser.add_argument("-p", "--port", type=int, help="Port to listen on")
    parser.add_argument("-e", "--environment", help="Config environment (e.g. dev, prod, debug)")
    parser.add_argument("-d", "--debug", action="store_true", help="Serve unminified assets and log at DEBUG")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log framework progress")
    return parser


def parse_process_arguments(argv: Optional[Sequence[str]] = None,
                            prog: Optional[str] = None) -> ProcessArguments:
    """Parse the known flags; anything else on the command line is left to the application."""
    namespace, _ = build_parser(prog).parse_known_args(argv)
    return ProcessArguments(
        port=namespace.port,
        environment=namespace.environment,
        debug=namespace.debug,
        verbose=namespace.verbose,
    )
