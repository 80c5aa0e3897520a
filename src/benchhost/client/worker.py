"""Executor process entry point.

Usage::

    python -m benchhost.client.worker <build root> <case name pattern>

Messages for the host are written to stdout as single JSON lines prefixed
with :data:`MESSAGE_PREFIX`; anything else the suites print is passed
through and logged by the host at debug level.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any

from benchhost.client.runner import load_index, run_suites
from benchhost.host.channel import serialize_error

MESSAGE_PREFIX = "::benchhost::"


def encode_message(message: Any) -> str:
    if isinstance(message, BaseException):
        message = {"e": serialize_error(message)}
    return MESSAGE_PREFIX + json.dumps(message)


def decode_message(line: str) -> Any | None:
    """Parse a message line, or return None for ordinary output."""
    if not line.startswith(MESSAGE_PREFIX):
        return None
    return json.loads(line[len(MESSAGE_PREFIX):])


def post_message(message: Any) -> None:
    sys.stdout.write(encode_message(message) + "\n")
    sys.stdout.flush()


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) not in (1, 2):
        sys.stderr.write("usage: python -m benchhost.client.worker ROOT [PATTERN]\n")
        return 2
    root = args[0]
    pattern = args[1] if len(args) > 1 else ""
    asyncio.run(run_suites(post_message, load_index(root), pattern))
    return 0


if __name__ == "__main__":
    sys.exit(main())
