"""Parsers for the textual output of the peer CLI and docker compose.

Each function takes raw tool output and never raises on unexpected input;
the absence of a match is reported through the return value.
"""

import re
from typing import Optional

from fabricx.constants import UNKNOWN_TX_ID
from fabricx.models import LogMessage

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")
TX_ID_PATTERNS = (
    re.compile(r"txid\s*\[([A-Za-z0-9]+)\]"),
    re.compile(r"txid:\s*([A-Za-z0-9]+)"),
)
PACKAGE_ID_LINE = re.compile(r"Package ID:\s*(?P<id>[^,\s]+),\s*Label:\s*(?P<label>\S+)")
INVOKE_RESULT = re.compile(r'result:\s*status:(\d+)\s+(?:payload:"?((?:[^"\\\n]|\\.)*)"?)?')
LOG_LINE = re.compile(
    r"^(?P<container>[^|\s]+)\s*\|\s*"
    r"(?P<timestamp>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2}))\s?"
    r"(?P<message>.*)$"
)


def clean_output(text: str) -> str:
    """Strips ANSI colour codes and blank lines."""
    stripped = ANSI_ESCAPE.sub("", text or "")
    return "\n".join(line for line in stripped.splitlines() if line.strip())


def extract_transaction_id(text: str) -> str:
    """Returns the first ``txid [ID]`` / ``txid:ID`` match, or ``"unknown"``."""
    cleaned = ANSI_ESCAPE.sub("", text or "")
    matches = []
    for pattern in TX_ID_PATTERNS:
        match = pattern.search(cleaned)
        if match:
            matches.append(match)
    if not matches:
        return UNKNOWN_TX_ID
    return min(matches, key=lambda match: match.start()).group(1)


def extract_package_id(text: str, label: str) -> Optional[str]:
    for line in clean_output(text).splitlines():
        match = PACKAGE_ID_LINE.search(line)
        if match and match.group("label") == label:
            return match.group("id")
    return None


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


def extract_invoke_payload(text: str) -> Optional[str]:
    match = INVOKE_RESULT.search(clean_output(text))
    if not match or match.group(2) is None:
        return None
    return _unescape(match.group(2))


def parse_log_line(line: str, default_container: str = "") -> LogMessage:
    """Splits a ``compose logs --timestamps`` line into container, timestamp and message."""
    cleaned = ANSI_ESCAPE.sub("", line).rstrip("\r\n")
    match = LOG_LINE.match(cleaned)
    if match:
        return LogMessage(
            timestamp=match.group("timestamp"),
            container=match.group("container"),
            message=match.group("message"),
        )
    return LogMessage(timestamp="", container=default_container, message=cleaned)
