import json
import logging
import re
from typing import Union
from tracetail.models import (
    TRACE_ID_MAX,
    LogItem,
    RawLogItem,
    StructuredLogItem,
    TraceLogItem,
    TrivialLogItem,
)
from tracetail.utils.validators import validate_log_envelope


logger = logging.getLogger(__name__)

# Unsigned decimal, optional leading '+'
_TRACE_ID_PATTERN = re.compile(r'\+?[0-9]+')


def parse_trivial(text: str) -> TrivialLogItem:
    """Parse ``tag: content``, splitting on the first ``": "``."""
    parts = text.split(": ", 1)
    if len(parts) != 2:
        raise ValueError(f"Invalid log item: {text}")
    return TrivialLogItem(tag=parts[0], content=parts[1])


def parse_trace_id(text: str) -> int:
    if not _TRACE_ID_PATTERN.fullmatch(text):
        raise ValueError(f"Invalid trace id: {text!r}")
    value = int(text)
    if value > TRACE_ID_MAX:
        raise ValueError(f"Trace id out of range: {text}")
    return value


def parse_trace(text: str) -> TraceLogItem:
    """Parse ``[trace_id duration] tag: content``."""
    if not text.startswith("["):
        raise ValueError("Invalid log item")
    text = text[1:]

    parts = text.split("] ", 1)
    if len(parts) != 2:
        raise ValueError("Invalid log item")

    trace_parts = parts[0].split(" ", 1)
    if len(trace_parts) != 2:
        raise ValueError("Invalid log item")

    return TraceLogItem(
        trace_id=parse_trace_id(trace_parts[0]),
        duration=trace_parts[1],
        content=parse_trivial(parts[1]),
    )


def parse_structured(line: str) -> StructuredLogItem:
    """Parse a log payload into its structured form.

    Never raises: text matching neither grammar comes back as ``RawLogItem``.
    """
    if line.startswith("["):
        try:
            return parse_trace(line)
        except ValueError as e:
            logger.warning(f"Failed to parse trace log item: {e}")
            return RawLogItem(line)

    try:
        return parse_trivial(line)
    except ValueError as e:
        logger.debug(f"Failed to parse trivial log item: {e}")
        return RawLogItem(line)


def decode_log_item(raw_line: Union[str, bytes]) -> LogItem:
    """Decode one wire record ``{"type": ..., "payload": ...}`` into a LogItem.

    Raises:
        ValueError: the line is not valid JSON or does not have the envelope shape.
    """
    if isinstance(raw_line, bytes):
        raw_line = raw_line.decode("utf-8", errors="replace")

    try:
        obj = json.loads(raw_line)
    except json.JSONDecodeError as e:
        raise ValueError(f"Failed to parse: {raw_line!r} ({e})") from e

    errors = validate_log_envelope(obj)
    if errors:
        raise ValueError(f"Failed to parse: {raw_line!r} ({'; '.join(errors)})")

    return LogItem(log_type=obj["type"], payload=parse_structured(obj["payload"]))
