from dataclasses import dataclass
from typing import Union

TraceId = int

TRACE_ID_MAX = 2**32 - 1


@dataclass(frozen=True)
class TrivialLogItem:
    """Format: ``tag: content``"""
    tag: str
    content: str


@dataclass(frozen=True)
class TraceLogItem:
    """Format: ``[trace_id duration] tag: content``"""
    trace_id: TraceId
    duration: str
    content: TrivialLogItem


@dataclass(frozen=True)
class RawLogItem:
    """Payload that matched neither grammar, kept verbatim."""
    line: str


StructuredLogItem = Union[TraceLogItem, TrivialLogItem, RawLogItem]


@dataclass(frozen=True)
class LogItem:
    log_type: str
    payload: StructuredLogItem


@dataclass(frozen=True)
class TraceItem:
    observed_at: float
    duration: str
    content: TrivialLogItem
