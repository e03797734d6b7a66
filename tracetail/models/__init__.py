from .log_item import (
    TRACE_ID_MAX,
    LogItem,
    RawLogItem,
    StructuredLogItem,
    TraceId,
    TraceItem,
    TraceLogItem,
    TrivialLogItem,
)
from .action import Action

__all__ = [
    "TRACE_ID_MAX", "LogItem", "RawLogItem", "StructuredLogItem", "TraceId",
    "TraceItem", "TraceLogItem", "TrivialLogItem", "Action",
]
