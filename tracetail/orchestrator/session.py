"""Ingestion session: one open log stream, consumed one record per step."""
import logging
import time
from typing import Any, Callable, Dict, Iterable, Iterator, Optional, Union
import requests
from tracetail.models import LogItem, TraceItem, TraceLogItem
from tracetail.tools import decode_log_item
from tracetail.utils import TraceCache
from tracetail.vendors import LogStreamClient, iter_response_lines, shutdown_stream


logger = logging.getLogger(__name__)


class IngestError(Exception):
    """A step could not produce a record."""


class ConnectionClosed(IngestError):
    """The remote end closed the stream, or reading it failed."""


class MalformedRecord(IngestError):
    """A line was not a valid ``{"type", "payload"}`` record."""

    def __init__(self, raw_line: str, reason: str = ""):
        self.raw_line = raw_line
        self.reason = reason
        super().__init__(f"Malformed record: {raw_line!r}" + (f" ({reason})" if reason else ""))


class IngestionSession:
    """Owns the stream body and feeds trace records into the cache.

    Each ``step()`` reads exactly one line; callers drive it repeatedly.
    """

    def __init__(
        self,
        lines: Iterable[Union[bytes, str]],
        traces: TraceCache,
        response: Optional[requests.Response] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._lines: Iterator[Union[bytes, str]] = iter(lines)
        self._response = response
        self._clock = clock
        self.traces = traces
        self.closed = False

    @classmethod
    def establish(
        cls,
        base_url: str,
        traces: TraceCache,
        secret: Optional[str] = None,
        **client_options: Any,
    ) -> "IngestionSession":
        """Open the stream at ``base_url`` and wrap it in a session.

        Raises:
            StreamConnectionError: the stream could not be opened.
        """
        client = LogStreamClient(base_url, secret=secret, **client_options)
        return cls.from_client(client, traces)

    @classmethod
    def from_client(cls, client: LogStreamClient, traces: TraceCache) -> "IngestionSession":
        response = client.open_stream()
        return cls(iter_response_lines(response), traces, response=response)

    @classmethod
    def from_config(cls, config: Dict[str, Any], traces: TraceCache) -> "IngestionSession":
        return cls.from_client(LogStreamClient.from_config(config), traces)

    def step(self) -> LogItem:
        """Read, decode and index the next record.

        Raises:
            ConnectionClosed: no more data can be read.
            MalformedRecord: the line is not a valid record; the session stays usable.
        """
        if self.closed:
            raise ConnectionClosed("Session is closed")

        try:
            raw_line = next(self._lines, None)
        except (requests.exceptions.RequestException, OSError) as e:
            self.close()
            raise ConnectionClosed(f"Failed to read from log stream: {e}") from e

        if raw_line is None:
            self.close()
            raise ConnectionClosed("Connection closed by server? Cannot read line.")

        try:
            log_item = decode_log_item(raw_line)
        except ValueError as e:
            text = raw_line.decode("utf-8", errors="replace") if isinstance(raw_line, bytes) else raw_line
            raise MalformedRecord(text, str(e)) from e

        payload = log_item.payload
        if isinstance(payload, TraceLogItem):
            self.traces.insert(payload.trace_id, TraceItem(
                observed_at=self._clock(),
                duration=payload.duration,
                content=payload.content,
            ))

        return log_item

    def abort(self) -> None:
        """Unblock a ``step`` running in another thread.

        The pending read ends as ConnectionClosed. ``close`` must still be
        called afterwards to release the response.
        """
        self.closed = True
        if self._response is not None:
            shutdown_stream(self._response)

    def close(self) -> None:
        self.closed = True
        if self._response is not None:
            self._response.close()
