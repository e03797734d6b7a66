import socket
import time
import logging
from typing import Any, Dict, Iterator, Optional
from urllib.parse import urljoin
import requests


logger = logging.getLogger(__name__)

LOGS_PATH = "/logs"
MIN_LEVEL = "trace"


class StreamConnectionError(Exception):
    """The log stream could not be opened."""


class LogStreamClient:
    """Opens the long-lived ``GET /logs?level=trace`` stream of a log source."""

    def __init__(
        self,
        base_url: str,
        secret: Optional[str] = None,
        connect_timeout: float = 10.0,
        read_timeout: Optional[float] = None,
        retry_config: Optional[Dict[str, Any]] = None,
    ):
        self.base_url = base_url
        self.url = urljoin(base_url, LOGS_PATH)
        self.secret = secret
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.retry_config = retry_config or {"attempts": 1, "backoff_seconds": 0}

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "LogStreamClient":
        stream = config['stream']
        return cls(
            base_url=stream['base_url'],
            secret=stream.get('secret'),
            connect_timeout=stream.get('connect_timeout_seconds', 10.0),
            read_timeout=stream.get('read_timeout_seconds'),
            retry_config=config.get('retry'),
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/x-ndjson, application/json"}
        if self.secret:
            headers["Authorization"] = f"Bearer {self.secret}"
        return headers

    def open_stream(self) -> requests.Response:
        """Send the streaming request and return the open response.

        The body is left unread; iterate it with ``iter_lines``.
        """
        attempts = self.retry_config['attempts']
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                response = requests.get(
                    self.url,
                    params={"level": MIN_LEVEL},
                    headers=self._headers(),
                    stream=True,
                    timeout=(self.connect_timeout, self.read_timeout),
                )
                if response.status_code == 200:
                    logger.info(f"Connected to log stream at {self.url}")
                    return response

                last_error = StreamConnectionError(
                    f"Log source returned {response.status_code} for {self.url}"
                )
                response.close()
                logger.error(str(last_error))

            except requests.exceptions.RequestException as e:
                last_error = e
                logger.error(f"Request to {self.url} failed: {e}")

            if attempt < attempts - 1:
                backoff = self.retry_config['backoff_seconds'] * (2 ** attempt)
                logger.warning(f"Retrying connection in {backoff}s...")
                time.sleep(backoff)

        raise StreamConnectionError(
            f"Failed to open log stream after {attempts} attempts: {last_error}"
        ) from last_error


def iter_response_lines(response: requests.Response) -> Iterator[bytes]:
    """Yield body lines as they arrive.

    ``chunk_size=None`` hands over data as soon as the transport receives it
    instead of waiting for a fixed-size buffer to fill.
    """
    return response.iter_lines(chunk_size=None)


def _stream_socket(response: requests.Response) -> Optional[socket.socket]:
    raw = getattr(response, "raw", None)
    sock = getattr(getattr(raw, "connection", None), "sock", None)
    if sock is None:
        # http.client drops the connection's socket on "Connection: close"
        # responses; the body file still wraps it
        body = getattr(getattr(raw, "_fp", None), "fp", None)
        sock = getattr(getattr(body, "raw", None), "_sock", None)
    return sock


def shutdown_stream(response: requests.Response) -> None:
    """Wake any thread blocked reading ``response`` with end-of-stream.

    Unlike ``response.close()`` this takes no locks held by the reader, so it
    is safe to call from another thread while a read is in flight.
    """
    sock = _stream_socket(response)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        logger.debug(f"Log stream socket already shut down: {e}")
