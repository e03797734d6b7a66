from .log_stream_client import LogStreamClient, StreamConnectionError, iter_response_lines, shutdown_stream

__all__ = ["LogStreamClient", "StreamConnectionError", "iter_response_lines", "shutdown_stream"]
