import asyncio
import socket
import threading
import time
import pytest
from tracetail.orchestrator import ApplicationState, IngestionSession, KeyEvent, LogTailApp
from tracetail.orchestrator import main
from tracetail.utils import TraceCache


RECORD = b'{"type": "log", "payload": "worker: started"}\n'


class StallingServer:
    """Serves one chunked NDJSON record, then holds the connection open silently."""

    def __init__(self, extra_headers=b""):
        self.extra_headers = extra_headers
        self.released = threading.Event()
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(1)
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    @property
    def base_url(self):
        host, port = self.sock.getsockname()
        return f"http://{host}:{port}"

    def _serve(self):
        conn, _ = self.sock.accept()
        with conn:
            request = b""
            while b"\r\n\r\n" not in request:
                data = conn.recv(1024)
                if not data:
                    return
                request += data
            conn.sendall(
                b"HTTP/1.1 200 OK\r\n"
                b"Content-Type: application/x-ndjson\r\n"
                b"Transfer-Encoding: chunked\r\n"
                + self.extra_headers
                + b"\r\n"
                + b"%x\r\n%s\r\n" % (len(RECORD), RECORD)
            )
            self.released.wait(30)

    def release(self):
        self.released.set()

    def close(self):
        self.release()
        self.sock.close()
        self.thread.join(5)


class FakeTerminal:
    def __init__(self):
        self.restored = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.restored = True

    def draw(self, renderable):
        pass


class NoInput:
    def poll(self):
        return False

    def read(self):  # pragma: no cover - poll never reports input
        return KeyEvent("")


@pytest.fixture(params=[b"", b"Connection: close\r\n"], ids=["keep-alive", "connection-close"])
def server(request):
    server = StallingServer(request.param)
    yield server
    server.close()


class TestRunTuiShutdown:
    def test_cancel_returns_while_stream_is_quiet(self, server, monkeypatch):
        terminal = FakeTerminal()
        monkeypatch.setattr(main, "TerminalSession", lambda console: terminal)
        monkeypatch.setattr(main, "KeyboardInput", NoInput)

        traces = TraceCache(10, 60)
        session = IngestionSession.establish(server.base_url, traces, connect_timeout=5)
        tail_app = LogTailApp(ApplicationState(traces=traces, session=session))

        async def cancel_after_first_record():
            task = asyncio.create_task(main._run_tui(tail_app))
            while tail_app.state.counter == 0 and not task.done():
                await asyncio.sleep(0.05)
            # Let the next step block on the silent socket
            await asyncio.sleep(0.3)
            task.cancel()
            started = time.monotonic()
            done, _ = await asyncio.wait({task}, timeout=5)
            elapsed = time.monotonic() - started
            if not done:
                # Unstick the reader so the event loop can still shut down
                server.release()
                await asyncio.wait({task})
            return task, elapsed

        task, elapsed = asyncio.run(cancel_after_first_record())

        assert elapsed < 5
        assert task.cancelled()
        assert terminal.restored
        assert tail_app.state.counter == 1
        assert session.closed
