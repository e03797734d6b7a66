import codecs
import logging
import os
import select
import sys
from typing import Any, List, Optional, TextIO
from rich.console import Console
from rich.live import Live
from rich.text import Text
from tracetail.orchestrator.engine import KeyEvent


logger = logging.getLogger(__name__)


class RawMode:
    """Put a POSIX TTY into cbreak mode for the duration of a ``with`` block.

    Does nothing when the stream is not a terminal (pipes, tests, Windows).
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdin
        self.enabled = False
        self._saved: Optional[List[Any]] = None

    def __enter__(self) -> "RawMode":
        if os.name != "posix" or not self.stream.isatty():
            return self
        import termios
        import tty
        fd = self.stream.fileno()
        self._saved = termios.tcgetattr(fd)
        tty.setcbreak(fd)
        self.enabled = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self.enabled:
            return
        import termios
        termios.tcsetattr(self.stream.fileno(), termios.TCSADRAIN, self._saved)
        self.enabled = False


class TerminalSession:
    """Raw input plus the alternate screen, released on every exit path."""

    def __init__(self, console: Console, stream: Optional[TextIO] = None):
        self.console = console
        self._raw = RawMode(stream)
        self._live = Live(
            Text("Connecting..."),
            console=console,
            screen=True,
            auto_refresh=False,
            redirect_stdout=False,
            redirect_stderr=False,
        )

    def __enter__(self) -> "TerminalSession":
        self._raw.__enter__()
        try:
            self._live.start(refresh=True)
        except BaseException:
            self._raw.__exit__(None, None, None)
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self._live.stop()
        finally:
            self._raw.__exit__(exc_type, exc, tb)

    def draw(self, renderable: Any) -> None:
        self._live.update(renderable, refresh=True)


class KeyboardInput:
    """Non-blocking key reader over a TTY file descriptor."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdin
        self._pending: List[str] = []
        # Multibyte keys can arrive split across reads
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="ignore")

    def poll(self) -> bool:
        if self._pending:
            return True
        ready, _, _ = select.select([self.stream.fileno()], [], [], 0)
        return bool(ready)

    def read(self) -> KeyEvent:
        if not self._pending:
            data = os.read(self.stream.fileno(), 64)
            if not data:
                raise EOFError("Input stream closed")
            self._pending.extend(_split_keys(self._decoder.decode(data)))
        if not self._pending:
            return KeyEvent("")
        return KeyEvent(self._pending.pop(0))


def _split_keys(text: str) -> List[str]:
    """Split raw terminal input into keys, keeping escape sequences whole."""
    keys = []
    i = 0
    while i < len(text):
        if text[i] == "\x1b" and i + 2 < len(text) and text[i + 1] == "[":
            keys.append(text[i:i + 3])
            i += 3
            continue
        keys.append(text[i])
        i += 1
    return keys
