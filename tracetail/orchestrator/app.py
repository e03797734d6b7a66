import asyncio
import logging
from typing import Callable, Dict, Optional
from rich.console import RenderableType
from tracetail.models import Action, LogItem
from tracetail.orchestrator.engine import KeyEvent
from tracetail.orchestrator.session import ConnectionClosed, IngestionSession, MalformedRecord
from tracetail.orchestrator.state import ApplicationState
from tracetail.orchestrator.views import build_view


logger = logging.getLogger(__name__)

KEY_BINDINGS: Dict[str, Action] = {
    "q": Action.QUIT,
}


class KeyBindingHandler:
    """Maps key presses to actions; unknown keys are ignored."""

    def __init__(self, bindings: Optional[Dict[str, Action]] = None):
        self.bindings = bindings if bindings is not None else KEY_BINDINGS

    def handle_input_event(self, event: KeyEvent, tx: "asyncio.Queue[Action]") -> None:
        action = self.bindings.get(event.key)
        if action is not None:
            tx.put_nowait(action)


class LogTailApp:
    """Live tail of one log stream."""

    def __init__(
        self,
        state: ApplicationState,
        reconnect: Optional[Callable[[], IngestionSession]] = None,
    ):
        self.state = state
        self._reconnect = reconnect

    def create_input_event_handler(self) -> KeyBindingHandler:
        return KeyBindingHandler()

    def handle_action(self, action: Action) -> None:
        if action is Action.QUIT:
            self.state.should_quit = True

    def _require_session(self) -> IngestionSession:
        if self.state.session is None:
            raise ConnectionClosed("No open session")
        return self.state.session

    def _skip(self, error: MalformedRecord) -> None:
        self.state.skipped += 1
        logger.warning(f"Skipping malformed record: {error.raw_line!r} ({error.reason})")

    def _lost_connection(self, error: ConnectionClosed) -> Callable[[], IngestionSession]:
        """Mark the stream down; return the reconnect callable or re-raise."""
        self.state.connected = False
        if self._reconnect is None:
            raise error
        logger.warning("Log stream closed, reconnecting")
        return self._reconnect

    def _reconnected(self, session: IngestionSession) -> None:
        self.state.session = session
        self.state.connected = True
        self.state.reconnects += 1

    def ingest_one(self) -> Optional[LogItem]:
        """Blocking variant of ``update`` for the non-interactive commands.

        Returns None when the line was skipped or the stream was reopened.
        """
        session = self._require_session()
        try:
            item = session.step()
        except MalformedRecord as e:
            self._skip(e)
            return None
        except ConnectionClosed as e:
            self._reconnected(self._lost_connection(e)())
            return None
        self.state.record(item)
        return item

    async def update(self) -> None:
        session = self._require_session()
        # The network read runs off the event loop so key presses keep queueing;
        # state is only touched back here on the loop
        try:
            item = await asyncio.to_thread(session.step)
        except MalformedRecord as e:
            self._skip(e)
            return
        except ConnectionClosed as e:
            reconnect = self._lost_connection(e)
            self._reconnected(await asyncio.to_thread(reconnect))
            return
        self.state.record(item)

    def draw(self) -> RenderableType:
        return build_view(self.state)

    def should_quit(self) -> bool:
        return self.state.should_quit

    def abort(self) -> None:
        if self.state.session is not None:
            self.state.session.abort()

    def close(self) -> None:
        if self.state.session is not None:
            self.state.session.close()
