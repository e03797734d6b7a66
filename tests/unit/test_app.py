import asyncio
import itertools
import pytest
from rich.console import Console
from tracetail.models import Action, RawLogItem, TrivialLogItem
from tracetail.orchestrator import (
    ApplicationState,
    ConnectionClosed,
    IngestionSession,
    KeyEvent,
    LogTailApp,
    run_terminal_app,
)
from tracetail.orchestrator.app import KeyBindingHandler
from tracetail.utils import TraceCache


def record(payload: str) -> bytes:
    return ('{"type":"log","payload":"%s"}' % payload).encode()


def make_app(lines, reconnect=None, max_items=200):
    traces = TraceCache(100, 60)
    state = ApplicationState(traces=traces, session=IngestionSession(lines, traces), max_items=max_items)
    return LogTailApp(state, reconnect=reconnect)


class FakeTerminal:
    def __init__(self):
        self.restored = False
        self.frames = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.restored = True

    def draw(self, renderable):
        self.frames.append(renderable)


class ScriptedInput:
    def __init__(self, keys=()):
        self.keys = list(keys)

    def poll(self):
        return bool(self.keys)

    def read(self):
        return KeyEvent(self.keys.pop(0))


class TestLogTailAppUpdate:
    def test_trivial_record_reaches_state(self):
        app = make_app([record("worker: started")])

        asyncio.run(app.update())

        assert app.state.last_item.payload == TrivialLogItem(tag="worker", content="started")
        assert app.state.counter == 1
        assert len(app.state.traces) == 0

    def test_trace_record_reaches_cache(self):
        app = make_app([record("[42 120ms] db: query ok")])

        asyncio.run(app.update())

        trace = app.state.traces.get(42)
        assert trace.duration == "120ms"
        assert trace.content == TrivialLogItem(tag="db", content="query ok")

    def test_garbled_record_is_raw(self):
        app = make_app([record("garbled nonsense")])

        asyncio.run(app.update())

        assert app.state.last_item.payload == RawLogItem("garbled nonsense")
        assert len(app.state.traces) == 0

    def test_malformed_line_is_skipped(self):
        app = make_app([b"not json", record("a: b")])

        asyncio.run(app.update())
        asyncio.run(app.update())

        assert app.state.skipped == 1
        assert app.state.counter == 1
        assert app.state.last_item.payload == TrivialLogItem("a", "b")

    def test_connection_closed_propagates(self):
        app = make_app([])

        with pytest.raises(ConnectionClosed):
            asyncio.run(app.update())
        assert app.state.connected is False

    def test_reconnect_replaces_session(self):
        traces_holder = {}

        def reconnect():
            return IngestionSession([record("b: 2")], traces_holder["traces"])

        app = make_app([record("a: 1")], reconnect=reconnect)
        traces_holder["traces"] = app.state.traces

        asyncio.run(app.update())
        asyncio.run(app.update())
        asyncio.run(app.update())

        assert app.state.reconnects == 1
        assert app.state.connected is True
        assert [item.payload.tag for item in app.state.recent] == ["a", "b"]

    def test_recent_items_are_bounded(self):
        app = make_app([record(f"t: {n}") for n in range(5)], max_items=2)

        for _ in range(5):
            app.ingest_one()

        assert app.state.counter == 5
        assert [item.payload.content for item in app.state.recent] == ["3", "4"]

    def test_quit_action_sets_flag(self):
        app = make_app([])

        app.handle_action(Action.QUIT)

        assert app.should_quit()

    def test_draw_renders_state(self):
        app = make_app([record("worker: started"), record("[42 120ms] db: query ok")])
        app.ingest_one()
        app.ingest_one()
        console = Console(record=True, width=120)

        console.print(app.draw())
        text = console.export_text()

        assert "worker" in text
        assert "120ms" in text
        assert "q: quit" in text


class TestKeyBindingHandler:
    def test_q_sends_quit(self):
        queue = asyncio.Queue()

        KeyBindingHandler().handle_input_event(KeyEvent("q"), queue)

        assert queue.get_nowait() is Action.QUIT

    def test_unmapped_keys_are_ignored(self):
        queue = asyncio.Queue()

        KeyBindingHandler().handle_input_event(KeyEvent("x"), queue)

        assert queue.empty()


class TestEndToEnd:
    def test_quit_while_streaming(self):
        app = make_app(itertools.repeat(record("[7 1ms] tick: ok")))
        terminal = FakeTerminal()

        asyncio.run(run_terminal_app(app, terminal, ScriptedInput(["q"]), tick_rate=0.01))

        assert app.state.should_quit
        assert app.state.counter >= 1
        assert 7 in app.state.traces
        assert terminal.restored

    def test_connection_close_terminates_and_restores_terminal(self):
        app = make_app([record("worker: started")])
        terminal = FakeTerminal()

        with pytest.raises(ConnectionClosed):
            asyncio.run(run_terminal_app(app, terminal, ScriptedInput(), tick_rate=0.01))

        assert terminal.restored
        assert app.state.counter == 1
        assert len(terminal.frames) == 1
