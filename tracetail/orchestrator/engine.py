"""Generic terminal application runtime.

Two activities share one unbounded queue of actions:

- the input task polls the keyboard every tick and turns key presses into
  actions; it never touches application state;
- the main loop drains queued actions, runs exactly one ``update`` step,
  checks whether it should stop, then draws.

``update`` may wait on the network for as long as it likes. Key presses
keep queueing in the meantime and are applied on the next iteration.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, ContextManager, Generic, Optional, Protocol, TypeVar


logger = logging.getLogger(__name__)

TICK_RATE = 0.25

A = TypeVar("A")


class ShutdownFailure(Exception):
    """The input task did not confirm cancellation."""


@dataclass(frozen=True)
class KeyEvent:
    key: str


class InputSource(Protocol):
    """Keyboard (or any other event device) the input task polls."""

    def poll(self) -> bool:
        """Return True if an event can be read without blocking."""
        ...

    def read(self) -> KeyEvent:
        ...


class Terminal(Protocol):
    """Screen the runtime draws on.

    Entering the context switches the terminal into application mode; leaving
    it must restore normal mode on every exit path.
    """

    def __enter__(self) -> Any:
        ...

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        ...

    def draw(self, renderable: Any) -> None:
        ...


class InputEventHandler(Protocol[A]):
    def handle_input_event(self, event: KeyEvent, tx: "asyncio.Queue[A]") -> None:
        """Translate ``event`` into zero or more actions put on ``tx``."""
        ...


class TerminalApp(Protocol[A]):
    def create_input_event_handler(self) -> InputEventHandler[A]:
        ...

    def handle_action(self, action: A) -> None:
        ...

    async def update(self) -> None:
        """Make one unit of progress. Exceptions end the run."""
        ...

    def draw(self) -> Any:
        """Return a renderable for the current state."""
        ...

    def should_quit(self) -> bool:
        ...


async def _input_loop(source: InputSource, handler: InputEventHandler[A],
                      tx: "asyncio.Queue[A]", tick_rate: float) -> None:
    while True:
        if source.poll():
            handler.handle_input_event(source.read(), tx)
            # Let the main loop run even if input keeps arriving
            await asyncio.sleep(0)
        else:
            await asyncio.sleep(tick_rate)


def spawn_input_task(source: InputSource, handler: InputEventHandler[A],
                     tx: "asyncio.Queue[A]", tick_rate: float = TICK_RATE) -> "asyncio.Task[None]":
    return asyncio.create_task(_input_loop(source, handler, tx, tick_rate), name="input-events")


def _drain_actions(app: TerminalApp[A], rx: "asyncio.Queue[A]") -> int:
    applied = 0
    while True:
        try:
            action = rx.get_nowait()
        except asyncio.QueueEmpty:
            return applied
        app.handle_action(action)
        applied += 1


async def _stop_input_task(task: "asyncio.Task[None]") -> None:
    if task.done():
        # The task ended on its own: report it, but keep shutting down
        if task.cancelled():
            logger.warning("Input event handler task was cancelled unexpectedly")
        elif task.exception() is not None:
            logger.error(f"Error in input event handler: {task.exception()!r}")
        else:
            logger.warning("Input event handler task finished unexpectedly")
        return

    task.cancel()
    await asyncio.wait({task})
    if task.cancelled():
        logger.debug("Input event handler task cancelled")
        return
    error = task.exception()
    if error is not None:
        raise ShutdownFailure(f"Input event handler failed while cancelling: {error!r}") from error
    raise ShutdownFailure("Input event handler ignored cancellation")


async def run_terminal_app(app: TerminalApp[A], terminal: Terminal, input_source: InputSource,
                           tick_rate: float = TICK_RATE) -> None:
    """Run ``app`` until it quits, its update fails, or input stops.

    The terminal is restored before any error leaves this function. An
    exception from ``update`` is logged, ends the loop and is re-raised after
    teardown.
    """
    update_error: Optional[BaseException] = None
    action_queue: "asyncio.Queue[A]" = asyncio.Queue()

    with terminal:
        task = spawn_input_task(input_source, app.create_input_event_handler(), action_queue, tick_rate)
        try:
            while True:
                _drain_actions(app, action_queue)

                try:
                    await app.update()
                except Exception as e:
                    logger.error(f"Error updating app: {e}")
                    update_error = e
                    break

                if task.done():
                    break

                if app.should_quit():
                    break

                terminal.draw(app.draw())
        finally:
            try:
                await _stop_input_task(task)
            except ShutdownFailure as failure:
                if update_error is None:
                    raise
                # Surface the update error too, as the cause
                raise failure from update_error

    if update_error is not None:
        raise update_error
