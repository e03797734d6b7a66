from typing import Tuple
from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from tracetail.models import LogItem, RawLogItem, TraceLogItem, TrivialLogItem
from tracetail.orchestrator.state import ApplicationState


def describe_item(item: LogItem) -> Tuple[str, str, str]:
    """Return (kind, tag, content) for one record."""
    payload = item.payload
    if isinstance(payload, TraceLogItem):
        return (f"trace {payload.trace_id} {payload.duration}",
                payload.content.tag, payload.content.content)
    if isinstance(payload, TrivialLogItem):
        return item.log_type, payload.tag, payload.content
    if isinstance(payload, RawLogItem):
        return "raw", "", payload.line
    return item.log_type, "", str(payload)


def _recent_table(state: ApplicationState, limit: int) -> Table:
    table = Table(title="Recent Records", expand=True)
    table.add_column("Kind", style="cyan", no_wrap=True)
    table.add_column("Tag", style="magenta", no_wrap=True)
    table.add_column("Content", style="white", overflow="fold")
    items = list(state.recent)[-limit:]
    for item in reversed(items):
        kind, tag, content = describe_item(item)
        style = "dim" if isinstance(item.payload, RawLogItem) else None
        table.add_row(kind, tag, content, style=style)
    return table


def _trace_table(state: ApplicationState, limit: int) -> Table:
    table = Table(title="Traces", expand=True)
    table.add_column("Trace", style="cyan", justify="right", no_wrap=True)
    table.add_column("Duration", style="green", no_wrap=True)
    table.add_column("Tag", style="magenta", no_wrap=True)
    table.add_column("Content", style="white", overflow="fold")
    table.add_column("Idle", style="dim", justify="right", no_wrap=True)
    for trace_id, trace, idle in state.traces.snapshot()[:limit]:
        table.add_row(str(trace_id), trace.duration, trace.content.tag,
                      trace.content.content, f"{idle:.0f}s")
    return table


def build_view(state: ApplicationState, rows: int = 15) -> RenderableType:
    """Render the whole screen for the current state."""
    status = "[green]connected[/green]" if state.connected else "[red]disconnected[/red]"
    header = Table.grid(padding=(0, 2))
    header.add_column(style="cyan", justify="right", no_wrap=True)
    header.add_column(style="white")
    header.add_row("Stream", status)
    header.add_row("Records", str(state.counter))
    header.add_row("Traces", str(len(state.traces)))
    header.add_row("Skipped", str(state.skipped))
    if state.reconnects:
        header.add_row("Reconnects", str(state.reconnects))

    return Group(
        Panel(header, title="tracetail", border_style="cyan"),
        _recent_table(state, rows),
        _trace_table(state, rows),
        Text("q: quit", style="dim"),
    )
