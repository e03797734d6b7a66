from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Counter as CounterType, Deque, Optional
from tracetail.models import LogItem
from tracetail.utils import TraceCache
from tracetail.orchestrator.session import IngestionSession


@dataclass
class ApplicationState:
    """Everything the main loop owns for one viewing session.

    Only the main loop mutates this; the input task talks to it through actions.
    """
    traces: TraceCache
    session: Optional[IngestionSession] = None
    counter: int = 0
    should_quit: bool = False
    skipped: int = 0
    reconnects: int = 0
    connected: bool = True
    max_items: int = 200
    recent: Deque[LogItem] = field(init=False)
    kinds: CounterType[type] = field(default_factory=Counter)

    def __post_init__(self):
        self.recent = deque(maxlen=self.max_items)

    @property
    def last_item(self) -> Optional[LogItem]:
        return self.recent[-1] if self.recent else None

    def record(self, item: LogItem) -> None:
        self.recent.append(item)
        self.kinds[type(item.payload)] += 1
        self.counter += 1
