from .engine import KeyEvent, ShutdownFailure, run_terminal_app
from .session import ConnectionClosed, IngestError, IngestionSession, MalformedRecord
from .state import ApplicationState
from .app import LogTailApp

__all__ = [
    "KeyEvent", "ShutdownFailure", "run_terminal_app",
    "ConnectionClosed", "IngestError", "IngestionSession", "MalformedRecord",
    "ApplicationState", "LogTailApp",
]
