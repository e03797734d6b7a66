"""Live terminal viewer for streamed structured logs."""

__version__ = "0.1.0"
