from .config_loader import load_config, DEFAULT_CONFIG_PATH
from .trace_cache import TraceCache
from .validators import validate_config, validate_log_envelope

__all__ = [
    "load_config", "DEFAULT_CONFIG_PATH", "TraceCache",
    "validate_config", "validate_log_envelope",
]
