from typing import Any, Dict, List
import jsonschema


# JSON Schema for one record on the wire: {"type": <string>, "payload": <string>}
LOG_ENVELOPE_SCHEMA = {
    "type": "object",
    "required": ["type", "payload"],
    "properties": {
        "type": {"type": "string"},
        "payload": {"type": "string"}
    }
}

# JSON Schema for the settings file after the secret has been resolved
CONFIG_SCHEMA = {
    "type": "object",
    "required": ["stream", "cache", "retry", "ui", "output"],
    "properties": {
        "stream": {
            "type": "object",
            "required": ["base_url"],
            "properties": {
                "base_url": {"type": "string", "minLength": 1},
                "secret_env": {"type": "string"},
                "secret": {"type": ["string", "null"]},
                "connect_timeout_seconds": {"type": "number", "exclusiveMinimum": 0},
                "read_timeout_seconds": {"type": ["number", "null"], "exclusiveMinimum": 0},
                "reconnect": {"type": "boolean"}
            }
        },
        "cache": {
            "type": "object",
            "required": ["max_capacity", "time_to_idle_seconds"],
            "properties": {
                "max_capacity": {"type": "integer", "minimum": 0},
                "time_to_idle_seconds": {"type": "number", "exclusiveMinimum": 0}
            }
        },
        "retry": {
            "type": "object",
            "required": ["attempts", "backoff_seconds"],
            "properties": {
                "attempts": {"type": "integer", "minimum": 1},
                "backoff_seconds": {"type": "number", "minimum": 0}
            }
        },
        "ui": {
            "type": "object",
            "properties": {
                "max_items": {"type": "integer", "minimum": 1}
            }
        },
        "output": {
            "type": "object",
            "properties": {
                "log_file": {"type": "string", "minLength": 1}
            }
        }
    }
}


def _collect_errors(data: Any, schema: Dict[str, Any]) -> List[str]:
    validator = jsonschema.Draft7Validator(schema)
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.path)):
        location = ".".join(str(p) for p in error.path) or "<root>"
        errors.append(f"{location}: {error.message}")
    return errors


def validate_log_envelope(data: Any) -> List[str]:
    """Validate a decoded wire record and return list of validation errors."""
    return _collect_errors(data, LOG_ENVELOPE_SCHEMA)


def validate_config(config: Any) -> List[str]:
    """Validate a loaded configuration dict and return list of validation errors."""
    return _collect_errors(config, CONFIG_SCHEMA)
