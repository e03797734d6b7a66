import os
import yaml
from pathlib import Path
from typing import Dict, Any, Union
from tracetail.utils.validators import validate_config


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "settings.yaml"


def load_config(config_path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    # Load environment variables
    from dotenv import load_dotenv
    load_dotenv()

    # Resolve the optional bearer secret from the environment
    stream = config.get('stream')
    if isinstance(stream, dict):
        secret_env = stream.get('secret_env')
        stream['secret'] = (os.getenv(secret_env) or None) if secret_env else None

    errors = validate_config(config)
    if errors:
        raise ValueError(f"Invalid configuration in {config_path}: " + "; ".join(errors))

    return config
