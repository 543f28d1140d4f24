"""Load tokenvest configuration from YAML."""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .schema import Config

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def load_config(yaml_path: Optional[Union[str, Path]] = None) -> Config:
    """
    Load configuration from a YAML file.

    Sections missing from the file fall back to the schema defaults, so a
    file may override only what it needs. An empty file yields the defaults.

    Args:
        yaml_path: Path to a YAML file (defaults to the packaged
            ``tokenvest/config/defaults.yaml``)

    Returns:
        Validated Config

    Raises:
        OSError: If the file cannot be read
        yaml.YAMLError: If the file is not valid YAML
        pydantic.ValidationError: If a value fails validation
    """
    path = DEFAULTS_PATH if yaml_path is None else Path(yaml_path)
    with open(path, 'r') as f:
        data = yaml.safe_load(f)
    return config_from_dict(data)


def config_from_dict(data: Optional[Dict[str, Any]]) -> Config:
    """Build a Config from an already parsed mapping (None means defaults)."""
    return Config.from_dict(data)
