"""Configuration schema and loaders."""

from .loader import config_from_dict, load_config
from .schema import Config, LockupSettings, TransferSettings, VestingSettings

__all__ = [
    "Config",
    "LockupSettings",
    "TransferSettings",
    "VestingSettings",
    "config_from_dict",
    "load_config",
]
