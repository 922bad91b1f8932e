# Subsync Configuration Module
# Handles YAML-based configuration loading, validation, and defaults

from subsync.config.defaults import DEFAULT_CONFIG, generate_default_config
from subsync.config.loader import (
    ensure_config_exists,
    get_config_path,
    load_config,
    save_config,
    validate_config_file,
)
from subsync.config.schema import (
    ConflictStrategy,
    OutputConfig,
    RemoteConfig,
    StorageConfig,
    SubsyncConfig,
    SyncSettings,
)

__all__ = [
    # Schema
    "SubsyncConfig",
    "RemoteConfig",
    "SyncSettings",
    "StorageConfig",
    "OutputConfig",
    "ConflictStrategy",
    # Loader
    "load_config",
    "save_config",
    "get_config_path",
    "ensure_config_exists",
    "validate_config_file",
    # Defaults
    "DEFAULT_CONFIG",
    "generate_default_config",
]
