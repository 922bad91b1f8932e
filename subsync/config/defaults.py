# Subsync Default Configuration
# Full default configuration as Python dict and YAML generator

import copy
from typing import Any

import yaml

DEFAULT_CONFIG: dict[str, Any] = {
    "remote": {
        "base_url": "http://localhost:3000/api",
        "token": None,
        "timeout": 30.0,
    },
    "sync": {
        "sync_interval": 60000,
        "max_retry_attempts": 3,
        "conflict_resolution": "LAST_WRITE_WINS",
        "auto_sync": True,
    },
    "storage": {
        "data_dir": "~/.config/subsync/data",
    },
    "output": {
        "verbose": False,
        "colored": True,
        "log_level": "WARNING",
        "log_file": None,
    },
}


def default_config() -> dict[str, Any]:
    """Return a deep copy of the default configuration."""
    return copy.deepcopy(DEFAULT_CONFIG)


def generate_default_config() -> str:
    """Generate default configuration as YAML string with comments."""
    header = """# subsync configuration
#
# remote:  subscription API the local replica is reconciled against.
#          The token can also be supplied through SUBSYNC_TOKEN.
# sync:    reconciliation engine settings.
#          sync_interval is in milliseconds.
#          conflict_resolution: LAST_WRITE_WINS, SERVER_WINS or CLIENT_WINS
# storage: where the operation queue and local replica are kept.

"""
    return header + yaml.dump(DEFAULT_CONFIG, default_flow_style=False, sort_keys=False, allow_unicode=True)
