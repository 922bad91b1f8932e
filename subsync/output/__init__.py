# Subsync Output Module
# Rich console output

from subsync.output.console import Console, create_console

__all__ = [
    "Console",
    "create_console",
]
