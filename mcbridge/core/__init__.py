"""
mcbridge core module.

The server context, the tool handlers and the execution supervisor that
gates destructive calls behind confirmation and backups.
"""

from mcbridge.core.context import ServerContext
from mcbridge.core.operations import HANDLERS, Preview, ToolHandler
from mcbridge.core.supervisor import ExecutionSupervisor

__all__ = [
    "ExecutionSupervisor",
    "HANDLERS",
    "Preview",
    "ServerContext",
    "ToolHandler",
]
