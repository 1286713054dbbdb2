"""
mcbridge - Safe protocol bridge between an AI assistant and local engines.

A stdio JSON-RPC server that lets an assistant drive a sandboxed engine:
the built-in filesystem editor or a Terraform-compatible provisioning CLI.

Architecture:
- One session per process, rooted at a fixed project directory
- Read-only tools run immediately
- Destructive tools are staged, confirmed with a single-use token,
  backed up, and only then executed
- Everything the bridge keeps on disk lives in .mcbridge/
"""

__version__ = "0.3.0"
__author__ = "mcbridge contributors"
__license__ = "Apache-2.0"

from mcbridge.core.context import ServerContext
from mcbridge.core.supervisor import ExecutionSupervisor
from mcbridge.server import BridgeServer

__all__ = [
    "BridgeServer",
    "ExecutionSupervisor",
    "ServerContext",
    "__version__",
]
