"""
Protocol layer: JSON-RPC 2.0 framing, the tool catalogue and method dispatch.

Client  --frame-->  StdioTransport.decode  -->  Dispatcher  -->  handler
Client  <--frame--  StdioTransport.send    <--  response   <--
"""

from mcbridge.protocol.schema import Request, ToolArgs, ToolDescriptor
from mcbridge.protocol.registry import DEFAULT_TOOLS, ToolRegistry
from mcbridge.protocol.transport import StdioTransport, TransportClosed
from mcbridge.protocol.dispatcher import Dispatcher

__all__ = [
    "DEFAULT_TOOLS",
    "Dispatcher",
    "Request",
    "StdioTransport",
    "ToolArgs",
    "ToolDescriptor",
    "ToolRegistry",
    "TransportClosed",
]
