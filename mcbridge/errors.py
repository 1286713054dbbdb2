"""
mcbridge Errors - Error kinds surfaced over the protocol.

Every failure a client can observe is a BridgeError subclass carrying its
JSON-RPC error code. ``StartupError`` is the only fatal kind and is raised
before the first request is served.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

RequestId = Optional[Union[int, str]]


class BridgeError(Exception):
    """Base class for errors reported to the client as a JSON-RPC error."""

    code = -32603
    kind = "InternalError"

    def __init__(
        self,
        message: str,
        data: Optional[Dict[str, Any]] = None,
        request_id: RequestId = None,
    ):
        super().__init__(message)
        self.message = message
        self.data = dict(data) if data else {}
        self.request_id = request_id

    def to_error(self) -> Dict[str, Any]:
        """Build the ``error`` member of a JSON-RPC response."""
        data = {"kind": self.kind, **self.data}
        return {"code": self.code, "message": self.message, "data": data}


class ParseError(BridgeError):
    code = -32700
    kind = "ParseError"


class InvalidRequest(BridgeError):
    code = -32600
    kind = "InvalidRequest"


class MethodNotFound(BridgeError):
    code = -32601
    kind = "MethodNotFound"


class InvalidParams(BridgeError):
    code = -32602
    kind = "InvalidParams"


class InternalError(BridgeError):
    code = -32603
    kind = "InternalError"


class PathViolation(BridgeError):
    """A path operand resolved outside the project root."""

    code = -32001
    kind = "PathViolation"


class InvalidConfirmation(BridgeError):
    """A confirmation token was unknown, expired, used, or no longer matches."""

    code = -32002
    kind = "InvalidConfirmation"


class ExternalToolFailure(BridgeError):
    """The engine could not be spawned or exited with a non-zero status."""

    code = -32003
    kind = "ExternalToolFailure"


class Timeout(BridgeError):
    """The engine did not finish within its time budget and was terminated."""

    code = -32004
    kind = "Timeout"


class StartupError(Exception):
    """Raised when the server cannot start (bad project root, log sink, ...)."""

    pass
