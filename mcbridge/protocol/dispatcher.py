"""Request dispatcher: routes decoded requests to method handlers."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Set, Union

from mcbridge.errors import BridgeError, InternalError, InvalidRequest, MethodNotFound
from mcbridge.protocol.schema import Request, make_error, make_result

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], Any]


class Dispatcher:
    """
    Method table plus the in-flight id bookkeeping.

    ``dispatch`` resolves one request completely and returns the response
    message, or None for notifications. Errors never escape: a BridgeError
    becomes its JSON-RPC error, anything else becomes InternalError.
    """

    def __init__(self, handlers: Dict[str, Handler]):
        self._handlers = dict(handlers)
        self._in_flight: Set[Union[int, str, None]] = set()

    @property
    def methods(self):
        return sorted(self._handlers)

    def dispatch(self, request: Request) -> Optional[Dict[str, Any]]:
        if request.is_notification:
            self._run_notification(request)
            return None

        request_id = request.id
        if request_id in self._in_flight:
            # The predecessor keeps its slot; only the duplicate is rejected.
            return make_error(
                request_id,
                InvalidRequest(f"Duplicate request id in flight: {request_id!r}"),
            )

        self._in_flight.add(request_id)
        try:
            return make_result(request_id, self._call(request))
        except BridgeError as exc:
            logger.info("%s failed: %s (%s)", request.method, exc.message, exc.kind)
            return make_error(request_id, exc)
        except Exception as exc:
            logger.exception("Unhandled error in %s", request.method)
            return make_error(request_id, InternalError(f"Internal error: {exc}"))
        finally:
            self._in_flight.discard(request_id)

    def _call(self, request: Request) -> Any:
        handler = self._handlers.get(request.method)
        if handler is None:
            raise MethodNotFound(f"Method not found: {request.method}", data={"method": request.method})
        logger.debug("dispatching %s (id=%r)", request.method, request.id)
        return handler(request.params or {})

    def _run_notification(self, request: Request) -> None:
        handler = self._handlers.get(request.method)
        if handler is None:
            logger.debug("ignoring unknown notification %s", request.method)
            return
        try:
            handler(request.params or {})
        except Exception:
            logger.exception("Notification handler %s failed", request.method)
