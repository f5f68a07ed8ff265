"""Request, correlation and caller ids for log lines.

``x-request-id`` is generated when absent and ``x-correlation-id``
defaults to it; both are echoed on the response. ``x-user-id``, set by the
gateway for signed-in callers, is only bound to the logging context.
"""

from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from bazaar.observability.logging import correlation_id_var, request_id_var, user_id_var

REQUEST_ID_HEADER = "x-request-id"
CORRELATION_ID_HEADER = "x-correlation-id"
USER_ID_HEADER = "x-user-id"


class CorrelationMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        ids = {
            request_id_var: request_id,
            correlation_id_var: request.headers.get(CORRELATION_ID_HEADER) or request_id,
            user_id_var: request.headers.get(USER_ID_HEADER, ""),
        }
        tokens = [(var, var.set(value)) for var, value in ids.items()]

        try:
            response = await call_next(request)
        finally:
            for var, token in reversed(tokens):
                var.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers[CORRELATION_ID_HEADER] = ids[correlation_id_var]
        return response
