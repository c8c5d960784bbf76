from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from uuid import uuid4

from .logging_config import request_id_var

REQUEST_ID_HEADER = "X-Request-Id"

class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id that log records and the response carry.

    Tasks spawned while handling the request (click accounting) copy the
    context, so their log lines keep the id of the visit that caused them.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
