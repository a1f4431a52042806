# scribo/api/middleware.py

"""
Request stages wrapped around resource handlers. A stage is a coroutine
``stage(request, call_next) -> Response``; ``compose`` applies an ordered
list of stages so that the first stage is the outermost.
"""

from typing import Awaitable, Callable, Sequence

from starlette.requests import Request
from starlette.responses import Response

from scribo.api.resource import Handler
from scribo.common.utils import Timer, get_logger

access_logger = get_logger("scribo.access")

Stage = Callable[[Request, Handler], Awaitable[Response]]


def _bind(stage: Stage, inner: Handler) -> Handler:
    async def call(request: Request) -> Response:
        return await stage(request, inner)

    call.__name__ = getattr(inner, "__name__", "handler")
    return call


def compose(stages: Sequence[Stage], handler: Handler) -> Handler:
    """Wrap ``handler`` in ``stages``; ``stages[0]`` sees the request first."""
    composed = handler
    for stage in reversed(stages):
        composed = _bind(stage, composed)
    return composed


def response_size(response: Response) -> int:
    length = response.headers.get("content-length")
    if length is not None:
        return int(length)
    return len(getattr(response, "body", b"") or b"")


def request_uri(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


async def log_request(request: Request, call_next: Handler) -> Response:
    """
    Log every request in dev format: ``METHOD URI STATUS ELAPSED - SIZE``.
    """
    response = None
    with Timer() as timer:
        try:
            response = await call_next(request)
        finally:
            status = response.status_code if response is not None else 500
            size = response_size(response) if response is not None else 0
            access_logger.info(f"{request.method} {request_uri(request)} {status} {timer.humanize()} - {size}")
    return response
