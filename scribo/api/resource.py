# scribo/api/resource.py

"""
The uniform resource contract. A resource answers GET, POST, PUT and DELETE
with an outcome: ``Ok(status, body)`` or ``Err(status, error)``. ``dispatch``
picks the method, turns raised errors into ``Err`` and ``render`` is the one
place outcomes become HTTP responses.

Resources implement the methods they support and inherit the rest from the
``*NotSupported`` building blocks, which answer 405.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol, Type, TypeVar, Union

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ValidationError
from starlette.requests import Request
from starlette.responses import Response

from scribo.common.errors import MalformedRequest, ScriboError, UnprocessableEntity
from scribo.common.utils import get_logger, to_json

if TYPE_CHECKING:
    from scribo.context import AppContext

logger = get_logger(__name__)

GET = "GET"
POST = "POST"
PUT = "PUT"
DELETE = "DELETE"

METHODS = (GET, POST, PUT, DELETE)

CTKEY = "Content-Type"
CTJSON = "application/json;charset=UTF-8"

MAX_BODY_BYTES = 1048576

METHOD_NOT_ALLOWED = "Method Not Allowed"


@dataclass(frozen=True)
class Ok:
    status: int
    body: Any = None


@dataclass(frozen=True)
class Err:
    status: int
    error: Any


Outcome = Union[Ok, Err]


class Resource(Protocol):
    async def get(self, ctx: "AppContext", request: Request) -> Outcome: ...
    async def post(self, ctx: "AppContext", request: Request) -> Outcome: ...
    async def put(self, ctx: "AppContext", request: Request) -> Outcome: ...
    async def delete(self, ctx: "AppContext", request: Request) -> Outcome: ...


# ---------------------------------------------------------------------------
# Not supported building blocks
# ---------------------------------------------------------------------------

def not_supported(method: str) -> Ok:
    """405 outcome naming the HTTP method the resource does not handle."""
    return Ok(405, {
        "code": "405",
        "reason": METHOD_NOT_ALLOWED,
        "message": f"This resource does not support HTTP {method}.",
    })


class GetNotSupported:
    async def get(self, ctx, request) -> Outcome:
        return not_supported(GET)


class PostNotSupported:
    async def post(self, ctx, request) -> Outcome:
        return not_supported(POST)


class PutNotSupported:
    async def put(self, ctx, request) -> Outcome:
        return not_supported(PUT)


class DeleteNotSupported:
    async def delete(self, ctx, request) -> Outcome:
        return not_supported(DELETE)


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------

async def read_body(request: Request, limit: int = MAX_BODY_BYTES) -> bytes:
    """
    Read at most ``limit`` bytes of the request body. The result is kept on
    ``request.state`` so the authenticator and the resource share one read.
    """
    cached = getattr(request.state, "body", None)
    if cached is not None:
        return cached

    chunks = []
    size = 0
    async for chunk in request.stream():
        if size >= limit:
            break
        chunk = chunk[:limit - size]
        chunks.append(chunk)
        size += len(chunk)

    body = b"".join(chunks)
    request.state.body = body
    return body


def path_id(request: Request, name: str = "id") -> int:
    """Parse the numeric id path parameter."""
    value = request.path_params.get(name, "")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise MalformedRequest(f"could not parse {name} {value!r} as an integer")


M = TypeVar("M", bound=BaseModel)


async def decode_body(ctx: "AppContext", request: Request, model: Type[M], label: str) -> M:
    """
    Decode the (size-capped) JSON body into ``model``.

    Raises:
        UnprocessableEntity: the body is not valid JSON for the model.
    """
    body = await read_body(request, ctx.max_body_bytes)
    try:
        return model.model_validate_json(body)
    except ValidationError as e:
        raise UnprocessableEntity(f"Could not parse JSON into a {label} object.", str(e)) from e


# ---------------------------------------------------------------------------
# Dispatch and rendering
# ---------------------------------------------------------------------------

async def dispatch(resource: Resource, ctx: "AppContext", request: Request) -> Outcome:
    """
    Call the resource method matching the request's HTTP method. Every
    failure comes back as an outcome; nothing raised by the resource escapes.
    """
    method = request.method.upper()
    if method not in METHODS:
        return Err(501, f"HTTP {method} is not implemented")

    handler = getattr(resource, method.lower(), None)
    if handler is None:
        return not_supported(method)

    try:
        return await handler(ctx, request)
    except UnprocessableEntity as e:
        return Ok(422, {"code": "422", "reason": e.reason, "error": str(e)})
    except ScriboError as e:
        return Err(e.status_code, e)
    except Exception as e:
        logger.error(f"Unhandled error in {type(resource).__name__}.{method.lower()}: {e}", exc_info=True)
        return Err(500, "internal server error")


def json_response(status: int, data: Any) -> Response:
    return Response(content=to_json(data) + "\n", status_code=status, headers={CTKEY: CTJSON})


def render(outcome: Outcome) -> Response:
    """Serialize an outcome into the JSON response written to the client."""
    if isinstance(outcome, Err):
        status = outcome.status or 500
        return json_response(status, {"code": str(status), "error": str(outcome.error)})

    if outcome.status == 204:
        # A 204 response carries no body at all.
        return Response(status_code=204, headers={CTKEY: CTJSON})

    try:
        return json_response(outcome.status, jsonable_encoder(outcome.body))
    except (TypeError, ValueError) as e:
        logger.error(f"Failed to encode response body: {e}")
        return render(Err(500, e))


Handler = Callable[[Request], Awaitable[Response]]


def resource_handler(resource: Resource) -> Handler:
    """The core request handler for a resource: dispatch then render."""
    async def handle(request: Request) -> Response:
        ctx = request.app.state.context
        return render(await dispatch(resource, ctx, request))

    handle.__name__ = type(resource).__name__
    return handle
