import json

import pytest
from pydantic import BaseModel
from starlette.requests import Request
from starlette.responses import Response

from scribo.api.middleware import compose
from scribo.api.resource import (
    CTJSON,
    DeleteNotSupported,
    Err,
    GetNotSupported,
    Ok,
    PostNotSupported,
    PutNotSupported,
    dispatch,
    read_body,
    render,
)
from scribo.api.routes import (
    ROUTES,
    UNMAPPED_METHODS,
    Route,
    build_router,
    resource_route,
    route_methods,
    route_paths,
    stages_for,
)
from scribo.common.errors import Conflict, NotFound, UnprocessableEntity


class Book(BaseModel):
    title: str
    secret: str = ""


class BookResource:
    """A resource exercising every outcome shape."""

    def __init__(self, behaviour):
        self.behaviour = behaviour

    async def get(self, ctx, request):
        return self.behaviour()

    async def post(self, ctx, request):
        return self.behaviour()

    async def put(self, ctx, request):
        return self.behaviour()

    async def delete(self, ctx, request):
        return self.behaviour()


class ReadOnlyBooks(PostNotSupported, PutNotSupported, DeleteNotSupported):
    async def get(self, ctx, request):
        return Ok(200, [])


def make_request(method):
    return Request({"type": "http", "method": method, "path": "/books", "headers": []})


async def outcome_of(behaviour, method="GET"):
    return await dispatch(BookResource(behaviour), None, make_request(method))


def body_of(response: Response):
    return json.loads(response.body)


# -------------------------------
# Dispatch
# -------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["GET", "POST", "PUT", "DELETE"])
async def test_dispatch_routes_each_method(method):
    seen = []

    class Recorder:
        async def get(self, ctx, request):
            seen.append("GET")
            return Ok(200)

        async def post(self, ctx, request):
            seen.append("POST")
            return Ok(201)

        async def put(self, ctx, request):
            seen.append("PUT")
            return Ok(200)

        async def delete(self, ctx, request):
            seen.append("DELETE")
            return Ok(204)

    await dispatch(Recorder(), None, make_request(method))
    assert seen == [method]


@pytest.mark.asyncio
async def test_dispatch_unknown_method_is_not_implemented():
    outcome = await outcome_of(lambda: Ok(200), method="PATCH")
    assert outcome == Err(501, "HTTP PATCH is not implemented")


@pytest.mark.asyncio
async def test_dispatch_turns_errors_into_outcomes():
    def missing():
        raise NotFound("no book")

    outcome = await outcome_of(missing)
    assert isinstance(outcome, Err)
    assert outcome.status == 404


@pytest.mark.asyncio
async def test_dispatch_hides_unexpected_exceptions():
    def explode():
        raise RuntimeError("database password is hunter2")

    outcome = await outcome_of(explode)
    assert outcome == Err(500, "internal server error")


@pytest.mark.asyncio
async def test_dispatch_unprocessable_entity():
    def bad_json():
        raise UnprocessableEntity("Could not parse JSON into a Book object.", "invalid character")

    outcome = await outcome_of(bad_json)
    assert outcome == Ok(422, {
        "code": "422",
        "reason": "Could not parse JSON into a Book object.",
        "error": "invalid character",
    })


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["POST", "PUT", "DELETE"])
async def test_not_supported_methods(method):
    outcome = await dispatch(ReadOnlyBooks(), None, make_request(method))
    assert outcome.status == 405
    assert outcome.body["message"] == f"This resource does not support HTTP {method}."


@pytest.mark.asyncio
async def test_get_not_supported():
    class WriteOnly(GetNotSupported):
        pass

    outcome = await dispatch(WriteOnly(), None, make_request("GET"))
    assert outcome.body == {
        "code": "405",
        "reason": "Method Not Allowed",
        "message": "This resource does not support HTTP GET.",
    }


# -------------------------------
# Rendering
# -------------------------------

def test_render_ok():
    response = render(Ok(200, Book(title="Dune")))
    assert response.status_code == 200
    assert response.headers["Content-Type"] == CTJSON
    assert body_of(response) == {"title": "Dune", "secret": ""}


def test_render_accepted_without_body():
    response = render(Ok(202))
    assert response.status_code == 202
    assert body_of(response) is None


def test_render_no_content_is_empty():
    response = render(Ok(204))
    assert response.status_code == 204
    assert response.body == b""


def test_render_error():
    response = render(Err(409, Conflict("Unable to delete book!")))
    assert response.status_code == 409
    assert response.headers["Content-Type"] == CTJSON
    assert body_of(response) == {"code": "409", "error": "Unable to delete book!"}


def test_render_error_without_status_is_internal():
    response = render(Err(0, "boom"))
    assert response.status_code == 500
    assert body_of(response) == {"code": "500", "error": "boom"}


# -------------------------------
# Stages and routes
# -------------------------------

@pytest.mark.asyncio
async def test_compose_runs_first_stage_outermost():
    calls = []

    def stage(name):
        async def run(request, call_next):
            calls.append(f"{name}:in")
            response = await call_next(request)
            calls.append(f"{name}:out")
            return response
        return run

    async def handler(request):
        calls.append("handler")
        return Response(status_code=204)

    composed = compose([stage("log"), stage("auth")], handler)
    response = await composed(make_request("GET"))

    assert response.status_code == 204
    assert calls == ["log:in", "auth:in", "handler", "auth:out", "log:out"]


@pytest.mark.asyncio
async def test_stage_can_short_circuit():
    async def deny(request, call_next):
        return Response(status_code=401)

    async def handler(request):
        raise AssertionError("handler must not run")

    response = await compose([deny], handler)(make_request("GET"))
    assert response.status_code == 401


def test_stages_for_routes():
    protected = resource_route(ReadOnlyBooks(), "Books", "/books")
    public = resource_route(ReadOnlyBooks(), "Books", "/books", authorize=False)
    assert [s.__name__ for s in stages_for(protected)] == ["log_request", "authenticate"]
    assert [s.__name__ for s in stages_for(public)] == ["log_request"]


def test_route_table():
    assert [(r.name, r.pattern) for r in ROUTES] == [
        ("NodeCollection", "/nodes"),
        ("NodeDetail", "/nodes/{id}"),
        ("PingCollection", "/pings"),
        ("PingDetail", "/pings/{id}"),
    ]
    assert all(isinstance(r, Route) and r.authorize for r in ROUTES)
    assert all(r.methods == ("GET", "POST", "PUT", "DELETE") for r in ROUTES)


def test_route_paths():
    assert route_paths("/nodes") == ["/nodes", "/nodes/"]
    assert route_paths("/nodes/{id}/") == ["/nodes/{id}", "/nodes/{id}/"]
    assert route_paths("/") == ["/"]


def test_build_router_registers_slash_variants():
    router = build_router([resource_route(ReadOnlyBooks(), "Books", "/books")])
    assert {(r.name, r.path) for r in router.routes} == {
        ("Books", "/books"),
        ("Books.slash", "/books/"),
    }


def test_route_methods_include_unmapped_methods():
    route = resource_route(ReadOnlyBooks(), "Books", "/books")
    methods = route_methods(route)
    assert methods[:4] == ["GET", "POST", "PUT", "DELETE"]
    assert set(methods[4:]) == set(UNMAPPED_METHODS)
    assert {"PATCH", "OPTIONS", "HEAD", "TRACE"} <= set(methods)


def test_build_router_answers_unmapped_methods():
    router = build_router([resource_route(ReadOnlyBooks(), "Books", "/books")])
    for route in router.routes:
        assert "PATCH" in route.methods
        assert "GET" in route.methods


# -------------------------------
# Request bodies
# -------------------------------

def streaming_request(body: bytes, chunk: int = 4):
    pieces = [body[i:i + chunk] for i in range(0, len(body), chunk)] or [b""]

    async def receive():
        if pieces:
            piece = pieces.pop(0)
            return {"type": "http.request", "body": piece, "more_body": bool(pieces)}
        return {"type": "http.disconnect"}

    return Request({"type": "http", "method": "POST", "path": "/books", "headers": []}, receive)


@pytest.mark.asyncio
async def test_read_body_stops_at_limit():
    request = streaming_request(b'{"title": "Dune"}')
    body = await read_body(request, limit=10)
    assert body == b'{"title": '
    # Later readers share the truncated body.
    assert await read_body(request, limit=100) == body


@pytest.mark.asyncio
async def test_read_body_under_limit_is_whole():
    request = streaming_request(b'{"title": "Dune"}')
    assert await read_body(request, limit=1024) == b'{"title": "Dune"}'
