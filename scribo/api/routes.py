# scribo/api/routes.py

"""
The static route table of the service and the construction of the FastAPI
router from it. Every route is logged; routes flagged ``authorize`` are also
gated by Hawk authentication inside the logger.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from fastapi import APIRouter

from scribo.api.auth import authenticate
from scribo.api.middleware import Stage, compose, log_request
from scribo.api.resource import METHODS, Resource, resource_handler
from scribo.api.views import NodeCollection, NodeDetail, PingCollection, PingDetail


@dataclass(frozen=True)
class Route:
    name: str
    methods: Tuple[str, ...]
    pattern: str
    resource: Resource
    authorize: bool = True


def resource_route(resource: Resource, name: str, pattern: str, authorize: bool = True) -> Route:
    """A route answering all four resource methods on ``pattern``."""
    return Route(name, METHODS, pattern, resource, authorize)


ROUTES: Tuple[Route, ...] = (
    resource_route(NodeCollection(), "NodeCollection", "/nodes"),
    resource_route(NodeDetail(), "NodeDetail", "/nodes/{id}"),
    resource_route(PingCollection(), "PingCollection", "/pings"),
    resource_route(PingDetail(), "PingDetail", "/pings/{id}"),
)


# Routed as well so that the dispatcher, not the router, answers them (501).
UNMAPPED_METHODS = ("HEAD", "OPTIONS", "PATCH", "TRACE")


def route_methods(route: Route) -> List[str]:
    """The route's own methods followed by every unmapped HTTP method."""
    return list(route.methods) + [m for m in UNMAPPED_METHODS if m not in route.methods]


def stages_for(route: Route) -> List[Stage]:
    """Logging always wraps everything; authentication sits inside it."""
    stages: List[Stage] = [log_request]
    if route.authorize:
        stages.append(authenticate)
    return stages


def route_paths(pattern: str) -> List[str]:
    """The pattern with and without a trailing slash."""
    base = pattern.rstrip("/") or "/"
    if base == "/":
        return [base]
    return [base, base + "/"]


def build_router(routes: Sequence[Route] = ROUTES) -> APIRouter:
    """Register every route, with trailing-slash variants resolving to the same handler."""
    router = APIRouter()
    for route in routes:
        endpoint = compose(stages_for(route), resource_handler(route.resource))
        for path in route_paths(route.pattern):
            primary = path == route.pattern.rstrip("/")
            router.add_api_route(
                path,
                endpoint,
                methods=route_methods(route),
                name=route.name if primary else f"{route.name}.slash",
                include_in_schema=primary,
                response_model=None,
            )
    return router
