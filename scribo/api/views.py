# scribo/api/views.py

from starlette.requests import Request

from scribo.api.resource import (
    DeleteNotSupported,
    Ok,
    Outcome,
    PostNotSupported,
    PutNotSupported,
    decode_body,
    path_id,
)
from scribo.common.db import DatabaseError
from scribo.common.errors import Conflict, Internal
from scribo.common.models import (
    Node,
    NodeUpdate,
    Ping,
    PingUpdate,
    fetch_nodes,
    fetch_pings,
    get_node,
    get_ping,
)
from scribo.common.utils import get_logger

logger = get_logger(__name__)


async def save_or_conflict(record, db) -> bool:
    """Persist a record; a failed write is a 409."""
    try:
        return await record.save(db)
    except DatabaseError as e:
        raise Conflict(str(e)) from e


async def delete_or_conflict(record, db, label: str) -> Outcome:
    """Delete a record: 204 on success, 409 when no row went away, 500 on a database error."""
    try:
        deleted = await record.delete(db)
    except DatabaseError as e:
        raise Internal(str(e)) from e
    if not deleted:
        raise Conflict(f"Unable to delete {label}!")
    return Ok(204)


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------

class NodeCollection(PutNotSupported, DeleteNotSupported):
    """Lists and creates nodes."""

    async def get(self, ctx, request: Request) -> Outcome:
        try:
            nodes = await fetch_nodes(ctx.db, ctx.page_size)
        except DatabaseError as e:
            raise Internal(str(e)) from e
        return Ok(200, nodes)

    async def post(self, ctx, request: Request) -> Outcome:
        node = await decode_body(ctx, request, Node, "Node")

        # Clients cannot pick the id, timestamps or key of a new node.
        node.id = 0
        node.created = node.updated = None
        node.update_key(ctx.issuer)

        await save_or_conflict(node, ctx.db)
        logger.info(f"Created node {node.name!r} (id {node.id})")
        return Ok(201, node)


class NodeDetail(PostNotSupported):
    """Reads, updates and deletes a single node."""

    async def get(self, ctx, request: Request) -> Outcome:
        node = await get_node(ctx.db, path_id(request))
        return Ok(200, node)

    async def put(self, ctx, request: Request) -> Outcome:
        node = await get_node(ctx.db, path_id(request))
        fields = await decode_body(ctx, request, NodeUpdate, "Node")
        fields.apply(node)
        await save_or_conflict(node, ctx.db)
        return Ok(200, node)

    async def delete(self, ctx, request: Request) -> Outcome:
        node = await get_node(ctx.db, path_id(request))
        return await delete_or_conflict(node, ctx.db, "node")


# ---------------------------------------------------------------------------
# Pings
# ---------------------------------------------------------------------------

class PingCollection(PutNotSupported, DeleteNotSupported):
    """Lists and records pings."""

    async def get(self, ctx, request: Request) -> Outcome:
        try:
            pings = await fetch_pings(ctx.db, ctx.page_size)
        except DatabaseError as e:
            raise Internal(str(e)) from e
        return Ok(200, pings)

    async def post(self, ctx, request: Request) -> Outcome:
        ping = await decode_body(ctx, request, Ping, "Ping")
        ping.id = 0
        ping.created = ping.updated = None
        await save_or_conflict(ping, ctx.db)
        return Ok(201, ping)


class PingDetail(PostNotSupported):
    """Reads, updates and deletes a single ping."""

    async def get(self, ctx, request: Request) -> Outcome:
        ping = await get_ping(ctx.db, path_id(request))
        return Ok(200, ping)

    async def put(self, ctx, request: Request) -> Outcome:
        ping = await get_ping(ctx.db, path_id(request))
        fields = await decode_body(ctx, request, PingUpdate, "Ping")
        fields.apply(ping)
        await save_or_conflict(ping, ctx.db)
        return Ok(200, ping)

    async def delete(self, ctx, request: Request) -> Outcome:
        ping = await get_ping(ctx.db, path_id(request))
        return await delete_or_conflict(ping, ctx.db, "ping")
