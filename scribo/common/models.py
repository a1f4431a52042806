# scribo/common/models.py

"""
Node and Ping records plus the persistence functions that read and write
them. A record with ``id == 0`` has not been saved yet: ``save`` inserts it
and assigns the id, otherwise ``save`` updates the existing row.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from scribo.common.db import DatabaseError, DatabaseManager
from scribo.common.errors import NotFound
from scribo.common.utils import advance, get_logger

logger = get_logger(__name__)

# Printable ASCII without '"' and '\': what a Hawk header attribute can carry.
# A node name is its Hawk id, so any other name could never authenticate.
HAWK_IDENTITY = r'^[ !#-\[\]-~]+$'


def format_timestamp(value: datetime) -> str:
    """Fixed-width ISO 8601 text so that stored timestamps sort lexically."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class Record(BaseModel):
    """Fields and save bookkeeping shared by nodes and pings."""
    model_config = ConfigDict(extra="ignore")

    id: int = Field(0, ge=0, description="Store-assigned id; 0 until saved")
    created: Optional[datetime] = Field(None, description="UTC time the row was inserted")
    updated: Optional[datetime] = Field(None, description="UTC time of the last save")

    @property
    def persisted(self) -> bool:
        return self.id > 0

    def _stamp(self) -> datetime:
        now = advance(self.updated)
        if not self.persisted:
            self.created = now
        return now

    def serialize(self) -> Dict[str, Any]:
        """JSON-ready representation sent to clients."""
        return self.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------

class Node(Record):
    """A named participant in the network that reports pings."""
    name: str = Field(..., min_length=1, pattern=HAWK_IDENTITY, description="Unique name, also the Hawk identity")
    address: str = Field("", description="IP address of the node")
    dns: str = Field("", description="Domain name of the node")
    key: str = Field("", exclude=True, repr=False, description="Shared Hawk secret, never serialized")

    def update_key(self, issuer, now: Optional[datetime] = None) -> str:
        """
        Rotate the node's key with the given issuer. Does not touch the database.
        """
        self.key = issuer.issue(self.name, self.address, self.dns, now=now)
        return self.key

    async def save(self, db: DatabaseManager) -> bool:
        """
        Insert or update the node. Returns True when a new row was created.
        """
        now = self._stamp()
        async with db.get_session() as cursor:
            if self.persisted:
                await cursor.execute(
                    "UPDATE nodes SET name=?, address=?, dns=?, key=?, updated=? WHERE id=?",
                    (self.name, self.address, self.dns, self.key, format_timestamp(now), self.id),
                )
                if cursor.rowcount != 1:
                    raise DatabaseError(f"Update of node {self.id} affected {cursor.rowcount} rows")
                self.updated = now
                return False

            await cursor.execute(
                "INSERT INTO nodes (name, address, dns, key, created, updated) VALUES (?, ?, ?, ?, ?, ?)",
                (self.name, self.address, self.dns, self.key,
                 format_timestamp(self.created), format_timestamp(now)),
            )
            self.id = cursor.lastrowid
            self.updated = now
            logger.debug(f"Inserted node {self.name!r} with id {self.id}")
            return True

    async def delete(self, db: DatabaseManager) -> bool:
        """
        Delete the node's row. Returns False when no row matched; more than
        one matching row is a database error.
        """
        async with db.get_session() as cursor:
            await cursor.execute("DELETE FROM nodes WHERE id=?", (self.id,))
            count = cursor.rowcount
        if count > 1:
            raise DatabaseError(f"Delete of node {self.id} affected {count} rows")
        return count == 1


class NodeUpdate(BaseModel):
    """Fields a client may change on an existing node; absent fields are left alone."""
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(None, min_length=1, pattern=HAWK_IDENTITY)
    address: Optional[str] = None
    dns: Optional[str] = None

    def apply(self, node: Node) -> Node:
        for field in self.model_fields_set:
            value = getattr(self, field)
            if value is not None:
                setattr(node, field, value)
        return node


_NODE_COLUMNS = "id, name, address, dns, key, created, updated"


async def get_node(db: DatabaseManager, node_id: int) -> Node:
    """Fetch a node by id, raising NotFound when there is no such row."""
    async with db.get_session() as cursor:
        await cursor.execute(f"SELECT {_NODE_COLUMNS} FROM nodes WHERE id=?", (node_id,))
        row = await cursor.fetchone()
    if row is None:
        raise NotFound(f"no node with id {node_id}")
    return Node.model_validate(dict(row))


async def get_node_by_name(db: DatabaseManager, name: str) -> Node:
    """
    Fetch a node by its unique name. When no row exists an unsaved
    ``Node(name=name)`` is returned so callers can create it.
    """
    async with db.get_session() as cursor:
        await cursor.execute(f"SELECT {_NODE_COLUMNS} FROM nodes WHERE name=?", (name,))
        row = await cursor.fetchone()
    if row is None:
        return Node(name=name)
    return Node.model_validate(dict(row))


async def fetch_nodes(db: DatabaseManager, limit: int = 10) -> List[Node]:
    """The ``limit`` most recently updated nodes, newest first."""
    async with db.get_session() as cursor:
        await cursor.execute(
            f"SELECT {_NODE_COLUMNS} FROM nodes ORDER BY updated DESC, id DESC LIMIT ?", (limit,)
        )
        rows = await cursor.fetchall()
    return [Node.model_validate(dict(row)) for row in rows]


# ---------------------------------------------------------------------------
# Pings
# ---------------------------------------------------------------------------

class Ping(Record):
    """A latency report from a source node to a target node."""
    source: int = Field(..., ge=1, description="Id of the node that sent the ping")
    target: int = Field(..., ge=1, description="Id of the node that was pinged")
    payload: int = Field(0, ge=0, description="Size in bytes of the ping payload")
    latency: float = Field(0.0, ge=0, allow_inf_nan=False, description="Round trip time in milliseconds")
    timeout: bool = Field(False, description="Whether the ping timed out")

    def _values(self):
        return (self.source, self.target, self.payload, self.latency, int(self.timeout))

    async def save(self, db: DatabaseManager) -> bool:
        """
        Insert or update the ping. Returns True when a new row was created.
        """
        now = self._stamp()
        async with db.get_session() as cursor:
            if self.persisted:
                await cursor.execute(
                    "UPDATE pings SET source=?, target=?, payload=?, latency=?, timeout=?, updated=? "
                    "WHERE id=?",
                    self._values() + (format_timestamp(now), self.id),
                )
                if cursor.rowcount != 1:
                    raise DatabaseError(f"Update of ping {self.id} affected {cursor.rowcount} rows")
                self.updated = now
                return False

            await cursor.execute(
                "INSERT INTO pings (source, target, payload, latency, timeout, created, updated) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                self._values() + (format_timestamp(self.created), format_timestamp(now)),
            )
            self.id = cursor.lastrowid
            self.updated = now
            return True

    async def delete(self, db: DatabaseManager) -> bool:
        async with db.get_session() as cursor:
            await cursor.execute("DELETE FROM pings WHERE id=?", (self.id,))
            count = cursor.rowcount
        if count > 1:
            raise DatabaseError(f"Delete of ping {self.id} affected {count} rows")
        return count == 1


class PingUpdate(BaseModel):
    """Fields a client may change on an existing ping; absent fields are left alone."""
    model_config = ConfigDict(extra="ignore")

    source: Optional[int] = Field(None, ge=1)
    target: Optional[int] = Field(None, ge=1)
    payload: Optional[int] = Field(None, ge=0)
    latency: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    timeout: Optional[bool] = None

    def apply(self, ping: Ping) -> Ping:
        for field in self.model_fields_set:
            value = getattr(self, field)
            if value is not None:
                setattr(ping, field, value)
        return ping


_PING_COLUMNS = "id, source, target, payload, latency, timeout, created, updated"


async def get_ping(db: DatabaseManager, ping_id: int) -> Ping:
    """Fetch a ping by id, raising NotFound when there is no such row."""
    async with db.get_session() as cursor:
        await cursor.execute(f"SELECT {_PING_COLUMNS} FROM pings WHERE id=?", (ping_id,))
        row = await cursor.fetchone()
    if row is None:
        raise NotFound(f"no ping with id {ping_id}")
    return Ping.model_validate(dict(row))


async def fetch_pings(db: DatabaseManager, limit: int = 10) -> List[Ping]:
    """The ``limit`` most recently updated pings, newest first."""
    async with db.get_session() as cursor:
        await cursor.execute(
            f"SELECT {_PING_COLUMNS} FROM pings ORDER BY updated DESC, id DESC LIMIT ?", (limit,)
        )
        rows = await cursor.fetchall()
    return [Ping.model_validate(dict(row)) for row in rows]
