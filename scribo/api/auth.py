# scribo/api/auth.py

import base64
import hashlib
import time
from datetime import datetime
from typing import Optional

from starlette.requests import Request
from starlette.responses import Response

from scribo.api.hawk import (
    SCHEME,
    Credentials,
    HawkHeader,
    calculate_mac,
    calculate_payload_hash,
    macs_equal,
    normalized_string,
    parse_authorization_header,
    split_host,
)
from scribo.api.resource import Err, read_body, render
from scribo.common.db import DatabaseError, DatabaseManager
from scribo.common.errors import (
    AuthInvalid,
    AuthMissing,
    CredentialLookupError,
    UnknownIdentity,
)
from scribo.common.utils import get_logger, utcnow

logger = get_logger(__name__)

# Client-visible messages; they never name the check that failed.
MISSING_MESSAGE = "authorization header required"
REJECTED_MESSAGE = "request could not be authenticated"
LOOKUP_MESSAGE = "credential lookup failed"


class CredentialResolver:
    """Looks up the shared secret of a node by its name (the Hawk id)."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def resolve(self, identity: str) -> Credentials:
        """
        Return the node's current key with the default MAC algorithm.

        Raises:
            UnknownIdentity: no node has this name.
            CredentialLookupError: the database failed.
        """
        try:
            async with self.db.get_session() as cursor:
                await cursor.execute("SELECT key FROM nodes WHERE name=?", (identity,))
                row = await cursor.fetchone()
        except DatabaseError as e:
            raise CredentialLookupError(str(e)) from e

        if row is None:
            raise UnknownIdentity(identity)
        return Credentials(identity=identity, key=row["key"])


class NonceStore:
    """
    Nonces seen inside the clock-skew window, kept in the ``nonces`` table so
    that every worker serving the same database rejects a replay. Rows expire
    once their timestamp has left the window.
    """

    def __init__(self, db: DatabaseManager, window: int = 60):
        self.db = db
        self.window = window

    async def claim(self, identity: str, nonce: str, ts: int, now: Optional[float] = None) -> bool:
        """
        Record the nonce for ``identity``; returns False if it was already used.

        Raises:
            CredentialLookupError: the database failed.
        """
        now = time.time() if now is None else now
        try:
            async with self.db.get_session() as cursor:
                await cursor.execute("DELETE FROM nonces WHERE expires < ?", (now,))
                await cursor.execute(
                    "INSERT OR IGNORE INTO nonces (identity, nonce, expires) VALUES (?, ?, ?)",
                    (identity, nonce, max(ts, now) + self.window),
                )
                claimed = cursor.rowcount == 1
        except DatabaseError as e:
            raise CredentialLookupError(f"nonce store failed: {e}") from e
        return claimed


class HawkAuthenticator:
    """
    Verifies Hawk-signed requests. A request moves through parse, credential
    resolution and verification; any failure raises and nothing is stored
    except the nonce of a request whose MAC checked out.
    """

    def __init__(self, resolver: CredentialResolver, nonces: Optional[NonceStore] = None,
                 max_clock_skew: int = 60, max_body_bytes: int = 1048576):
        self.resolver = resolver
        self.max_clock_skew = max_clock_skew
        self.max_body_bytes = max_body_bytes
        self.nonces = nonces or NonceStore(resolver.db, max_clock_skew)

    @staticmethod
    def request_resource(request: Request) -> str:
        """The request target as sent on the wire: raw path plus query string."""
        raw_path = request.scope.get("raw_path")
        path = raw_path.decode("latin-1").split("?", 1)[0] if raw_path else request.url.path
        query = request.scope.get("query_string", b"").decode("latin-1")
        return f"{path}?{query}" if query else path

    def _validate_timestamp(self, ts: int, now: float) -> bool:
        return abs(now - ts) <= self.max_clock_skew

    async def verify(self, request: Request, now: Optional[float] = None) -> Credentials:
        """
        Authenticate the request, returning the caller's credentials.

        Raises:
            AuthMissing: no Authorization header.
            AuthInvalid: malformed header, unknown identity, bad MAC, bad
                payload hash, stale timestamp or replayed nonce.
            CredentialLookupError: the credential or nonce store failed.
        """
        header_value = request.headers.get("authorization", "").strip()
        if not header_value:
            raise AuthMissing("missing Authorization header")

        header: HawkHeader = parse_authorization_header(header_value)
        credentials = await self.resolver.resolve(header.id)

        host, port = split_host(request.headers.get("host", ""), request.url.scheme)
        normalized = normalized_string(
            header.ts, header.nonce, request.method, self.request_resource(request),
            host, port, header.hash, header.ext, header.app, header.dlg,
        )
        expected = calculate_mac(credentials.key, normalized, credentials.algorithm)
        if not macs_equal(expected, header.mac):
            raise AuthInvalid("bad mac")

        if header.hash:
            body = await read_body(request, self.max_body_bytes)
            payload_hash = calculate_payload_hash(
                body, request.headers.get("content-type"), credentials.algorithm
            )
            if not macs_equal(payload_hash, header.hash):
                raise AuthInvalid("bad payload hash")

        now = time.time() if now is None else now
        if not self._validate_timestamp(header.ts, now):
            raise AuthInvalid("stale timestamp")

        if not await self.nonces.claim(credentials.identity, header.nonce, header.ts, now):
            raise AuthInvalid("replayed nonce")

        return credentials


def rejection(status_code: int, message: str) -> Response:
    """Render an authentication failure; 401 responses advertise the scheme."""
    response = render(Err(status_code, message))
    if status_code == 401:
        response.headers["WWW-Authenticate"] = SCHEME
    return response


async def authenticate(request: Request, call_next) -> Response:
    """
    Middleware stage gating a route behind Hawk. Authentication errors stop
    here and never reach the resource.
    """
    authenticator: HawkAuthenticator = request.app.state.context.authenticator
    try:
        credentials = await authenticator.verify(request)
    except AuthMissing:
        logger.warning(f"Hawk authentication missing for {request.method} {request.url.path}")
        return rejection(401, MISSING_MESSAGE)
    except AuthInvalid as e:
        logger.warning(f"Hawk authentication rejected for {request.method} {request.url.path}: {e}")
        return rejection(403, REJECTED_MESSAGE)
    except CredentialLookupError as e:
        logger.error(f"Credential lookup failed for {request.method} {request.url.path}: {e}")
        return rejection(500, LOOKUP_MESSAGE)

    request.state.credentials = credentials
    return await call_next(request)


# ---------------------------------------------------------------------------
# Key issuance
# ---------------------------------------------------------------------------

def issue_key(secret: str, identity: str, address: str, dns: str, now: datetime) -> str:
    """
    Derive a node key from the process secret, the node's identity, address
    and DNS name, and the issue time. The URL-safe base64 SHA-256 digest of
    those fields is returned, so issuing at another instant yields another key.
    """
    raw = f"{secret}:{identity}:{address}:{dns}:{now.isoformat()}"
    digest = hashlib.sha256(raw.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")


class KeyIssuer:
    """Issues node keys bound to this process's secret."""

    def __init__(self, secret: Optional[str] = None):
        if not secret:
            logger.warning("No security.secret configured; node keys depend only on node fields and time")
        self.secret = secret or ""

    def issue(self, identity: str, address: str = "", dns: str = "",
              now: Optional[datetime] = None) -> str:
        return issue_key(self.secret, identity, address or "", dns or "", now or utcnow())
