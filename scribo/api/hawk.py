# scribo/api/hawk.py

"""
Wire-level pieces of the Hawk HTTP authentication scheme: parsing and
building the ``Authorization: Hawk ...`` header, the normalized request
string, the request MAC and the payload hash.

The server side gate that uses these lives in ``scribo.api.auth``; the
client side signer lives in ``scribo.client``.
"""

import base64
import hashlib
import hmac
import re
import secrets
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from scribo.common.errors import AuthInvalid

HAWK_VERSION = "1"
SCHEME = "Hawk"
DEFAULT_ALGORITHM = "sha256"

REQUIRED_ATTRIBUTES = ("id", "ts", "nonce", "mac")
KNOWN_ATTRIBUTES = REQUIRED_ATTRIBUTES + ("hash", "ext", "app", "dlg")

_ATTRIBUTE = re.compile(r'(\w+)="([^"\\]*)"\s*(?:,\s*|$)')
_VALUE_CHARS = re.compile(r"^[ \w!#$%&'()*+,\-./:;<=>?@\[\]^`{|}~]*$", re.ASCII)


@dataclass
class Credentials:
    """The shared secret resolved for a Hawk identity."""
    identity: str
    key: str
    algorithm: str = DEFAULT_ALGORITHM


@dataclass
class HawkHeader:
    """Attributes of a parsed ``Authorization: Hawk`` header."""
    id: str
    ts: int
    nonce: str
    mac: str
    hash: Optional[str] = None
    ext: Optional[str] = None
    app: Optional[str] = None
    dlg: Optional[str] = None


def parse_authorization_header(header: str) -> HawkHeader:
    """
    Parse a Hawk Authorization header value.

    Raises:
        AuthInvalid: wrong scheme, unknown or duplicate attributes, illegal
            characters, missing required attributes or a bad timestamp.
    """
    if not header:
        raise AuthInvalid("empty authorization header")

    scheme, _, rest = header.strip().partition(" ")
    if scheme.lower() != SCHEME.lower():
        raise AuthInvalid("authorization scheme is not Hawk")

    rest = rest.strip()
    attributes: Dict[str, str] = {}
    pos = 0
    while pos < len(rest):
        match = _ATTRIBUTE.match(rest, pos)
        if match is None:
            raise AuthInvalid("malformed Hawk header")
        name, value = match.group(1), match.group(2)
        if name not in KNOWN_ATTRIBUTES:
            raise AuthInvalid(f"unknown Hawk attribute {name!r}")
        if name in attributes:
            raise AuthInvalid(f"duplicate Hawk attribute {name!r}")
        if not _VALUE_CHARS.match(value):
            raise AuthInvalid(f"illegal characters in Hawk attribute {name!r}")
        attributes[name] = value
        pos = match.end()

    for name in REQUIRED_ATTRIBUTES:
        if not attributes.get(name):
            raise AuthInvalid(f"missing Hawk attribute {name!r}")

    try:
        ts = int(attributes.pop("ts"))
    except ValueError:
        raise AuthInvalid("invalid Hawk timestamp")

    return HawkHeader(ts=ts, **attributes)


def _escape_ext(ext: Optional[str]) -> str:
    if not ext:
        return ""
    return ext.replace("\\", "\\\\").replace("\n", "\\n")


def normalized_string(
    ts: int,
    nonce: str,
    method: str,
    resource: str,
    host: str,
    port: int,
    payload_hash: Optional[str] = None,
    ext: Optional[str] = None,
    app: Optional[str] = None,
    dlg: Optional[str] = None,
    kind: str = "header",
) -> str:
    """
    Build the canonical string that the request MAC is computed over.
    ``resource`` is the request path including any query string.
    """
    parts = [
        f"hawk.{HAWK_VERSION}.{kind}",
        str(ts),
        nonce,
        method.upper(),
        resource,
        host.lower(),
        str(port),
        payload_hash or "",
        _escape_ext(ext),
    ]
    if app:
        parts.extend([app, dlg or ""])
    return "\n".join(parts) + "\n"


def calculate_mac(key: str, normalized: str, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """Base64 HMAC of the normalized string keyed with the shared secret."""
    digest = hmac.new(key.encode("utf-8"), normalized.encode("utf-8"), getattr(hashlib, algorithm))
    return base64.b64encode(digest.digest()).decode("ascii")


def calculate_payload_hash(
    payload: bytes, content_type: Optional[str] = None, algorithm: str = DEFAULT_ALGORITHM
) -> str:
    """Base64 hash of the request body together with its media type."""
    media_type = (content_type or "").split(";")[0].strip().lower()
    digest = hashlib.new(algorithm)
    digest.update(f"hawk.{HAWK_VERSION}.payload\n{media_type}\n".encode("utf-8"))
    digest.update(payload)
    digest.update(b"\n")
    return base64.b64encode(digest.digest()).decode("ascii")


def macs_equal(expected: str, supplied: str) -> bool:
    """Constant time comparison of two base64 MACs."""
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def split_host(host_header: str, scheme: str = "http") -> Tuple[str, int]:
    """
    Split a Host header into host name and port, defaulting the port by scheme.
    """
    default_port = 443 if scheme == "https" else 80
    host = host_header.strip()
    if host.startswith("["):
        # IPv6 literal, e.g. [::1]:8080
        end = host.find("]")
        name, rest = host[1:end], host[end + 1:]
        port = rest[1:] if rest.startswith(":") else ""
    else:
        name, _, port = host.partition(":")
    if not port:
        return name, default_port
    try:
        return name, int(port)
    except ValueError:
        raise AuthInvalid("invalid port in Host header")


def generate_nonce() -> str:
    return secrets.token_urlsafe(8)


def build_authorization_header(
    credentials: Credentials,
    method: str,
    resource: str,
    host: str,
    port: int,
    payload: Optional[bytes] = None,
    content_type: Optional[str] = None,
    ts: Optional[int] = None,
    nonce: Optional[str] = None,
    ext: Optional[str] = None,
) -> str:
    """
    Produce the client's Authorization header value for a request. The
    payload hash is included whenever a payload is given.
    """
    ts = int(time.time()) if ts is None else ts
    nonce = nonce or generate_nonce()
    if ext is not None and not _VALUE_CHARS.match(ext):
        raise ValueError("ext contains characters that cannot be sent in a Hawk header")

    payload_hash = None
    if payload is not None:
        payload_hash = calculate_payload_hash(payload, content_type, credentials.algorithm)

    normalized = normalized_string(ts, nonce, method, resource, host, port, payload_hash, ext)
    mac = calculate_mac(credentials.key, normalized, credentials.algorithm)

    attributes = [f'id="{credentials.identity}"', f'ts="{ts}"', f'nonce="{nonce}"']
    if payload_hash:
        attributes.append(f'hash="{payload_hash}"')
    if ext:
        attributes.append(f'ext="{ext}"')
    attributes.append(f'mac="{mac}"')
    return f"{SCHEME} " + ", ".join(attributes)
