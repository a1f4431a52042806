# scribo/client.py

"""
Client side of the Hawk scheme for talking to Scribo:

    >>> import httpx
    >>> from scribo.client import HawkAuth
    >>> auth = HawkAuth("apollo", "key printed by scribo register")
    >>> httpx.get("http://localhost:8080/nodes", auth=auth).json()
"""

from typing import Generator, Optional

import httpx

from scribo.api.hawk import Credentials, build_authorization_header


class HawkAuth(httpx.Auth):
    """httpx authentication flow that signs each request with Hawk."""
    requires_request_body = True

    def __init__(self, identity: str, key: str, ext: Optional[str] = None):
        self.credentials = Credentials(identity=identity, key=key)
        self.ext = ext

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        url = request.url
        port = url.port or (443 if url.scheme == "https" else 80)
        payload = request.content or None

        request.headers["Authorization"] = build_authorization_header(
            self.credentials,
            request.method,
            url.raw_path.decode("ascii"),
            url.host,
            port,
            payload=payload,
            content_type=request.headers.get("content-type"),
            ext=self.ext,
        )
        yield request


def connect(base_url: str, identity: str, key: str, **kwargs) -> httpx.Client:
    """An ``httpx.Client`` bound to a Scribo server that signs every request."""
    return httpx.Client(base_url=base_url, auth=HawkAuth(identity, key), **kwargs)
