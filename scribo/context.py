# scribo/context.py

from dataclasses import dataclass

from scribo.api.auth import CredentialResolver, HawkAuthenticator, KeyIssuer, NonceStore
from scribo.common.config import Config
from scribo.common.db import DatabaseManager


@dataclass
class AppContext:
    """Per-application collaborators handed to every resource call."""
    config: Config
    db: DatabaseManager
    issuer: KeyIssuer
    authenticator: HawkAuthenticator
    page_size: int = 10
    max_body_bytes: int = 1048576

    @classmethod
    def from_config(cls, config: Config) -> "AppContext":
        db = DatabaseManager()
        max_body_bytes = config.get_int("api.max_body_bytes", 1048576)
        max_clock_skew = config.get_int("auth.max_clock_skew", 60)
        authenticator = HawkAuthenticator(
            CredentialResolver(db),
            NonceStore(db, max_clock_skew),
            max_clock_skew=max_clock_skew,
            max_body_bytes=max_body_bytes,
        )
        return cls(
            config=config,
            db=db,
            issuer=KeyIssuer(config.get("security.secret")),
            authenticator=authenticator,
            page_size=config.get_int("api.page_size", 10),
            max_body_bytes=max_body_bytes,
        )
