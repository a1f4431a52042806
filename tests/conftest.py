import asyncio

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from scribo.api.auth import KeyIssuer
from scribo.client import HawkAuth
from scribo.common.config import Config
from scribo.common.db import DatabaseManager
from scribo.common.models import Node
from scribo.main import create_app

TEST_SECRET = "test-secret"

# -------------------------------
# Fixtures
# -------------------------------

@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "scribo.db")


@pytest.fixture
def config(db_path):
    """Packaged config pointed at a throwaway database."""
    return Config(overrides={
        "database": {"path": db_path},
        "security": {"secret": TEST_SECRET},
        "logging": {"level": "WARNING"},
    })


@pytest_asyncio.fixture
async def db(db_path):
    """A migrated database connection for persistence tests."""
    manager = DatabaseManager()
    await manager.connect(db_path)
    await manager.migrate(apply_all=True)
    yield manager
    if manager.connected:
        await manager.close()


@pytest.fixture
def registered(db_path) -> Node:
    """A node with an issued key, stored before the app starts."""
    async def setup() -> Node:
        manager = DatabaseManager()
        await manager.connect(db_path)
        try:
            await manager.migrate(apply_all=True)
            node = Node(name="tester", address="127.0.0.1")
            node.update_key(KeyIssuer(TEST_SECRET))
            await node.save(manager)
            return node
        finally:
            await manager.close()

    return asyncio.run(setup())


@pytest.fixture
def auth(registered) -> HawkAuth:
    return HawkAuth(registered.name, registered.key)


@pytest.fixture
def client(config, registered):
    """A TestClient running the app lifespan against the test database."""
    with TestClient(create_app(config)) as client:
        yield client
