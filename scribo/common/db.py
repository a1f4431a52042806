# scribo/common/db.py

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator, List, Optional

import aiosqlite

from scribo.common.utils import get_logger

logger = get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"


class DatabaseError(Exception):
    """Custom exception for database-related errors."""
    pass


def load_migrations(directory: Path = MIGRATIONS_DIR) -> List[Path]:
    """
    Return the SQL migration files in application order (by filename prefix).
    """
    return sorted(p for p in directory.glob("*.sql") if p.is_file())


class DatabaseManager:
    """
    Owns the asynchronous SQLite connection used by the nodes and pings tables.
    One instance per application; the instance is created in the lifespan and
    closed on shutdown.
    """

    def __init__(self):
        self._connection: Optional[aiosqlite.Connection] = None
        self.path: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self._connection is not None

    async def connect(self, db_path: str) -> None:
        """
        Open the database connection.

        Args:
            db_path (str): Path to the SQLite database file.
        """
        if self._connection is not None:
            logger.warning("DatabaseManager is already connected.")
            return

        logger.info(f"Connecting to SQLite database at {db_path}")
        try:
            # Autocommit: every statement is its own transaction on the shared connection.
            self._connection = await aiosqlite.connect(db_path, isolation_level=None)
            self._connection.row_factory = aiosqlite.Row
            await self._connection.execute("PRAGMA foreign_keys=ON")
            self.path = db_path
        except aiosqlite.Error as e:
            logger.error(f"Failed to connect to database: {e}")
            raise DatabaseError(f"Database connection failed: {e}") from e

    async def close(self) -> None:
        """
        Gracefully close the database connection.
        """
        if self._connection is None:
            logger.warning("No active database connection to close.")
            return

        try:
            await self._connection.close()
            logger.info("Database connection closed.")
        except aiosqlite.Error as e:
            logger.error(f"Failed to close database connection: {e}")
            raise DatabaseError(f"Database connection closure failed: {e}") from e
        finally:
            self._connection = None

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[aiosqlite.Cursor, None]:
        """
        Async context manager for database sessions.
        Yields a cursor and wraps driver errors in DatabaseError. The
        connection autocommits, so a failed statement never undoes the writes
        of concurrent sessions.
        """
        if self._connection is None:
            raise DatabaseError("Database connection is not initialized.")

        async with self._connection.cursor() as cursor:
            try:
                yield cursor
                await self._connection.commit()
            except aiosqlite.Error as e:
                await self._connection.rollback()
                logger.error(f"Database operation failed: {e}")
                raise DatabaseError(f"Database operation failed: {e}") from e

    async def health_check(self) -> bool:
        """Return True when the database answers a trivial query."""
        try:
            async with self.get_session() as cursor:
                await cursor.execute("SELECT 1")
                return (await cursor.fetchone()) is not None
        except DatabaseError:
            return False

    async def migrate(self, index: Optional[int] = None, apply_all: bool = False) -> int:
        """
        Apply SQL migrations: every file when ``apply_all`` is set, the file at
        ``index`` when given, otherwise only the latest one.

        Returns:
            int: number of migration files executed.
        """
        if self._connection is None:
            raise DatabaseError("Database connection is not initialized.")

        migrations = load_migrations()
        if not migrations:
            raise DatabaseError(f"No migrations found in {MIGRATIONS_DIR}")

        if apply_all:
            selected = migrations
        elif index is not None:
            if index < 0 or index >= len(migrations):
                raise DatabaseError(f"No migration #{index}")
            selected = [migrations[index]]
        else:
            selected = migrations[-1:]

        for migration in selected:
            logger.info(f"Applying migration {migration.name}")
            try:
                await self._connection.executescript(migration.read_text())
                await self._connection.commit()
            except aiosqlite.Error as e:
                logger.error(f"Migration {migration.name} failed: {e}")
                raise DatabaseError(f"Migration {migration.name} failed: {e}") from e
        return len(selected)
