import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

logger = logging.getLogger(__name__)

# Type alias for clarity
Connection = sqlite3.Connection

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

class DatabaseConfig:
    """Database configuration settings."""

    def __init__(self, db_path: Path | str = "data/ledger.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def connection_string(self) -> str:
        """Return the database file path as a string"""
        return str(self.db_path.absolute())

def configure_connection(conn: Connection) -> None:
    """
    Apply standard configuration to a SQLite connection.

    Args:
        conn: SQLite connection to configure
    """
    # Enable foreign key constraints (OFF by default in SQLite!)
    conn.execute("PRAGMA foreign_keys = ON")

    # Return rows as dict-like objects instead of tuples
    conn.row_factory = sqlite3.Row

class DatabaseManager:
    """
    Manages a shared SQLite connection.

    The connection is shared across threads; transaction() holds a
    re-entrant lock for the whole unit of work, so writes are serialized
    and an upsert plus its read-back happen as one step.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._connection: Connection | None = None
        self._lock = threading.RLock()

    def get_connection(self) -> Connection:
        """
        Get or create a database connection.

        Returns:
            sqlite3.Connection: Active database connection
        """
        with self._lock:
            if self._connection is None:
                self._connection = self._create_connection()
            return self._connection

    def _create_connection(self) -> Connection:
        conn = sqlite3.connect(
            self.config.connection_string,
            check_same_thread=False, # Allow multi-threaded access
        )
        configure_connection(conn)
        logger.debug("Opened database %s", self.config.connection_string)
        return conn

    def close(self) -> None:
        """Close the database connection if open."""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None

    @contextmanager
    def transaction(self) -> Generator[Connection, None, None]:
        """
        Context manager for database transactions.

        Automatically commits on success, rolls back on exception.

        Usage:
            with db_manager.transaction() as conn:
                conn.execute("INSERT INTO ...")
                conn.execute("UPDATE ...")
        """
        with self._lock:
            conn = self.get_connection()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    @contextmanager
    def reading(self) -> Generator[Connection, None, None]:
        """Connection for a read, serialized with writes on the shared connection."""
        with self._lock:
            yield self.get_connection()

    def initialize(self) -> None:
        """Create the schema if it does not exist yet."""
        execute_schema(self.get_connection(), SCHEMA_PATH)

    def __enter__(self) -> "DatabaseManager":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - close connection."""
        self.close()

def execute_schema(conn: Connection, schema_path: Path) -> None:
    """
    Execute a SQL schema file.

    Args:
        conn: Database connection
        schema_path: Path to .sql file
    """
    with open(schema_path, encoding="utf-8") as f:
        schema = f.read()

    conn.executescript(schema)
    conn.commit()
