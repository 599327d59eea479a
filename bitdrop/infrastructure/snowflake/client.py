"""
Snowflake database connection management.

Provides a connection pool shared by all requests, plus a mock connection
with in-memory tables for local development and tests.

Using the repository pattern means most code never touches this module
directly - it goes through DropRepository which handles the translation
between domain models and database rows.
"""

import logging
import queue
import threading
from contextlib import contextmanager
from typing import Callable, Generator, Optional

from .repositories.drops import SnowflakeConfig, SnowflakeConnection

logger = logging.getLogger(__name__)


class SnowflakeConnectionError(Exception):
    """Raised when Snowflake connection fails."""
    pass


def _load_private_key(key_path: str) -> bytes:
    """
    Load private key from file for key-pair authentication.

    Snowflake wants the key as DER-encoded PKCS8 bytes, not a file path.
    """
    from cryptography.hazmat.backends import default_backend
    from cryptography.hazmat.primitives import serialization

    with open(key_path, 'rb') as key_file:
        private_key = serialization.load_pem_private_key(
            key_file.read(),
            password=None,
            backend=default_backend()
        )

    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


def open_snowflake_connection(config: SnowflakeConfig) -> SnowflakeConnection:
    """
    Open a new Snowflake connection.

    Supports both password and key-pair authentication:
    - If private_key_path is set, uses key-pair auth
    - Otherwise, uses password auth
    """
    try:
        import snowflake.connector
    except ImportError:
        raise ImportError(
            "snowflake-connector-python is required. "
            "Install with: pip install snowflake-connector-python"
        )

    connect_params = {
        'account': config.account,
        'user': config.user,
        'database': config.database,
        'schema': config.schema,
        'warehouse': config.warehouse,
        'role': config.role,
        'client_session_keep_alive': True,
    }

    if config.private_key_path:
        logger.info("Using key-pair authentication for Snowflake")
        connect_params['private_key'] = _load_private_key(config.private_key_path)
    elif config.password:
        logger.info("Using password authentication for Snowflake")
        connect_params['password'] = config.password
    else:
        raise SnowflakeConnectionError(
            "Either password or private_key_path must be provided"
        )

    try:
        conn = snowflake.connector.connect(**connect_params)
    except snowflake.connector.errors.DatabaseError as e:
        logger.error(
            "Snowflake connection failed",
            extra={"error": str(e), "account": config.account}
        )
        raise SnowflakeConnectionError(f"Database connection failed: {e}")

    logger.debug(
        "Established Snowflake connection",
        extra={
            "account": config.account,
            "database": config.database,
            "schema": config.schema,
        }
    )
    return conn


# ---------------------------------------------------------------------------
# Connection Pool
# ---------------------------------------------------------------------------

class SnowflakeConnectionPool:
    """
    Thread-safe pool of Snowflake connections.

    Connections are checked out for the duration of one request and
    returned afterwards. Up to pool_size idle connections are kept; extra
    connections opened under load are closed on return.
    """

    def __init__(
        self,
        config: Optional[SnowflakeConfig] = None,
        pool_size: int = 5,
        connect: Optional[Callable[[], SnowflakeConnection]] = None,
    ):
        if connect is None:
            if config is None:
                raise ValueError("config or connect is required")
            connect = lambda: open_snowflake_connection(config)  # noqa: E731
        self._connect = connect
        self._idle: queue.LifoQueue = queue.LifoQueue(maxsize=pool_size)

        logger.info(
            "Initialized Snowflake connection pool",
            extra={"pool_size": pool_size}
        )

    @contextmanager
    def get_connection(self) -> Generator[SnowflakeConnection, None, None]:
        try:
            conn = self._idle.get_nowait()
        except queue.Empty:
            conn = self._connect()

        try:
            yield conn
        finally:
            try:
                self._idle.put_nowait(conn)
            except queue.Full:
                _close_quietly(conn)

    def close(self) -> None:
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                break
            _close_quietly(conn)


def _close_quietly(conn: SnowflakeConnection) -> None:
    try:
        conn.close()
        logger.debug("Closed Snowflake connection")
    except Exception as e:
        logger.warning(
            "Error closing Snowflake connection",
            extra={"error": str(e)}
        )


class SharedConnectionPool:
    """Hands out one connection to everyone. Used for the mock connection."""

    def __init__(self, connection: SnowflakeConnection) -> None:
        self.connection = connection

    @contextmanager
    def get_connection(self) -> Generator[SnowflakeConnection, None, None]:
        yield self.connection

    def close(self) -> None:
        self.connection.close()


# ---------------------------------------------------------------------------
# Mock Connection for Local Development
# ---------------------------------------------------------------------------

class MockSnowflakeCursor:
    """
    Mock Snowflake cursor for testing.

    Implements just enough of the cursor interface to support
    DropRepository without a real database, by pattern matching on the
    handful of statements the repository issues.
    """

    def __init__(self, connection: 'MockSnowflakeConnection') -> None:
        self._connection = connection
        self._storage = connection._storage
        self._results: list = []
        self._rowcount: int = 0

    def execute(self, query: str, params: Optional[tuple] = None) -> 'MockSnowflakeCursor':
        logger.debug(
            "Mock cursor execute",
            extra={"query": query[:100], "params": params}
        )

        if self._connection.fail_next is not None:
            error, self._connection.fail_next = self._connection.fail_next, None
            raise error

        query_upper = " ".join(query.upper().split())

        with self._connection._lock:
            if query_upper.startswith('CREATE'):
                self._rowcount = 0
            elif query_upper.startswith('INSERT INTO DROPS'):
                self._handle_insert(params)
            elif query_upper.startswith('DELETE FROM DROPS'):
                self._handle_delete(params)
            elif query_upper == 'SELECT 1':
                self._results = [(1,)]
            elif query_upper.startswith('SELECT'):
                self._handle_select(query_upper, params)

        return self

    def _handle_insert(self, params: tuple) -> None:
        drop_id = str(params[0])
        if drop_id in self._storage['drops']:
            raise RuntimeError(f"Duplicate key value for drops.id: {drop_id}")
        self._storage['drops'][drop_id] = {
            'id': drop_id,
            'user_id': params[1],
            'group_id': params[2],
            'video_url': params[3],
            'thumbnail': params[4],
            'caption': params[5],
            'created_at': params[6],
            'updated_at': params[7],
            'votes': params[8],
            'visibility': 'private',
        }
        self._rowcount = 1

    def _handle_delete(self, params: tuple) -> None:
        removed = self._storage['drops'].pop(str(params[0]), None)
        self._rowcount = 1 if removed else 0

    def _handle_select(self, query: str, params: Optional[tuple]) -> None:
        drops = self._storage['drops']

        if 'JOIN USERS' in query:
            row = drops.get(str(params[0]))
            if row is None:
                self._results = []
                return
            user = self._storage['users'].get(row['user_id'], {})
            self._results = [
                self._drop_row(row) + (user.get('username'), user.get('avatar_url'))
            ]

        elif 'WHERE USER_ID' in query:
            rows = [r for r in drops.values() if r['user_id'] == params[0]]
            rows.sort(key=lambda r: r['created_at'], reverse=True)
            self._results = [self._drop_row(r) for r in rows]

        elif 'WHERE ID' in query:
            row = drops.get(str(params[0]))
            self._results = [self._drop_row(row)] if row else []

        else:
            self._results = []

    @staticmethod
    def _drop_row(row: dict) -> tuple:
        return (
            row['id'], row['user_id'], row['group_id'], row['video_url'],
            row['thumbnail'], row['caption'], row['created_at'],
            row['updated_at'], row['votes'], row['visibility'],
        )

    def fetchone(self):
        if not self._results:
            return None
        return self._results[0]

    def fetchall(self) -> list:
        return list(self._results)

    def close(self) -> None:
        pass

    @property
    def rowcount(self) -> int:
        return self._rowcount


class MockSnowflakeConnection:
    """
    Mock Snowflake connection for local development.

    Stores rows in memory, guarded by a lock because repository calls run
    on worker threads. Not suitable for production, but perfect for:
    - Local development
    - Unit tests
    - CI/CD environments
    """

    def __init__(self) -> None:
        # In-memory storage: {table_name: {id: row_dict}}
        self._storage: dict[str, dict[str, dict]] = {
            'drops': {},
            'users': {},
        }
        self._lock = threading.Lock()
        # Set to an exception to make the next execute() raise it
        self.fail_next: Optional[Exception] = None

        logger.info("Initialized mock Snowflake connection (in-memory)")

    def cursor(self) -> MockSnowflakeCursor:
        return MockSnowflakeCursor(self)

    def commit(self) -> None:
        logger.debug("Mock connection commit")

    def rollback(self) -> None:
        logger.debug("Mock connection rollback")

    def close(self) -> None:
        logger.debug("Mock connection close")

    # Helper methods for testing
    def _add_user(self, user_id: str, username: str, avatar_url: str = "") -> None:
        self._storage['users'][user_id] = {
            'id': user_id,
            'username': username,
            'avatar_url': avatar_url,
        }

    def _get_drop(self, drop_id) -> Optional[dict]:
        return self._storage['drops'].get(str(drop_id))

    def _clear(self) -> None:
        for table in self._storage.values():
            table.clear()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_connection_pool(
    config: Optional[SnowflakeConfig] = None,
    mock_mode: bool = False,
    pool_size: int = 5,
):
    """
    Create the process-wide connection pool.

    Args:
        config: Snowflake configuration (required if not mock_mode)
        mock_mode: If True, every checkout returns one shared mock connection
        pool_size: Idle connections kept by the real pool
    """
    if mock_mode:
        return SharedConnectionPool(MockSnowflakeConnection())

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return SnowflakeConnectionPool(config=config, pool_size=pool_size)
