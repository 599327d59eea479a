"""
Snowflake repository for drops.

This module implements the repository pattern for drop data access.
The repository:
1. Translates between domain models and database rows
2. Encapsulates all SQL queries
3. Provides a clean interface for the orchestrators

The application code never writes SQL directly; it asks the repository
for what it needs in domain terms.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol
from uuid import UUID

from bitdrop.core.drops.models import Drop, DropDetails, DropOwner, Visibility

logger = logging.getLogger(__name__)


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Using a protocol means tests can provide a mock without
    importing the actual snowflake-connector-python.
    """

    def cursor(self): ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...
    def close(self) -> None: ...


@dataclass
class SnowflakeConfig:
    """Configuration for Snowflake connection."""
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    database: str = "BITDROP"
    schema: str = "PUBLIC"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


DROP_COLUMNS = (
    "id, user_id, group_id, video_url, thumbnail, caption, "
    "created_at, updated_at, votes, visibility"
)

SCHEMA_DDL = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id VARCHAR PRIMARY KEY,
        username VARCHAR NOT NULL,
        avatar_url VARCHAR DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS drops (
        id VARCHAR PRIMARY KEY,
        user_id VARCHAR NOT NULL,
        group_id VARCHAR,
        video_url VARCHAR NOT NULL,
        thumbnail VARCHAR NOT NULL,
        caption VARCHAR DEFAULT '',
        created_at TIMESTAMP_TZ NOT NULL,
        updated_at TIMESTAMP_TZ NOT NULL,
        votes INTEGER DEFAULT 0,
        visibility VARCHAR DEFAULT 'private'
            CHECK (visibility IN ('private', 'public', 'shared'))
    )
    """,
)


class DropRepository:
    """
    Repository for drop persistence.

    Each method corresponds to a use case:
    - insert: Persist a freshly ingested drop
    - get: Load a drop by ID (ownership checks, retraction)
    - list_for_user: A user's drops, newest first
    - get_details: A drop joined with its owner's profile
    - delete: Remove a drop record

    Methods are synchronous (the connector is); async callers run them
    in a worker thread.
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def insert(self, drop: Drop) -> None:
        """Insert a new drop. Visibility is left to the column default."""
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO drops (id, user_id, group_id, video_url, thumbnail,
                                   caption, created_at, updated_at, votes)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """, (
                str(drop.id),
                drop.user_id,
                str(drop.group_id) if drop.group_id else None,
                drop.video_url,
                drop.thumbnail,
                drop.caption,
                drop.created_at,
                drop.updated_at,
                drop.votes,
            ))
            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to insert drop",
                extra={"drop_id": str(drop.id), "error": str(e)}
            )
            raise
        finally:
            cursor.close()

    def get(self, drop_id: UUID) -> Optional[Drop]:
        cursor = self._conn.cursor()

        try:
            cursor.execute(
                f"SELECT {DROP_COLUMNS} FROM drops WHERE id = %s",
                (str(drop_id),),
            )
            row = cursor.fetchone()
            return self._build_drop(row) if row else None
        finally:
            cursor.close()

    def list_for_user(self, user_id: str) -> list[Drop]:
        cursor = self._conn.cursor()

        try:
            cursor.execute(
                f"SELECT {DROP_COLUMNS} FROM drops WHERE user_id = %s ORDER BY created_at DESC",
                (user_id,),
            )
            return [self._build_drop(row) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def get_details(self, drop_id: UUID) -> Optional[DropDetails]:
        """Load a drop with its owner's username and avatar."""
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                SELECT d.id, d.user_id, d.group_id, d.video_url, d.thumbnail,
                       d.caption, d.created_at, d.updated_at, d.votes, d.visibility,
                       u.username, u.avatar_url
                FROM drops d
                LEFT JOIN users u ON d.user_id = u.id
                WHERE d.id = %s
            """, (str(drop_id),))

            row = cursor.fetchone()
            if not row:
                return None

            drop = self._build_drop(row[:10])
            owner = DropOwner(
                id=drop.user_id,
                username=row[10] or "",
                avatar_url=row[11] or "",
            )
            return DropDetails(drop=drop, owner=owner)
        finally:
            cursor.close()

    def delete(self, drop_id: UUID) -> bool:
        """Delete a drop record. Returns False if nothing was deleted."""
        cursor = self._conn.cursor()

        try:
            cursor.execute("DELETE FROM drops WHERE id = %s", (str(drop_id),))
            self._conn.commit()
            return cursor.rowcount > 0

        except Exception as e:
            logger.error(
                "Failed to delete drop",
                extra={"drop_id": str(drop_id), "error": str(e)}
            )
            raise
        finally:
            cursor.close()

    def ping(self) -> None:
        """Cheap round trip for readiness checks."""
        cursor = self._conn.cursor()
        try:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        finally:
            cursor.close()

    def create_schema(self) -> None:
        cursor = self._conn.cursor()
        try:
            for statement in SCHEMA_DDL:
                cursor.execute(statement)
            self._conn.commit()
        finally:
            cursor.close()

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _build_drop(self, row) -> Drop:
        """Construct a Drop from a row in DROP_COLUMNS order."""
        return Drop(
            id=UUID(str(row[0])),
            user_id=str(row[1]),
            group_id=UUID(str(row[2])) if row[2] else None,
            video_url=row[3],
            thumbnail=row[4],
            caption=row[5] or "",
            created_at=row[6],
            updated_at=row[7],
            votes=row[8] or 0,
            visibility=Visibility(row[9]) if row[9] else None,
        )
