import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, List, Optional, Sequence

import mysql.connector
from mysql.connector import Error

from clipcloud.database.base import ClipboardMetadataStore, StoreError
from clipcloud.schema import ClipboardItemMetadata

CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS clipboard_items (
        ownerId VARCHAR(128) NOT NULL,
        itemId VARCHAR(64) NOT NULL,
        contentType VARCHAR(255) NOT NULL,
        sizeBytes BIGINT NOT NULL,
        createdAt DATETIME(6) NOT NULL,
        blobName VARCHAR(512) NOT NULL,
        payloadType VARCHAR(16) NOT NULL DEFAULT 'Text',
        deviceName VARCHAR(255) NULL,
        fileName VARCHAR(255) NULL,
        expiresAt DATETIME(6) NULL,
        isEncrypted BOOLEAN NOT NULL DEFAULT FALSE,
        PRIMARY KEY (ownerId, itemId),
        INDEX idx_owner_created (ownerId, createdAt, itemId)
    )
"""

SELECT_COLUMNS = (
    "ownerId, itemId, contentType, sizeBytes, createdAt, blobName, "
    "payloadType, deviceName, fileName, expiresAt, isEncrypted"
)

logger = logging.getLogger(__name__)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # DATETIME columns are naive; values are always UTC
    return value.replace(tzinfo=None) if value is not None else None


class MySQLMetadataStore(ClipboardMetadataStore):
    """
    Clipboard metadata in a MySQL table.

    The connector is blocking, so every statement runs in a worker thread and
    the single connection is serialized with a lock.
    """

    def __init__(self, host: str = "127.0.0.1", user: str = "root", password: str = "",
                 database: str = "clipscape", port: int = 3306, conn: Optional[Any] = None) -> None:
        self._connect_args = dict(
            host=host, user=user, password=password, database=database, port=port)
        self.conn = conn
        self._lock = threading.Lock()
        self._schema_ready = False

    def _connection(self):
        if self.conn is None:
            self.conn = mysql.connector.connect(**self._connect_args)
        return self.conn

    def _run(self, sql: str, params: Sequence[Any] = (), *, fetch: bool = False) -> List[dict]:
        with self._lock:
            try:
                conn = self._connection()
                if not self._schema_ready:
                    cursor = conn.cursor()
                    try:
                        cursor.execute(CREATE_TABLE_SQL)
                    finally:
                        cursor.close()
                    self._schema_ready = True

                cursor = conn.cursor(dictionary=True)
                try:
                    cursor.execute(sql, tuple(params))
                    rows = cursor.fetchall() if fetch else []
                    # reads commit too, so the next statement sees a fresh snapshot
                    conn.commit()
                    return rows
                finally:
                    cursor.close()
            except Error as e:
                if self.conn is not None:
                    try:
                        self.conn.rollback()
                    except Error as rollback_error:
                        logger.warning(f"MySQL rollback failed: {rollback_error}")
                raise StoreError(f"MySQL statement failed: {e}") from e

    async def add(self, metadata: ClipboardItemMetadata) -> ClipboardItemMetadata:
        sql = f"""
            REPLACE INTO clipboard_items ({SELECT_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        params = (
            metadata.owner_id,
            metadata.item_id,
            metadata.content_type,
            metadata.size_bytes,
            _naive_utc(metadata.created_at),
            metadata.blob_name,
            metadata.payload_type.value,
            metadata.device_name,
            metadata.file_name,
            _naive_utc(metadata.expires_at),
            metadata.is_encrypted,
        )
        await asyncio.to_thread(self._run, sql, params)
        return metadata

    async def get(self, owner_id: str, item_id: str) -> Optional[ClipboardItemMetadata]:
        sql = f"SELECT {SELECT_COLUMNS} FROM clipboard_items WHERE ownerId = %s AND itemId = %s LIMIT 1"
        rows = await asyncio.to_thread(self._run, sql, (owner_id, item_id), fetch=True)
        return ClipboardItemMetadata.model_validate(rows[0]) if rows else None

    async def list_recent(self, owner_id: str, take: int) -> List[ClipboardItemMetadata]:
        if take <= 0:
            return []
        sql = f"""
            SELECT {SELECT_COLUMNS} FROM clipboard_items
            WHERE ownerId = %s ORDER BY createdAt DESC, itemId DESC LIMIT %s
        """
        rows = await asyncio.to_thread(self._run, sql, (owner_id, take), fetch=True)
        return [ClipboardItemMetadata.model_validate(row) for row in rows]

    async def list_all(self, owner_id: str) -> List[ClipboardItemMetadata]:
        sql = f"""
            SELECT {SELECT_COLUMNS} FROM clipboard_items
            WHERE ownerId = %s ORDER BY createdAt DESC, itemId DESC
        """
        rows = await asyncio.to_thread(self._run, sql, (owner_id,), fetch=True)
        return [ClipboardItemMetadata.model_validate(row) for row in rows]

    async def remove(self, owner_id: str, item_id: str) -> None:
        sql = "DELETE FROM clipboard_items WHERE ownerId = %s AND itemId = %s"
        await asyncio.to_thread(self._run, sql, (owner_id, item_id))

    async def close(self) -> None:
        await asyncio.to_thread(self._close)

    def _close(self) -> None:
        with self._lock:
            try:
                if self.conn is not None:
                    self.conn.close()
            except Error as e:
                logger.warning(f"Error closing MySQL connection: {e}")
            finally:
                self.conn = None
