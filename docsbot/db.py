"""SQLite storage for documentation files, chunks and chat history.

Tables:
- documentation_files: one row per ingested Markdown path
- documentation_images: image references found in each file
- documentation_chunks: chunk text, metadata and float32 embedding bytes
- chat_messages: conversation turns keyed by session id
"""
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

import numpy as np
import structlog

from docsbot import config
from docsbot.rag.models import (
    Chunk,
    ChunkMetadata,
    ConversationTurn,
    DocumentationFile,
    ImageReference,
    utcnow,
)

logger = structlog.get_logger()

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS documentation_files (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        path TEXT NOT NULL UNIQUE,
        content TEXT NOT NULL,
        has_images INTEGER NOT NULL DEFAULT 0,
        source_url TEXT,
        last_updated TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS documentation_images (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        file_id INTEGER NOT NULL,
        position INTEGER NOT NULL,
        url TEXT NOT NULL,
        alt TEXT,
        last_updated TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS documentation_chunks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        file_id INTEGER NOT NULL,
        chunk_index INTEGER NOT NULL,
        content TEXT NOT NULL,
        metadata_json TEXT NOT NULL,
        embedding BLOB,
        last_updated TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chat_messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id TEXT NOT NULL,
        role TEXT NOT NULL,
        content TEXT NOT NULL,
        timestamp TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_chunks_file_id ON documentation_chunks(file_id)",
    "CREATE INDEX IF NOT EXISTS idx_images_file_id ON documentation_images(file_id)",
    "CREATE INDEX IF NOT EXISTS idx_messages_session ON chat_messages(session_id)",
)


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Get a connection to the SQLite database.

    Returns:
        sqlite3.Connection with row_factory set to sqlite3.Row
    """
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    return conn


def init_database(db_path: Path) -> None:
    """Create the schema if it doesn't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)

    try:
        for statement in SCHEMA:
            conn.execute(statement)
        conn.commit()
        logger.info("database_initialized", db_path=str(db_path))

    except sqlite3.Error as e:
        conn.rollback()
        logger.error("database_init_failed", error=str(e))
        raise
    finally:
        conn.close()


def encode_embedding(embedding: Optional[np.ndarray]) -> Optional[bytes]:
    if embedding is None:
        return None
    return np.asarray(embedding, dtype=np.float32).tobytes()


def decode_embedding(blob: Optional[bytes], chunk_id: Optional[int] = None) -> Optional[np.ndarray]:
    """Decode stored float32 bytes; malformed or empty blobs decode to None."""
    if not blob:
        return None
    if len(blob) % 4:
        logger.warning("malformed_embedding_blob", chunk_id=chunk_id, size=len(blob))
        return None
    return np.frombuffer(blob, dtype=np.float32).copy()


def _now() -> str:
    return utcnow().isoformat()


def _parse_time(value: Optional[str]) -> datetime:
    return datetime.fromisoformat(value) if value else utcnow()


class Corpus:
    """Documentation files, images and chunks stored in SQLite.

    Every mutation notifies the registered change listeners once it is
    committed.
    """

    def __init__(self, db_path: Path = None):
        self.db_path = Path(db_path or config.DB_PATH)
        self._listeners: List[Callable[[], None]] = []
        init_database(self.db_path)

    def add_change_listener(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def _notify(self, reason: str) -> None:
        logger.debug("corpus_changed", reason=reason, listeners=len(self._listeners))
        for listener in self._listeners:
            listener()

    # Files

    def upsert_file(
        self,
        path: str,
        content: str,
        has_images: bool = False,
        source_url: Optional[str] = None,
    ) -> DocumentationFile:
        """Insert a file or update the existing row with the same path."""
        conn = get_connection(self.db_path)
        now = _now()

        try:
            conn.execute(
                """
                INSERT INTO documentation_files (path, content, has_images, source_url, last_updated)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    content = excluded.content,
                    has_images = excluded.has_images,
                    source_url = excluded.source_url,
                    last_updated = excluded.last_updated
                """,
                (path, content, int(has_images), source_url, now),
            )
            row = conn.execute(
                "SELECT * FROM documentation_files WHERE path = ?", (path,)
            ).fetchone()
            conn.commit()

        except sqlite3.Error as e:
            conn.rollback()
            logger.error("file_upsert_failed", error=str(e), path=path)
            raise
        finally:
            conn.close()

        self._notify("file_upserted")
        return self._row_to_file(row)

    def get_file(self, file_id: int) -> Optional[DocumentationFile]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT * FROM documentation_files WHERE id = ?", (file_id,)
            ).fetchone()
            return self._row_to_file(row) if row else None
        finally:
            conn.close()

    def get_file_by_path(self, path: str) -> Optional[DocumentationFile]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT * FROM documentation_files WHERE path = ?", (path,)
            ).fetchone()
            return self._row_to_file(row) if row else None
        finally:
            conn.close()

    def list_files(self) -> List[DocumentationFile]:
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute("SELECT * FROM documentation_files ORDER BY path").fetchall()
            return [self._row_to_file(row) for row in rows]
        finally:
            conn.close()

    def delete_file(self, file_id: int) -> bool:
        """Delete a file together with its images and chunks.

        Returns:
            True if deleted, False if not found
        """
        conn = get_connection(self.db_path)

        try:
            conn.execute("DELETE FROM documentation_chunks WHERE file_id = ?", (file_id,))
            conn.execute("DELETE FROM documentation_images WHERE file_id = ?", (file_id,))
            cursor = conn.execute("DELETE FROM documentation_files WHERE id = ?", (file_id,))
            conn.commit()
            deleted = cursor.rowcount > 0

        except sqlite3.Error as e:
            conn.rollback()
            logger.error("file_delete_failed", error=str(e), file_id=file_id)
            raise
        finally:
            conn.close()

        if deleted:
            logger.info("file_deleted", file_id=file_id)
            self._notify("file_deleted")
        return deleted

    # Images

    def replace_images_for_file(self, file_id: int, images: List[ImageReference]) -> None:
        conn = get_connection(self.db_path)
        now = _now()

        try:
            conn.execute("DELETE FROM documentation_images WHERE file_id = ?", (file_id,))
            conn.executemany(
                """
                INSERT INTO documentation_images (file_id, position, url, alt, last_updated)
                VALUES (?, ?, ?, ?, ?)
                """,
                [(file_id, i, image.url, image.alt, now) for i, image in enumerate(images)],
            )
            conn.commit()

        except sqlite3.Error as e:
            conn.rollback()
            logger.error("images_replace_failed", error=str(e), file_id=file_id)
            raise
        finally:
            conn.close()

    def get_images_for_file(self, file_id: int) -> List[ImageReference]:
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute(
                "SELECT url, alt FROM documentation_images WHERE file_id = ? ORDER BY position",
                (file_id,),
            ).fetchall()
            return [ImageReference(url=row["url"], alt=row["alt"] or "") for row in rows]
        finally:
            conn.close()

    # Chunks

    def replace_chunks_for_file(self, file_id: int, chunks: List[Chunk]) -> List[Chunk]:
        """Atomically swap every chunk of a file for a new set.

        Args:
            file_id: Owning file
            chunks: New chunks (their ids are ignored)

        Returns:
            The stored chunks with ids assigned
        """
        conn = get_connection(self.db_path)
        now = utcnow()
        stored: List[Chunk] = []

        try:
            cursor = conn.execute("DELETE FROM documentation_chunks WHERE file_id = ?", (file_id,))
            removed = cursor.rowcount

            for index, chunk in enumerate(chunks):
                cursor = conn.execute(
                    """
                    INSERT INTO documentation_chunks (
                        file_id, chunk_index, content, metadata_json, embedding, last_updated
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        file_id,
                        index,
                        chunk.content,
                        json.dumps(chunk.metadata.to_dict()),
                        encode_embedding(chunk.embedding),
                        now.isoformat(),
                    ),
                )
                stored.append(
                    Chunk(
                        id=cursor.lastrowid,
                        file_id=file_id,
                        content=chunk.content,
                        metadata=chunk.metadata,
                        embedding=chunk.embedding,
                        last_updated=now,
                    )
                )

            conn.commit()

        except sqlite3.Error as e:
            conn.rollback()
            logger.error("chunks_replace_failed", error=str(e), file_id=file_id)
            raise
        finally:
            conn.close()

        logger.info(
            "chunks_replaced",
            file_id=file_id,
            removed=removed,
            inserted=len(stored),
        )
        self._notify("chunks_replaced")
        return stored

    def get_chunks_for_file(self, file_id: int) -> List[Chunk]:
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM documentation_chunks WHERE file_id = ? ORDER BY chunk_index",
                (file_id,),
            ).fetchall()
            return [self._row_to_chunk(row) for row in rows]
        finally:
            conn.close()

    def get_all_chunks(self) -> List[Chunk]:
        """Enumerate the full corpus, ordered by chunk id."""
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute("SELECT * FROM documentation_chunks ORDER BY id").fetchall()
            return [self._row_to_chunk(row) for row in rows]

        except sqlite3.Error as e:
            logger.error("chunks_retrieval_failed", error=str(e))
            raise
        finally:
            conn.close()

    def update_chunk(
        self,
        chunk_id: int,
        content: str,
        metadata: ChunkMetadata,
        embedding: Optional[np.ndarray],
    ) -> Optional[Chunk]:
        """Replace content, metadata, embedding and timestamp in one statement."""
        conn = get_connection(self.db_path)
        now = _now()

        try:
            cursor = conn.execute(
                """
                UPDATE documentation_chunks
                SET content = ?, metadata_json = ?, embedding = ?, last_updated = ?
                WHERE id = ?
                """,
                (
                    content,
                    json.dumps(metadata.to_dict()),
                    encode_embedding(embedding),
                    now,
                    chunk_id,
                ),
            )
            row = conn.execute(
                "SELECT * FROM documentation_chunks WHERE id = ?", (chunk_id,)
            ).fetchone()
            conn.commit()

        except sqlite3.Error as e:
            conn.rollback()
            logger.error("chunk_update_failed", error=str(e), chunk_id=chunk_id)
            raise
        finally:
            conn.close()

        if cursor.rowcount == 0:
            return None
        self._notify("chunk_updated")
        return self._row_to_chunk(row)

    def delete_chunk(self, chunk_id: int) -> bool:
        conn = get_connection(self.db_path)

        try:
            cursor = conn.execute("DELETE FROM documentation_chunks WHERE id = ?", (chunk_id,))
            conn.commit()
            deleted = cursor.rowcount > 0

        except sqlite3.Error as e:
            conn.rollback()
            logger.error("chunk_delete_failed", error=str(e), chunk_id=chunk_id)
            raise
        finally:
            conn.close()

        if deleted:
            self._notify("chunk_deleted")
        return deleted

    def purge_all(self) -> Dict[str, int]:
        """Delete all files, images and chunks.

        Returns:
            Number of rows removed per table
        """
        conn = get_connection(self.db_path)
        counts = {}

        try:
            for table in ("documentation_chunks", "documentation_images", "documentation_files"):
                counts[table] = conn.execute(f"DELETE FROM {table}").rowcount
            conn.commit()

        except sqlite3.Error as e:
            conn.rollback()
            logger.error("corpus_purge_failed", error=str(e))
            raise
        finally:
            conn.close()

        logger.info("corpus_purged", **counts)
        self._notify("purged")
        return counts

    def get_stats(self) -> Dict[str, int]:
        conn = get_connection(self.db_path)
        try:
            return {
                "file_count": conn.execute("SELECT COUNT(*) FROM documentation_files").fetchone()[0],
                "image_count": conn.execute("SELECT COUNT(*) FROM documentation_images").fetchone()[0],
                "chunk_count": conn.execute("SELECT COUNT(*) FROM documentation_chunks").fetchone()[0],
                "embedded_chunk_count": conn.execute(
                    "SELECT COUNT(*) FROM documentation_chunks WHERE embedding IS NOT NULL"
                ).fetchone()[0],
            }
        finally:
            conn.close()

    @staticmethod
    def _row_to_file(row: sqlite3.Row) -> DocumentationFile:
        return DocumentationFile(
            id=row["id"],
            path=row["path"],
            content=row["content"],
            has_images=bool(row["has_images"]),
            source_url=row["source_url"],
            last_updated=_parse_time(row["last_updated"]),
        )

    @staticmethod
    def _row_to_chunk(row: sqlite3.Row) -> Chunk:
        try:
            metadata = ChunkMetadata.from_dict(json.loads(row["metadata_json"]))
        except (TypeError, ValueError):
            logger.warning("malformed_chunk_metadata", chunk_id=row["id"])
            metadata = ChunkMetadata(path="")
        return Chunk(
            id=row["id"],
            file_id=row["file_id"],
            content=row["content"],
            metadata=metadata,
            embedding=decode_embedding(row["embedding"], chunk_id=row["id"]),
            last_updated=_parse_time(row["last_updated"]),
        )


class ChatHistory:
    """Chat messages stored in the same SQLite database."""

    def __init__(self, db_path: Path = None):
        self.db_path = Path(db_path or config.DB_PATH)
        init_database(self.db_path)

    def add_message(self, session_id: str, role: str, content: str) -> int:
        """Insert a message.

        Returns:
            ID of the inserted message
        """
        conn = get_connection(self.db_path)

        try:
            cursor = conn.execute(
                "INSERT INTO chat_messages (session_id, role, content, timestamp) VALUES (?, ?, ?, ?)",
                (session_id, role, content, _now()),
            )
            conn.commit()
            return cursor.lastrowid

        except sqlite3.Error as e:
            conn.rollback()
            logger.error("message_insert_failed", error=str(e), session_id=session_id)
            raise
        finally:
            conn.close()

    def get_messages(self, session_id: str, limit: Optional[int] = None) -> List[ConversationTurn]:
        """Get messages for a session in chronological order.

        Args:
            session_id: Session to read
            limit: Only return the most recent ``limit`` messages

        Returns:
            List of ConversationTurn objects, oldest first
        """
        conn = get_connection(self.db_path)

        try:
            if limit is None:
                rows = conn.execute(
                    "SELECT * FROM chat_messages WHERE session_id = ? ORDER BY id",
                    (session_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT * FROM (
                        SELECT * FROM chat_messages WHERE session_id = ?
                        ORDER BY id DESC LIMIT ?
                    ) ORDER BY id
                    """,
                    (session_id, limit),
                ).fetchall()

            return [
                ConversationTurn(
                    role=row["role"],
                    content=row["content"],
                    timestamp=_parse_time(row["timestamp"]),
                )
                for row in rows
            ]
        finally:
            conn.close()

    def list_sessions(self, limit: int = 50) -> List[Dict[str, str]]:
        """List sessions, most recently active first."""
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute(
                """
                SELECT session_id, MIN(timestamp) AS started_at, MAX(timestamp) AS last_message_at,
                       COUNT(*) AS message_count
                FROM chat_messages
                GROUP BY session_id
                ORDER BY MAX(id) DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    def delete_session(self, session_id: str) -> bool:
        conn = get_connection(self.db_path)

        try:
            cursor = conn.execute("DELETE FROM chat_messages WHERE session_id = ?", (session_id,))
            conn.commit()
            return cursor.rowcount > 0

        except sqlite3.Error as e:
            conn.rollback()
            logger.error("session_delete_failed", error=str(e), session_id=session_id)
            raise
        finally:
            conn.close()
