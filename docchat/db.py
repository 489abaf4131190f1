"""Storage layer for documents, chunks and conversation messages.

Two implementations of the same ``Storage`` protocol:
- ``SQLiteStorage``: persistent, one short-lived connection per call
- ``InMemoryStorage``: process-local dictionaries, for tests and throwaway runs

Embeddings are stored as JSON arrays next to the chunk text. Similarity search
is an exact linear scan over ``get_embedded_chunks()`` done by the retriever.
"""
import itertools
import json
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

import structlog

from docchat import config
from docchat.models import ROLES, Chunk, Document, Message, utcnow

logger = structlog.get_logger()


@runtime_checkable
class Storage(Protocol):
    """Capabilities the ingest, retrieval and chat layers need from a store."""

    def create_document(self, name: str, type: str, size: int) -> Document: ...

    def list_documents(self) -> List[Document]: ...

    def get_document(self, document_id: str) -> Optional[Document]: ...

    def delete_document(self, document_id: str) -> bool: ...

    def create_chunk(self, document_id: str, content: str) -> Chunk: ...

    def get_document_chunks(self, document_id: str) -> List[Chunk]: ...

    def set_chunk_embedding(self, chunk_id: int, embedding: Sequence[float]) -> bool: ...

    def get_embedded_chunks(self) -> List[Chunk]: ...

    def get_unembedded_chunks(self) -> List[Chunk]: ...

    def create_message(self, conversation_id: str, role: str, content: str) -> Message: ...

    def get_messages(self, conversation_id: str) -> List[Message]: ...

    def clear_messages(self, conversation_id: str) -> int: ...


def _check_role(role: str) -> None:
    if role not in ROLES:
        raise ValueError(f"Invalid message role '{role}', expected one of {ROLES}")


class SQLiteStorage:
    """SQLite-backed store."""

    def __init__(self, db_path: Path = None):
        """Initialize the store and create the schema if needed.

        Args:
            db_path: Path to the SQLite file (default from config)
        """
        self.db_path = Path(db_path or config.DB_PATH)
        self.init_database()

    def get_connection(self) -> sqlite3.Connection:
        """Get a connection to the SQLite database.

        Returns:
            sqlite3.Connection with row_factory set to sqlite3.Row
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_database(self) -> None:
        """Initialize the database schema.

        Creates tables if they don't exist:
        - documents: uploaded files
        - chunks: text chunks with their (optional) embedding
        - messages: conversation turns keyed by conversation id
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    type TEXT NOT NULL,
                    size INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS chunks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    document_id TEXT NOT NULL
                        REFERENCES documents(id) ON DELETE CASCADE,
                    content TEXT NOT NULL,
                    embedding_json TEXT,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_id TEXT NOT NULL,
                    role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_chunks_document_id
                ON chunks(document_id)
            """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_messages_conversation
                ON messages(conversation_id, created_at)
            """)

            conn.commit()
            logger.info("database_initialized", db_path=str(self.db_path))

        except Exception as e:
            conn.rollback()
            logger.error("database_init_failed", error=str(e))
            raise
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def create_document(self, name: str, type: str, size: int) -> Document:
        document = Document(id=str(uuid.uuid4()), name=name, type=type, size=size)
        conn = self.get_connection()

        try:
            conn.execute(
                "INSERT INTO documents (id, name, type, size, created_at) VALUES (?, ?, ?, ?, ?)",
                (document.id, name, type, size, document.created_at.isoformat()),
            )
            conn.commit()
            return document

        except Exception as e:
            conn.rollback()
            logger.error("document_insert_failed", error=str(e), name=name)
            raise
        finally:
            conn.close()

    def list_documents(self) -> List[Document]:
        """All documents, newest first."""
        conn = self.get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM documents ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
            return [_row_to_document(row) for row in rows]
        finally:
            conn.close()

    def get_document(self, document_id: str) -> Optional[Document]:
        conn = self.get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM documents WHERE id = ?", (document_id,)
            ).fetchone()
            return _row_to_document(row) if row else None
        finally:
            conn.close()

    def delete_document(self, document_id: str) -> bool:
        """Delete a document and all of its chunks.

        Returns:
            True if the document existed
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM chunks WHERE document_id = ?", (document_id,))
            chunks_deleted = cursor.rowcount
            cursor.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            deleted = cursor.rowcount > 0
            conn.commit()

            if deleted:
                logger.info(
                    "document_deleted",
                    document_id=document_id,
                    chunks_deleted=chunks_deleted,
                )
            return deleted

        except Exception as e:
            conn.rollback()
            logger.error("document_delete_failed", error=str(e), document_id=document_id)
            raise
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def create_chunk(self, document_id: str, content: str) -> Chunk:
        created_at = utcnow()
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute(
                "INSERT INTO chunks (document_id, content, embedding_json, created_at) "
                "VALUES (?, ?, NULL, ?)",
                (document_id, content, created_at.isoformat()),
            )
            conn.commit()
            return Chunk(
                id=cursor.lastrowid,
                document_id=document_id,
                content=content,
                created_at=created_at,
            )

        except Exception as e:
            conn.rollback()
            logger.error("chunk_insert_failed", error=str(e), document_id=document_id)
            raise
        finally:
            conn.close()

    def get_document_chunks(self, document_id: str) -> List[Chunk]:
        conn = self.get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM chunks WHERE document_id = ? ORDER BY id", (document_id,)
            ).fetchall()
            return [_row_to_chunk(row) for row in rows]
        finally:
            conn.close()

    def set_chunk_embedding(self, chunk_id: int, embedding: Sequence[float]) -> bool:
        """Attach an embedding to a chunk.

        Returns:
            False if the chunk no longer exists (its document was deleted)
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute(
                "UPDATE chunks SET embedding_json = ? WHERE id = ?",
                (json.dumps([float(x) for x in embedding]), chunk_id),
            )
            conn.commit()
            return cursor.rowcount > 0

        except Exception as e:
            conn.rollback()
            logger.error("chunk_embedding_update_failed", error=str(e), chunk_id=chunk_id)
            raise
        finally:
            conn.close()

    def get_embedded_chunks(self) -> List[Chunk]:
        conn = self.get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM chunks WHERE embedding_json IS NOT NULL ORDER BY id"
            ).fetchall()
            return [_row_to_chunk(row) for row in rows]
        finally:
            conn.close()

    def get_unembedded_chunks(self) -> List[Chunk]:
        conn = self.get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM chunks WHERE embedding_json IS NULL ORDER BY id"
            ).fetchall()
            return [_row_to_chunk(row) for row in rows]
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def create_message(self, conversation_id: str, role: str, content: str) -> Message:
        _check_role(role)
        created_at = utcnow()
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute(
                "INSERT INTO messages (conversation_id, role, content, created_at) "
                "VALUES (?, ?, ?, ?)",
                (conversation_id, role, content, created_at.isoformat()),
            )
            conn.commit()
            return Message(
                id=cursor.lastrowid,
                conversation_id=conversation_id,
                role=role,
                content=content,
                created_at=created_at,
            )

        except Exception as e:
            conn.rollback()
            logger.error("message_insert_failed", error=str(e), conversation_id=conversation_id)
            raise
        finally:
            conn.close()

    def get_messages(self, conversation_id: str) -> List[Message]:
        """Messages of a conversation in the order they occurred."""
        conn = self.get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM messages WHERE conversation_id = ? ORDER BY created_at, id",
                (conversation_id,),
            ).fetchall()
            return [_row_to_message(row) for row in rows]
        finally:
            conn.close()

    def clear_messages(self, conversation_id: str) -> int:
        """Delete every message of a conversation.

        Returns:
            Number of messages deleted
        """
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,))
            count = cursor.rowcount
            conn.commit()
            logger.info("messages_cleared", conversation_id=conversation_id, count=count)
            return count

        except Exception as e:
            conn.rollback()
            logger.error("messages_clear_failed", error=str(e))
            raise
        finally:
            conn.close()


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        name=row["name"],
        type=row["type"],
        size=row["size"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    embedding_json = row["embedding_json"]
    return Chunk(
        id=row["id"],
        document_id=row["document_id"],
        content=row["content"],
        embedding=json.loads(embedding_json) if embedding_json else None,
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        conversation_id=row["conversation_id"],
        role=row["role"],
        content=row["content"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class InMemoryStorage:
    """Dictionary-backed store with the same semantics as ``SQLiteStorage``."""

    def __init__(self):
        self.documents: Dict[str, Document] = {}
        self.chunks: Dict[int, Chunk] = {}
        self.messages: Dict[int, Message] = {}
        self._chunk_ids = itertools.count(1)
        self._message_ids = itertools.count(1)

    def create_document(self, name: str, type: str, size: int) -> Document:
        document = Document(id=str(uuid.uuid4()), name=name, type=type, size=size)
        self.documents[document.id] = document
        return document

    def list_documents(self) -> List[Document]:
        # Insertion order breaks created_at ties, newest first
        ordered = sorted(
            enumerate(self.documents.values()),
            key=lambda pair: (pair[1].created_at, pair[0]),
            reverse=True,
        )
        return [document for _, document in ordered]

    def get_document(self, document_id: str) -> Optional[Document]:
        return self.documents.get(document_id)

    def delete_document(self, document_id: str) -> bool:
        if self.documents.pop(document_id, None) is None:
            return False
        for chunk_id in [c.id for c in self.chunks.values() if c.document_id == document_id]:
            del self.chunks[chunk_id]
        return True

    def create_chunk(self, document_id: str, content: str) -> Chunk:
        chunk = Chunk(id=next(self._chunk_ids), document_id=document_id, content=content)
        self.chunks[chunk.id] = chunk
        return _copy_chunk(chunk)

    def get_document_chunks(self, document_id: str) -> List[Chunk]:
        return [_copy_chunk(c) for c in self.chunks.values() if c.document_id == document_id]

    def set_chunk_embedding(self, chunk_id: int, embedding: Sequence[float]) -> bool:
        chunk = self.chunks.get(chunk_id)
        if chunk is None:
            return False
        chunk.embedding = [float(x) for x in embedding]
        return True

    def get_embedded_chunks(self) -> List[Chunk]:
        return [_copy_chunk(c) for c in self.chunks.values() if c.has_embedding]

    def get_unembedded_chunks(self) -> List[Chunk]:
        return [_copy_chunk(c) for c in self.chunks.values() if not c.has_embedding]

    def create_message(self, conversation_id: str, role: str, content: str) -> Message:
        _check_role(role)
        message = Message(
            id=next(self._message_ids),
            conversation_id=conversation_id,
            role=role,
            content=content,
        )
        self.messages[message.id] = message
        return message

    def get_messages(self, conversation_id: str) -> List[Message]:
        return sorted(
            (m for m in self.messages.values() if m.conversation_id == conversation_id),
            key=lambda m: (m.created_at, m.id),
        )

    def clear_messages(self, conversation_id: str) -> int:
        doomed = [m.id for m in self.messages.values() if m.conversation_id == conversation_id]
        for message_id in doomed:
            del self.messages[message_id]
        return len(doomed)


def _copy_chunk(chunk: Chunk) -> Chunk:
    return Chunk(
        id=chunk.id,
        document_id=chunk.document_id,
        content=chunk.content,
        embedding=list(chunk.embedding) if chunk.embedding is not None else None,
        created_at=chunk.created_at,
    )
