"""Domain records: documents, their chunks, and conversation messages."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

USER = "user"
ASSISTANT = "assistant"
ROLES = (USER, ASSISTANT)


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Document:
    """An uploaded file. Owns its chunks."""

    id: str
    name: str
    type: str  # PDF | DOCX | TXT | MD
    size: int
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "size": self.size,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Chunk:
    """A contiguous excerpt of a document's text, the unit of retrieval."""

    id: int
    document_id: str
    content: str
    embedding: Optional[List[float]] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "content": self.content,
            "has_embedding": self.has_embedding,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Message:
    """One turn of a conversation."""

    id: int
    conversation_id: str
    role: str
    content: str
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
        }
