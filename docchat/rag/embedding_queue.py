"""Background embedding of stored chunks.

Each submitted chunk gets its own asyncio task: the chunk is already persisted
(without a vector) when the task starts, and the task writes the vector onto
that chunk id when the provider answers. Tasks are independent, unordered,
uncapped and never retried. Every task resolves to an ``EmbeddingOutcome``
instead of raising, so callers can observe completion and failure.
"""
import asyncio
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence, Set

import structlog

from docchat.db import Storage
from docchat.errors import EmbeddingError
from docchat.models import Chunk

logger = structlog.get_logger()


class SupportsEmbed(Protocol):
    async def embed(self, text: str) -> List[float]: ...


@dataclass(frozen=True)
class EmbeddingOutcome:
    """Result of embedding one chunk."""

    chunk_id: int
    success: bool
    dimension: Optional[int] = None
    error: Optional[str] = None


class EmbeddingBatch:
    """Handle over the tasks scheduled for one group of chunks."""

    def __init__(self, tasks: Sequence["asyncio.Task[EmbeddingOutcome]"]):
        self.tasks = list(tasks)

    def __len__(self) -> int:
        return len(self.tasks)

    @property
    def done(self) -> bool:
        return all(task.done() for task in self.tasks)

    async def wait(self) -> List[EmbeddingOutcome]:
        """Wait for every task and return outcomes in submission order."""
        if not self.tasks:
            return []
        return list(await asyncio.gather(*self.tasks))


class EmbeddingQueue:
    """Schedules chunk embeddings as detached tasks and tracks them."""

    def __init__(
        self,
        storage: Storage,
        embedder: SupportsEmbed,
        on_outcome: Optional[Callable[[EmbeddingOutcome], None]] = None,
    ):
        """Initialize the queue.

        Args:
            storage: Store the vectors are written to
            embedder: Anything with ``async embed(text) -> list[float]``
            on_outcome: Optional callback invoked with every outcome
        """
        self.storage = storage
        self.embedder = embedder
        self.on_outcome = on_outcome
        self._pending: Set["asyncio.Task[EmbeddingOutcome]"] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def submit(self, chunk: Chunk) -> "asyncio.Task[EmbeddingOutcome]":
        """Start embedding a chunk in the background and return its task.

        Must be called from a running event loop.
        """
        task = asyncio.create_task(
            self._embed_chunk(chunk), name=f"embed-chunk-{chunk.id}"
        )
        # Hold a reference until completion so the task is not collected
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def submit_many(self, chunks: Sequence[Chunk]) -> EmbeddingBatch:
        """Submit several chunks; one independent task each."""
        batch = EmbeddingBatch([self.submit(chunk) for chunk in chunks])
        logger.info("chunk_embeddings_scheduled", count=len(batch))
        return batch

    async def drain(self) -> List[EmbeddingOutcome]:
        """Wait for every task still in flight."""
        if not self._pending:
            return []
        outcomes = await asyncio.gather(*list(self._pending))
        logger.info("embedding_queue_drained", count=len(outcomes))
        return list(outcomes)

    async def _embed_chunk(self, chunk: Chunk) -> EmbeddingOutcome:
        try:
            embedding = await self.embedder.embed(chunk.content)
            stored = self.storage.set_chunk_embedding(chunk.id, embedding)
        except EmbeddingError as e:
            logger.error(
                "chunk_embedding_failed",
                chunk_id=chunk.id,
                document_id=chunk.document_id,
                error=str(e),
            )
            outcome = EmbeddingOutcome(chunk_id=chunk.id, success=False, error=str(e))
        except Exception as e:
            logger.exception(
                "chunk_embedding_store_failed",
                chunk_id=chunk.id,
                document_id=chunk.document_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            outcome = EmbeddingOutcome(chunk_id=chunk.id, success=False, error=str(e))
        else:
            if stored:
                logger.debug("chunk_embedded", chunk_id=chunk.id, dimension=len(embedding))
                outcome = EmbeddingOutcome(
                    chunk_id=chunk.id, success=True, dimension=len(embedding)
                )
            else:
                logger.warning("chunk_deleted_before_embedding", chunk_id=chunk.id)
                outcome = EmbeddingOutcome(
                    chunk_id=chunk.id, success=False, error="chunk no longer exists"
                )

        if self.on_outcome is not None:
            self.on_outcome(outcome)
        return outcome
