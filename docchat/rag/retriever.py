"""Similarity ranking of stored chunks against a query vector.

Exact linear scan: every chunk with an embedding is scored by cosine
similarity, best first. Chunks without an embedding are never returned.
"""
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
import structlog

from docchat import config
from docchat.db import Storage
from docchat.models import Chunk

logger = structlog.get_logger()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors.

    Returns 0.0 when either vector has zero magnitude.

    Raises:
        ValueError: If the vectors differ in length
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector length mismatch: {va.shape[0]} vs {vb.shape[0]}")

    denominator = np.linalg.norm(va) * np.linalg.norm(vb)
    if denominator == 0:
        return 0.0
    return float(np.dot(va, vb) / denominator)


@dataclass
class ScoredChunk:
    """A ranked chunk with its similarity to the query."""

    chunk: Chunk
    similarity: float

    def to_source(self, preview_chars: int = 200) -> dict:
        """Format for API responses."""
        content = self.chunk.content
        return {
            "chunk_id": self.chunk.id,
            "document_id": self.chunk.document_id,
            "content_preview": content[:preview_chars] + "..."
            if len(content) > preview_chars
            else content,
            "similarity": round(self.similarity, 4),
        }


class SimilarityRanker:
    """Ranks embedded chunks by cosine similarity to a query vector."""

    def __init__(self, storage: Storage, top_k: int = None):
        """Initialize the ranker.

        Args:
            storage: Store to fetch embedded chunks from
            top_k: Default number of results (default from config)
        """
        self.storage = storage
        self.top_k = top_k or config.RETRIEVAL_TOP_K

    def rank_with_scores(
        self, query_vector: Sequence[float], limit: int = None
    ) -> List[ScoredChunk]:
        """Score every embedded chunk and return the best ``limit``.

        Ties keep ascending chunk id order.

        Args:
            query_vector: Embedding of the query
            limit: Maximum number of results (defaults to top_k)

        Returns:
            ScoredChunk list ordered by non-increasing similarity
        """
        limit = self.top_k if limit is None else limit
        if limit <= 0:
            return []

        query = np.asarray(query_vector, dtype=np.float64)
        chunks = self.storage.get_embedded_chunks()

        candidates = []
        for chunk in chunks:
            if chunk.embedding is None:
                continue
            if len(chunk.embedding) != query.shape[0]:
                logger.warning(
                    "chunk_dimension_mismatch",
                    chunk_id=chunk.id,
                    expected=query.shape[0],
                    got=len(chunk.embedding),
                )
                continue
            candidates.append(chunk)

        if not candidates:
            logger.info("no_embedded_chunks", total_chunks=len(chunks))
            return []

        matrix = np.asarray([c.embedding for c in candidates], dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        # Zero-magnitude vectors score 0.0
        similarities = np.divide(dots, norms, out=np.zeros_like(dots), where=norms != 0)

        scored = [
            ScoredChunk(chunk=chunk, similarity=float(similarity))
            for chunk, similarity in zip(candidates, similarities)
        ]
        scored.sort(key=lambda s: (-s.similarity, s.chunk.id))
        results = scored[:limit]

        logger.info(
            "chunks_ranked",
            candidates=len(candidates),
            returned=len(results),
            top_similarity=round(results[0].similarity, 4),
        )

        return results

    def rank(self, query_vector: Sequence[float], limit: int = None) -> List[Chunk]:
        """Return the ``limit`` chunks most similar to the query, best first."""
        return [scored.chunk for scored in self.rank_with_scores(query_vector, limit)]
