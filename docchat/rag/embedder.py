"""Embedding generation through the LLM client."""
from typing import List, Optional

import httpx
import structlog

from docchat import config
from docchat.errors import EmbeddingError
from docchat.llm_client import LLMClient

logger = structlog.get_logger()


class Embedder:
    """Turns text into fixed-length vectors.

    The dimensionality is fixed by config.EMBEDDING_DIMENSION when set,
    otherwise by the first vector the provider returns.
    """

    def __init__(
        self,
        client: LLMClient = None,
        model: str = None,
        dimension: Optional[int] = None,
    ):
        self.client = client or LLMClient()
        self.model = model or config.EMBEDDING_MODEL
        self.dimension = dimension or config.EMBEDDING_DIMENSION

    async def embed(self, text: str) -> List[float]:
        """Embed a single text.

        Raises:
            EmbeddingError: On provider failure or an unusable vector
        """
        try:
            response = await self.client.embeddings(text, model=self.model)
            embedding = response["data"][0]["embedding"]
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Failed to generate embedding: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingError("Malformed embedding response") from e

        if not embedding:
            raise EmbeddingError("Empty embedding returned")

        if self.dimension is None:
            self.dimension = len(embedding)
            logger.info("embedding_dimension_detected", dimension=self.dimension, model=self.model)
        elif len(embedding) != self.dimension:
            raise EmbeddingError(
                f"Embedding dimension mismatch: expected {self.dimension}, got {len(embedding)}"
            )

        return [float(x) for x in embedding]
