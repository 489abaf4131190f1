"""Ingest pipeline for uploaded documents.

Orchestrates:
- Upload validation (type, size)
- Text extraction
- Text chunking
- Chunk persistence
- Background embedding scheduling
"""
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import structlog

from docchat import config
from docchat.db import Storage
from docchat.errors import UploadTooLargeError
from docchat.models import Chunk, Document
from docchat.rag.chunker import TextChunker
from docchat.rag.embedding_queue import EmbeddingBatch, EmbeddingOutcome, EmbeddingQueue
from docchat.rag.extractor import TextExtractor, resolve_type

logger = structlog.get_logger()


@dataclass
class IngestResult:
    """What an upload produced."""

    document: Document
    chunks: List[Chunk]
    embeddings: EmbeddingBatch

    def to_dict(self) -> dict:
        data = self.document.to_dict()
        data["chunk_count"] = len(self.chunks)
        return data


class IngestPipeline:
    """Pipeline for turning uploaded files into embedded, searchable chunks."""

    def __init__(
        self,
        storage: Storage,
        embedding_queue: EmbeddingQueue,
        extractor: TextExtractor = None,
        chunker: TextChunker = None,
        max_upload_bytes: int = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            storage: Document and chunk store
            embedding_queue: Queue that embeds persisted chunks in the background
            extractor: Text extractor (default: all accepted types)
            chunker: Text chunker (default sizes from config)
            max_upload_bytes: Upload size limit (default from config)
        """
        self.storage = storage
        self.embedding_queue = embedding_queue
        self.extractor = extractor or TextExtractor()
        self.chunker = chunker or TextChunker()
        self.max_upload_bytes = max_upload_bytes or config.MAX_UPLOAD_BYTES

    async def ingest_bytes(self, filename: str, data: bytes) -> IngestResult:
        """Ingest an uploaded file held in memory.

        Validation and extraction run before anything is stored, so a rejected
        file leaves no document or chunk behind. Embeddings are only scheduled;
        the returned batch can be awaited to observe them.

        Args:
            filename: Original file name; its extension is the declared type
            data: File contents

        Returns:
            IngestResult with the stored document and chunks

        Raises:
            UnsupportedTypeError: If the extension is not accepted
            UploadTooLargeError: If the file exceeds the size limit
            ExtractionError: If the file cannot be read
        """
        declared_type = resolve_type(filename)

        if len(data) > self.max_upload_bytes:
            raise UploadTooLargeError(len(data), self.max_upload_bytes)

        text = self.extractor.extract(data, declared_type)

        document = self.storage.create_document(
            name=filename,
            type=declared_type.upper(),
            size=len(data),
        )

        try:
            chunks = self._store_chunks(document, text)
        except Exception as e:
            logger.error(
                "chunk_persistence_failed",
                document_id=document.id,
                error=str(e),
            )
            self.storage.delete_document(document.id)
            raise

        batch = self.embedding_queue.submit_many(chunks)

        logger.info(
            "document_ingested",
            document_id=document.id,
            name=filename,
            type=document.type,
            size=document.size,
            chunks_created=len(chunks),
        )

        return IngestResult(document=document, chunks=chunks, embeddings=batch)

    async def ingest_file(
        self,
        path: Path,
        original_name: Optional[str] = None,
        remove_after: bool = False,
    ) -> IngestResult:
        """Ingest a file from disk.

        Args:
            path: File to read
            original_name: Name to record (defaults to the file's own name)
            remove_after: Delete the file afterwards, whether ingestion succeeded or not

        Returns:
            IngestResult with the stored document and chunks
        """
        path = Path(path)
        try:
            data = path.read_bytes()
            return await self.ingest_bytes(original_name or path.name, data)
        finally:
            if remove_after and path.exists():
                path.unlink()
                logger.debug("upload_artifact_removed", path=str(path))

    def _store_chunks(self, document: Document, text: str) -> List[Chunk]:
        text_chunks = self.chunker.chunk_text(text)
        stored = []

        for text_chunk in text_chunks:
            if not text_chunk.content.strip():
                continue
            stored.append(self.storage.create_chunk(document.id, text_chunk.content))

        logger.debug(
            "chunk_stats",
            document_id=document.id,
            skipped_empty=len(text_chunks) - len(stored),
            **self.chunker.get_chunk_stats(text_chunks),
        )
        return stored

    def list_documents(self) -> List[Document]:
        return self.storage.list_documents()

    def delete_document(self, document_id: str) -> bool:
        """Delete a document together with all of its chunks."""
        return self.storage.delete_document(document_id)

    async def reembed_missing(self) -> List[EmbeddingOutcome]:
        """Embed every stored chunk that has no vector yet and wait for the results."""
        chunks = self.storage.get_unembedded_chunks()
        if not chunks:
            logger.info("no_unembedded_chunks")
            return []

        outcomes = await self.embedding_queue.submit_many(chunks).wait()

        logger.info(
            "reembed_completed",
            submitted=len(chunks),
            succeeded=sum(1 for o in outcomes if o.success),
            failed=sum(1 for o in outcomes if not o.success),
        )
        return outcomes
