"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Text extraction from uploaded files
- Document chunking with overlap
- Embedding generation and background scheduling
- Cosine-similarity retrieval
- The upload ingest pipeline
"""
