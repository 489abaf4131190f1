"""System instructions for the text generator."""
from typing import Sequence

from docchat.models import Chunk

GROUNDED_INSTRUCTIONS = (
    "IMPORTANT: You are a document-based support assistant. You must ONLY answer "
    "based on the document excerpts provided below. If the answer cannot be found "
    "in these excerpts, explicitly state that you cannot answer based on the "
    "available documents. Do NOT use any external knowledge."
)

NO_DOCUMENTS_INSTRUCTIONS = (
    "You are a document-based support assistant. You can ONLY answer questions "
    "based on uploaded document content. No relevant documents are available for "
    "this question. Politely explain that you can only provide answers based on "
    "uploaded documents and cannot use external knowledge."
)


def build_system_prompt(chunks: Sequence[Chunk]) -> str:
    """Build the system instruction for a chat turn.

    With retrieved chunks, the generator is restricted to the numbered excerpts.
    Without any, it is told that nothing relevant exists and to decline.
    """
    if not chunks:
        return NO_DOCUMENTS_INSTRUCTIONS

    parts = [GROUNDED_INSTRUCTIONS, ""]
    for i, chunk in enumerate(chunks, 1):
        parts.append(f"Document excerpt {i}:\n{chunk.content}\n")
    return "\n".join(parts)
