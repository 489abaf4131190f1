"""Chat orchestration: retrieve grounding chunks, then generate a reply."""
from dataclasses import dataclass, field
from typing import Dict, List, Protocol

import structlog

from docchat import config
from docchat.memory import ConversationManager
from docchat.models import ASSISTANT, USER, Message
from docchat.prompts import build_system_prompt
from docchat.rag.embedding_queue import SupportsEmbed
from docchat.rag.retriever import ScoredChunk, SimilarityRanker

logger = structlog.get_logger()


class SupportsGenerate(Protocol):
    async def generate(self, system_prompt: str, history: List[Dict[str, str]]) -> str: ...


@dataclass
class ChatTurn:
    """The assistant reply of one chat turn plus retrieval metadata."""

    message: Message
    chunk_count: int
    sources: List[ScoredChunk] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "message": self.message.to_dict(),
            "conversation_id": self.message.conversation_id,
            "context": {"chunk_count": self.chunk_count},
            "sources": [source.to_source() for source in self.sources],
        }


class ChatOrchestrator:
    """Answers user messages from the document corpus."""

    def __init__(
        self,
        conversations: ConversationManager,
        embedder: SupportsEmbed,
        ranker: SimilarityRanker,
        generator: SupportsGenerate,
        top_k: int = None,
    ):
        self.conversations = conversations
        self.embedder = embedder
        self.ranker = ranker
        self.generator = generator
        self.top_k = top_k or config.RETRIEVAL_TOP_K

    async def respond(self, conversation_id: str, user_text: str) -> ChatTurn:
        """Run one chat turn.

        The user message is stored first and stays stored even if a later
        step fails; the assistant message is stored only on success.

        Args:
            conversation_id: Conversation the turn belongs to
            user_text: The user's message

        Returns:
            ChatTurn with the stored assistant message

        Raises:
            EmbeddingError: If the query cannot be embedded
            GenerationError: If the generator fails
        """
        self.conversations.add_message(conversation_id, USER, user_text)

        query_vector = await self.embedder.embed(user_text)
        scored = self.ranker.rank_with_scores(query_vector, self.top_k)

        if not scored:
            logger.info("no_relevant_context_found", conversation_id=conversation_id)

        history = self.conversations.format_conversation_history(conversation_id)
        system_prompt = build_system_prompt([s.chunk for s in scored])

        reply = await self.generator.generate(system_prompt, history)

        message = self.conversations.add_message(conversation_id, ASSISTANT, reply)

        logger.info(
            "chat_response_generated",
            conversation_id=conversation_id,
            chunk_count=len(scored),
            history_length=len(history),
            response_length=len(reply),
        )

        return ChatTurn(message=message, chunk_count=len(scored), sources=scored)
