"""Conversation memory manager.

Handles conversation creation, message persistence, and conversation history
for multi-turn chat interactions. Every call names the conversation it acts on.
"""
import uuid
from typing import Dict, List

import structlog

from docchat.db import Storage
from docchat.models import Message

logger = structlog.get_logger()


class ConversationManager:
    """Manages conversations and their message history."""

    def __init__(self, storage: Storage):
        """Initialize the conversation manager.

        Args:
            storage: Store holding the messages
        """
        self.storage = storage

    def create_conversation(self) -> str:
        """Create a new conversation.

        Returns:
            The new conversation ID
        """
        conversation_id = str(uuid.uuid4())
        logger.info("conversation_created", conversation_id=conversation_id)
        return conversation_id

    def add_message(self, conversation_id: str, role: str, content: str) -> Message:
        """Add a message to a conversation.

        Args:
            conversation_id: The conversation to add the message to
            role: Message role ('user' or 'assistant')
            content: The message content

        Returns:
            The stored message
        """
        message = self.storage.create_message(conversation_id, role, content)
        logger.info(
            "conversation_message_added",
            conversation_id=conversation_id,
            role=role,
            message_id=message.id,
        )
        return message

    def get_all_messages(self, conversation_id: str) -> List[Message]:
        """Get all messages of a conversation in chronological order."""
        return self.storage.get_messages(conversation_id)

    def format_conversation_history(self, conversation_id: str) -> List[Dict[str, str]]:
        """Format the full conversation history for LLM context.

        Args:
            conversation_id: The conversation to format

        Returns:
            List of message dictionaries with 'role' and 'content' keys
        """
        history = [
            {"role": message.role, "content": message.content}
            for message in self.get_all_messages(conversation_id)
        ]

        logger.debug(
            "conversation_history_formatted",
            conversation_id=conversation_id,
            message_count=len(history),
        )
        return history

    def reset(self, conversation_id: str) -> int:
        """Delete every message of a conversation.

        Returns:
            Number of messages removed
        """
        count = self.storage.clear_messages(conversation_id)
        logger.info("conversation_reset", conversation_id=conversation_id, removed=count)
        return count
