"""Conversation memory."""
from docchat.memory.manager import ConversationManager

__all__ = ["ConversationManager"]
