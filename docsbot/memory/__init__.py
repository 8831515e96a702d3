"""Conversation memory for chat sessions."""
from docsbot.memory.manager import ConversationManager

__all__ = ["ConversationManager"]
