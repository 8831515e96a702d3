"""Conversation memory manager.

Handles session ids, message persistence, and the history window handed
to the context assembler.
"""
import uuid
from typing import Dict, List, Optional

import structlog

from docsbot import config
from docsbot.db import ChatHistory
from docsbot.rag.models import ConversationTurn

logger = structlog.get_logger()


class ConversationManager:
    """Manages chat sessions and conversation history."""

    def __init__(self, chat_history: ChatHistory, context_window_size: int = None):
        """Initialize the conversation manager.

        Args:
            chat_history: Message storage
            context_window_size: Number of recent messages to include in context
        """
        self.chat_history = chat_history
        self.context_window_size = context_window_size or config.HISTORY_WINDOW

    @staticmethod
    def new_session_id() -> str:
        return str(uuid.uuid4())

    def add_turn(self, session_id: str, turn: ConversationTurn) -> int:
        """Persist a turn.

        Returns:
            ID of the inserted message
        """
        message_id = self.chat_history.add_message(session_id, turn.role, turn.content)
        logger.info(
            "conversation_message_added",
            session_id=session_id,
            role=turn.role,
            message_id=message_id,
        )
        return message_id

    def add_message(self, session_id: str, role: str, content: str) -> int:
        return self.add_turn(session_id, ConversationTurn(role=role, content=content))

    def get_recent_turns(
        self, session_id: str, limit: Optional[int] = None
    ) -> List[ConversationTurn]:
        """Get recent turns for a session.

        Args:
            session_id: The session ID to get messages for
            limit: Maximum number of messages (defaults to context_window_size)

        Returns:
            List of turns in chronological order
        """
        limit = limit or self.context_window_size
        turns = self.chat_history.get_messages(session_id, limit=limit)
        logger.debug(
            "conversation_messages_retrieved",
            session_id=session_id,
            count=len(turns),
        )
        return turns

    def get_all_messages(self, session_id: str) -> List[Dict[str, str]]:
        """Get all messages for a session, serialisable as JSON."""
        return [
            {
                "role": turn.role,
                "content": turn.content,
                "timestamp": turn.timestamp.isoformat(),
            }
            for turn in self.chat_history.get_messages(session_id)
        ]

    def list_sessions(self, limit: int = 50) -> List[Dict[str, str]]:
        return self.chat_history.list_sessions(limit)

    def delete_session(self, session_id: str) -> bool:
        """Delete a session and all its messages.

        Returns:
            True if deleted, False if not found
        """
        deleted = self.chat_history.delete_session(session_id)
        if deleted:
            logger.info("conversation_session_deleted", session_id=session_id)
        return deleted
