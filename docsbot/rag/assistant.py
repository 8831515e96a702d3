"""Question answering over the indexed documentation."""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from docsbot.memory import ConversationManager
from docsbot.providers import GenerationProvider, ProviderError
from docsbot.rag.context import FALLBACK_ANSWER, ContextAssembler
from docsbot.rag.models import ConversationTurn, SimilarityResult
from docsbot.rag.vector_index import SimilarityIndex

logger = structlog.get_logger()


@dataclass
class Answer:
    session_id: str
    answer: str
    sources: List[Dict[str, Any]] = field(default_factory=list)


def describe_sources(results: List[SimilarityResult]) -> List[Dict[str, Any]]:
    """Format ranked results for API responses."""
    sources = []
    for result in results:
        content = result.chunk.content
        sources.append(
            {
                "chunk_id": result.chunk.id,
                "path": result.chunk.path,
                "source": result.source,
                "content_preview": content[:200] + "..." if len(content) > 200 else content,
                "score": round(result.score, 4),
            }
        )
    return sources


class DocumentationAssistant:
    """Retrieves context, asks the generation provider, records the exchange."""

    def __init__(
        self,
        index: SimilarityIndex,
        generation_provider: GenerationProvider,
        conversations: ConversationManager,
        assembler: ContextAssembler = None,
        top_k: Optional[int] = None,
    ):
        self.index = index
        self.generation_provider = generation_provider
        self.conversations = conversations
        self.assembler = assembler or ContextAssembler()
        self.top_k = top_k

    async def generate(self, messages: List[Dict[str, str]]) -> str:
        """Call the provider, falling back to a canned answer on failure."""
        try:
            return await self.generation_provider.generate(messages)
        except ProviderError as e:
            logger.error("generation_failed", error=str(e))
            return FALLBACK_ANSWER

    async def answer(self, question: str, session_id: Optional[str] = None) -> Answer:
        """Answer a question within a chat session.

        History is read before the new question is stored, so the question
        reaches the provider exactly once.

        Args:
            question: The user's question
            session_id: Existing session, or None to start a new one

        Returns:
            Answer with the session id, answer text and sources
        """
        session_id = session_id or self.conversations.new_session_id()

        history = await asyncio.to_thread(self.conversations.get_recent_turns, session_id)
        await asyncio.to_thread(
            self.conversations.add_turn, session_id, ConversationTurn(role="user", content=question)
        )

        results = await self.index.search(question, top_k=self.top_k)
        if not results:
            logger.info("no_relevant_context_found", session_id=session_id)

        messages = self.assembler.assemble(question, results, history)
        reply = await self.generate(messages)
        turn = self.assembler.render(reply)
        await asyncio.to_thread(self.conversations.add_turn, session_id, turn)

        logger.info(
            "question_answered",
            session_id=session_id,
            num_sources=len(results),
            response_length=len(turn.content),
        )
        return Answer(
            session_id=session_id,
            answer=turn.content,
            sources=describe_sources(results),
        )
