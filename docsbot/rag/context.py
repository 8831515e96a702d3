"""Prompt assembly for documentation answers."""
from typing import Callable, Dict, List, Optional

import structlog

from docsbot.rag.models import ConversationTurn, SimilarityResult

logger = structlog.get_logger()

TruncationPolicy = Callable[[List[SimilarityResult]], List[SimilarityResult]]

SYSTEM_PROMPT = """You are a documentation assistant. Answer questions using ONLY the documentation excerpts provided with each question.

- Excerpts are Markdown sections labelled with their source file. Headings inside them are real content, not labels.
- If the excerpts mention a topic but give no details, say "I found information about [topic] but the documentation doesn't provide detailed information about it."
- If the excerpts do not answer the question, say "I don't have information about that in the documentation." Do not make up answers.
- When an excerpt references an image, include the image URL in your answer.
- Mention the file name where you found the information.
- Include relevant configuration or code examples verbatim.
- Format your answer with Markdown."""

NO_CONTEXT_BLOCK = "No relevant documentation was found for this question."

FALLBACK_ANSWER = (
    "Sorry, I encountered an error while processing your question. "
    "Please try again later."
)


def drop_lowest_ranked(max_chars: int) -> TruncationPolicy:
    """Keep results in rank order until their content exceeds max_chars.

    The top result is always kept.
    """

    def policy(results: List[SimilarityResult]) -> List[SimilarityResult]:
        kept: List[SimilarityResult] = []
        total = 0
        for result in results:
            size = len(result.chunk.content)
            if kept and total + size > max_chars:
                break
            kept.append(result)
            total += size
        if len(kept) < len(results):
            logger.debug(
                "context_truncated",
                kept=len(kept),
                dropped=len(results) - len(kept),
                max_chars=max_chars,
            )
        return kept

    return policy


def format_excerpt(result: SimilarityResult) -> str:
    """Format one ranked chunk with its provenance and image marker."""
    chunk = result.chunk
    text = f"From {chunk.path}:\n{chunk.content}"
    metadata = chunk.metadata
    if metadata.has_image and metadata.image_url:
        alt = f" - {metadata.image_alt}" if metadata.image_alt else ""
        text += f"\n[Image: {metadata.image_url}{alt}]"
    return text


class ContextAssembler:
    """Builds the generation provider's message sequence."""

    def __init__(
        self,
        system_prompt: str = SYSTEM_PROMPT,
        truncation_policy: Optional[TruncationPolicy] = None,
    ):
        """Initialize the assembler.

        Args:
            system_prompt: Fixed instructions sent first
            truncation_policy: Optional callable pruning ranked results
                before the context block is built
        """
        self.system_prompt = system_prompt
        self.truncation_policy = truncation_policy

    def build_context(self, results: List[SimilarityResult]) -> str:
        if self.truncation_policy is not None:
            results = self.truncation_policy(results)
        if not results:
            return NO_CONTEXT_BLOCK
        return "\n\n".join(format_excerpt(r) for r in results)

    def assemble(
        self,
        question: str,
        results: List[SimilarityResult],
        history: List[ConversationTurn],
    ) -> List[Dict[str, str]]:
        """Combine instructions, prior turns and the new question.

        Args:
            question: The user's question
            results: Ranked chunks, best first
            history: Prior turns of the session, oldest first

        Returns:
            Messages as dicts with 'role' and 'content'
        """
        context = self.build_context(results)

        user_message = (
            f"Question: {question.strip()}\n\n"
            f"Relevant documentation:\n\n{context}\n\n"
            "Answer based ONLY on this documentation. If it does not contain "
            "enough information, say so."
        )

        messages = [{"role": "system", "content": self.system_prompt}]
        messages.extend(
            turn.as_message()
            for turn in sorted(history, key=lambda t: t.timestamp)
            if turn.role in ("user", "assistant")
        )
        messages.append({"role": "user", "content": user_message})

        logger.debug(
            "prompt_assembled",
            context_length=len(context),
            history_count=len(messages) - 2,
            result_count=len(results),
        )
        return messages

    def render(self, answer: str) -> ConversationTurn:
        """Package the provider's answer as an assistant turn."""
        return ConversationTurn(role="assistant", content=answer.strip() or FALLBACK_ANSWER)
