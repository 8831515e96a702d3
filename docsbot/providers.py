"""Embedding and generation provider contracts.

The retrieval core only sees these two protocols; the Ollama adapters
below are the production implementations.
"""
from typing import Dict, List, Optional, Protocol

import httpx
import structlog

from docsbot import config
from docsbot.llm_client import OllamaClient

logger = structlog.get_logger()


class ProviderError(RuntimeError):
    """Raised when an embedding or generation call fails."""


class EmbeddingProvider(Protocol):
    async def embed(self, text: str) -> List[float]:
        """Return the embedding vector for *text*."""


class GenerationProvider(Protocol):
    async def generate(self, messages: List[Dict[str, str]]) -> str:
        """Return the model's reply to an ordered message list."""


class OllamaEmbeddingProvider:
    """Embeds text with an Ollama embedding model."""

    def __init__(self, client: OllamaClient = None, model: str = None):
        self.client = client or OllamaClient()
        self.model = model or config.EMBEDDING_MODEL

    async def embed(self, text: str) -> List[float]:
        try:
            response = await self.client.embeddings(prompt=text, model=self.model)
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"Embedding request failed: {e}") from e

        embedding = response.get("embedding") or []
        if not embedding:
            raise ProviderError("Empty embedding returned from Ollama")
        return embedding


class OllamaGenerationProvider:
    """Generates answers with an Ollama chat model."""

    def __init__(
        self,
        client: OllamaClient = None,
        model: str = None,
        temperature: Optional[float] = None,
    ):
        self.client = client or OllamaClient()
        self.model = model or config.CHAT_MODEL
        self.temperature = config.GENERATION_TEMPERATURE if temperature is None else temperature

    async def generate(self, messages: List[Dict[str, str]]) -> str:
        try:
            response = await self.client.chat(
                messages,
                model=self.model,
                temperature=self.temperature,
            )
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderError(f"Chat request failed: {e}") from e

        content = response.get("message", {}).get("content", "")
        if not content:
            logger.error("empty_ollama_response", model=self.model)
            raise ProviderError("Empty response from Ollama")
        return content
