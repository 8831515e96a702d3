"""Composition root wiring storage, providers and the retrieval pipeline."""
from pathlib import Path

import structlog

from docsbot import config
from docsbot.db import ChatHistory, Corpus
from docsbot.llm_client import OllamaClient
from docsbot.memory import ConversationManager
from docsbot.providers import (
    EmbeddingProvider,
    GenerationProvider,
    OllamaEmbeddingProvider,
    OllamaGenerationProvider,
)
from docsbot.rag.assistant import DocumentationAssistant
from docsbot.rag.chunk_builder import ChunkBuilder
from docsbot.rag.chunker import SectionSizer
from docsbot.rag.context import ContextAssembler, drop_lowest_ranked
from docsbot.rag.ingest import IngestPipeline
from docsbot.rag.md_parser import MarkdownParser
from docsbot.rag.vector_index import SimilarityIndex

logger = structlog.get_logger()


class DocsService:
    """Owns one instance of every component and their wiring."""

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        generation_provider: GenerationProvider,
        db_path: Path = None,
        parser: MarkdownParser = None,
        sizer: SectionSizer = None,
        assembler: ContextAssembler = None,
        ollama_client: OllamaClient = None,
    ):
        self.ollama_client = ollama_client
        self.corpus = Corpus(db_path)
        self.chat_history = ChatHistory(self.corpus.db_path)
        self.conversations = ConversationManager(self.chat_history)

        self.index = SimilarityIndex(self.corpus, embedding_provider)
        self.corpus.add_change_listener(self.index.invalidate)

        parser = parser or MarkdownParser()
        self.pipeline = IngestPipeline(
            corpus=self.corpus,
            index=self.index,
            chunk_builder=ChunkBuilder(embedding_provider),
            parser=parser,
            sizer=sizer or SectionSizer(parser=parser),
        )

        if assembler is None:
            policy = drop_lowest_ranked(config.MAX_CONTEXT_CHARS) if config.MAX_CONTEXT_CHARS else None
            assembler = ContextAssembler(truncation_policy=policy)
        self.assistant = DocumentationAssistant(
            index=self.index,
            generation_provider=generation_provider,
            conversations=self.conversations,
            assembler=assembler,
        )

        logger.info("docs_service_initialized", db_path=str(self.corpus.db_path))

    @classmethod
    def from_config(cls) -> "DocsService":
        """Build the production service talking to Ollama."""
        client = OllamaClient()
        return cls(
            embedding_provider=OllamaEmbeddingProvider(client),
            generation_provider=OllamaGenerationProvider(client),
            ollama_client=client,
        )

    def get_stats(self) -> dict:
        stats = self.corpus.get_stats()
        stats["index"] = self.index.get_stats()
        return stats
