"""Ingest pipeline for indexing Markdown documentation.

Orchestrates:
- Source discovery (local directory)
- Segmentation and sizing
- Embedding generation
- Chunk replacement in the corpus
"""
import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import structlog

from docsbot import config
from docsbot.db import Corpus
from docsbot.rag.chunk_builder import ChunkBuilder
from docsbot.rag.chunker import SectionSizer
from docsbot.rag.md_parser import MarkdownParser
from docsbot.rag.models import SourceDocument
from docsbot.rag.vector_index import SimilarityIndex

logger = structlog.get_logger()

ProgressCallback = Callable[[int, int, str], None]


def _empty_stats() -> Dict[str, int]:
    return {
        "files_processed": 0,
        "files_failed": 0,
        "chunks_created": 0,
        "embeddings_generated": 0,
        "embeddings_failed": 0,
    }


class IngestPipeline:
    """Pipeline for ingesting Markdown documents into the corpus."""

    def __init__(
        self,
        corpus: Corpus,
        index: SimilarityIndex,
        chunk_builder: ChunkBuilder,
        parser: MarkdownParser = None,
        sizer: SectionSizer = None,
        concurrency: int = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            corpus: Storage receiving files and chunks
            index: Similarity index to invalidate after a batch
            chunk_builder: Builder producing embedded chunks
            parser: Markdown segmenter (default settings from config)
            sizer: Section sizer (default settings from config)
            concurrency: Files ingested in parallel (default from config)
        """
        self.corpus = corpus
        self.index = index
        self.chunk_builder = chunk_builder
        self.parser = parser or MarkdownParser()
        self.sizer = sizer or SectionSizer(parser=self.parser)
        self.concurrency = max(1, concurrency or config.INGEST_CONCURRENCY)

        self.stats = _empty_stats()

        logger.info(
            "ingest_pipeline_initialized",
            min_section_size=self.sizer.min_size,
            max_section_size=self.sizer.max_size,
            short_document_threshold=self.parser.short_document_threshold,
            concurrency=self.concurrency,
        )

    def load_directory(self, docs_dir: Path = None) -> List[SourceDocument]:
        """Read every Markdown file below a directory.

        Paths are stored relative to the directory; images are extracted
        from the content.

        Raises:
            FileNotFoundError: If the directory doesn't exist
        """
        docs_dir = Path(docs_dir or config.DOCS_DIR)
        if not docs_dir.exists():
            raise FileNotFoundError(f"Documentation directory not found: {docs_dir}")

        documents = []
        for file_path in sorted(docs_dir.rglob("*.md")):
            try:
                content = file_path.read_text(encoding="utf-8")
            except UnicodeDecodeError as e:
                logger.error("markdown_encoding_error", path=str(file_path), error=str(e))
                continue

            documents.append(
                SourceDocument(
                    path=file_path.relative_to(docs_dir).as_posix(),
                    content=content,
                    images=self.parser.extract_images(content),
                )
            )

        logger.info(
            "markdown_files_discovered",
            count=len(documents),
            docs_dir=str(docs_dir),
        )
        return documents

    async def ingest_document(self, document: SourceDocument) -> Dict[str, Any]:
        """Ingest a single document, replacing any chunks its path had before.

        Args:
            document: Path, content and images of the file

        Returns:
            Dictionary with ingestion results
        """
        logger.info("ingesting_file", path=document.path)

        file = await asyncio.to_thread(
            self.corpus.upsert_file,
            path=document.path,
            content=document.content,
            has_images=bool(document.images),
            source_url=document.source_url,
        )
        await asyncio.to_thread(self.corpus.replace_images_for_file, file.id, document.images)

        sections = self.sizer.resize(self.parser.segment(document.content))
        chunks = await self.chunk_builder.build_chunks(file, sections, document.images)
        stored = await asyncio.to_thread(self.corpus.replace_chunks_for_file, file.id, chunks)

        embedded = sum(1 for c in stored if c.embedding is not None)
        result = {
            "path": document.path,
            "file_id": file.id,
            "chunks_created": len(stored),
            "embeddings_generated": embedded,
            "embeddings_failed": len(stored) - embedded,
        }

        logger.info("file_ingested", **result)
        return result

    async def ingest_batch(
        self,
        documents: List[SourceDocument],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Dict[str, int]:
        """Ingest several documents concurrently.

        A failing document is logged and counted; the rest of the batch
        continues.

        Args:
            documents: Documents to ingest
            progress_callback: Optional callback function(current, total, path)

        Returns:
            Dictionary with ingestion statistics
        """
        self.stats = _empty_stats()
        if not documents:
            logger.warning("no_documents_to_ingest")
            return self.stats

        logger.info("starting_ingest_batch", count=len(documents))

        semaphore = asyncio.Semaphore(self.concurrency)
        completed = 0

        async def run(document: SourceDocument) -> None:
            nonlocal completed
            async with semaphore:
                try:
                    result = await self.ingest_document(document)
                    self.stats["files_processed"] += 1
                    self.stats["chunks_created"] += result["chunks_created"]
                    self.stats["embeddings_generated"] += result["embeddings_generated"]
                    self.stats["embeddings_failed"] += result["embeddings_failed"]
                except Exception as e:
                    logger.error(
                        "file_ingestion_failed",
                        path=document.path,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    self.stats["files_failed"] += 1
                    # Continue with next file instead of failing entirely
                finally:
                    completed += 1
                    if progress_callback:
                        progress_callback(completed, len(documents), document.path)

        await asyncio.gather(*(run(doc) for doc in documents))

        self.index.invalidate()

        logger.info("ingest_batch_completed", stats=self.stats)
        return self.stats

    async def ingest_directory(
        self,
        docs_dir: Path = None,
        rebuild: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Dict[str, int]:
        """Ingest all Markdown files of a directory.

        Args:
            docs_dir: Directory to scan (default from config)
            rebuild: If True, purge the corpus first
            progress_callback: Optional callback function(current, total, path)
        """
        documents = await asyncio.to_thread(self.load_directory, docs_dir)

        if rebuild:
            self.purge()

        return await self.ingest_batch(documents, progress_callback=progress_callback)

    def purge(self) -> Dict[str, int]:
        """Remove every file, image and chunk."""
        counts = self.corpus.purge_all()
        logger.warning("corpus_purged_by_pipeline", **counts)
        return counts
