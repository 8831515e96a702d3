"""Turns sized sections into embedded chunks."""
import asyncio
from typing import List, Optional, Tuple

import numpy as np
import structlog

from docsbot import config
from docsbot.providers import EmbeddingProvider, ProviderError
from docsbot.rag.models import Chunk, ChunkMetadata, DocumentationFile, ImageReference, Section

logger = structlog.get_logger()

DEFAULT_SECTION_LABEL = "content"


def find_primary_image(text: str, images: List[ImageReference]) -> Optional[ImageReference]:
    """Return the first image (in file order) whose URL or alt text appears in *text*."""
    for image in images:
        if image.url and image.url in text:
            return image
        if image.alt and image.alt in text:
            return image
    return None


class ChunkBuilder:
    """Attaches metadata and embeddings to sections of one file."""

    def __init__(self, embedding_provider: EmbeddingProvider, concurrency: int = None):
        """Initialize the chunk builder.

        Args:
            embedding_provider: Provider used to embed each chunk
            concurrency: Maximum embedding calls in flight (default from config)
        """
        self.embedding_provider = embedding_provider
        self.concurrency = max(1, concurrency or config.EMBED_CONCURRENCY)

    async def build_chunks(
        self,
        file: DocumentationFile,
        sections: List[Section],
        images: List[ImageReference],
    ) -> List[Chunk]:
        """Build one chunk per non-blank section.

        A chunk whose embedding fails is still returned, without an
        embedding, so the rest of the file is not blocked.

        Args:
            file: Owning documentation file
            sections: Sized sections of the file
            images: Images known to be embedded in the file, in file order

        Returns:
            Chunks in section order
        """
        sections = [s for s in sections if s.text.strip()]
        semaphore = asyncio.Semaphore(self.concurrency)

        async def embed_limited(text: str) -> Optional[np.ndarray]:
            async with semaphore:
                return await self.embed_text(text, path=file.path)

        embeddings = await asyncio.gather(*(embed_limited(s.text) for s in sections))

        chunks = []
        for section, embedding in zip(sections, embeddings):
            image = find_primary_image(section.text, images)
            metadata = ChunkMetadata(
                path=file.path,
                section_label=section.heading or section.label or DEFAULT_SECTION_LABEL,
                has_image=image is not None,
                image_url=image.url if image else None,
                image_alt=image.alt if image else None,
            )
            chunks.append(
                Chunk(
                    file_id=file.id,
                    content=section.text,
                    metadata=metadata,
                    embedding=embedding,
                )
            )

        failed = sum(1 for c in chunks if c.embedding is None)
        logger.info(
            "chunks_built",
            path=file.path,
            chunk_count=len(chunks),
            embeddings_failed=failed,
        )
        return chunks

    async def embed_text(self, text: str, path: str = None) -> Optional[np.ndarray]:
        """Embed text, returning None instead of raising on provider failure."""
        try:
            vector = await self.embedding_provider.embed(text)
        except ProviderError as e:
            logger.warning(
                "chunk_embedding_failed",
                path=path,
                text_preview=text[:100],
                error=str(e),
            )
            return None

        embedding, problem = validate_embedding(vector)
        if problem:
            logger.warning("chunk_embedding_invalid", path=path, problem=problem)
        return embedding


def validate_embedding(vector) -> Tuple[Optional[np.ndarray], Optional[str]]:
    """Convert a provider vector to a 1-D float32 array.

    Returns:
        Tuple of (array or None, problem description or None)
    """
    if vector is None:
        return None, "missing"
    try:
        array = np.asarray(vector, dtype=np.float32)
    except (TypeError, ValueError):
        return None, "not_numeric"
    if array.ndim != 1 or array.size == 0:
        return None, "bad_shape"
    if not np.all(np.isfinite(array)):
        return None, "non_finite"
    return array, None
