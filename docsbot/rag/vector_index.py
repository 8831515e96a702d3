"""In-memory similarity index over the whole chunk corpus.

Handles:
- Lazy caching of every chunk from the corpus
- Cache invalidation on corpus changes
- Exact cosine ranking with deterministic tie-breaking
"""
import asyncio
import threading
from typing import Dict, List, Optional, Tuple

import numpy as np
import structlog

from docsbot import config
from docsbot.db import Corpus
from docsbot.providers import EmbeddingProvider, ProviderError
from docsbot.rag.chunk_builder import validate_embedding
from docsbot.rag.models import Chunk, SimilarityResult

logger = structlog.get_logger()

# Retry bound when invalidations keep racing a cache load
MAX_POPULATE_ATTEMPTS = 3


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine of the angle between two equal-length vectors; 0 if either norm is 0."""
    if a.shape != b.shape:
        raise ValueError(f"Vectors must have the same shape: {a.shape} != {b.shape}")
    norm = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    return float(np.clip(np.dot(a, b) / norm, -1.0, 1.0))


class _Matrix:
    """Chunks sharing one embedding dimension, stacked for batch scoring."""

    def __init__(self, chunks: List[Chunk]):
        self.chunks = chunks
        self.vectors = np.vstack([c.embedding for c in chunks]).astype(np.float32)
        self.norms = np.linalg.norm(self.vectors, axis=1)


class SimilarityIndex:
    """Exact cosine search over a cached copy of the corpus."""

    def __init__(
        self,
        corpus: Corpus,
        embedding_provider: EmbeddingProvider,
        top_k: int = None,
        min_score: Optional[float] = None,
    ):
        """Initialize the index.

        Args:
            corpus: Chunk repository to enumerate
            embedding_provider: Provider used to embed queries
            top_k: Default number of results (default from config)
            min_score: Optional score floor (default from config, None disables)
        """
        self.corpus = corpus
        self.embedding_provider = embedding_provider
        self.top_k = top_k or config.RETRIEVAL_TOP_K
        self.min_score = config.MIN_SIMILARITY if min_score is None else min_score

        self._state_lock = threading.Lock()
        self._populate_lock = asyncio.Lock()
        self._generation = 0
        self._chunks: Optional[List[Chunk]] = None
        self._matrices: Dict[int, Optional[_Matrix]] = {}
        self._skipped: Dict[str, int] = {}

    def invalidate(self) -> None:
        """Drop the cached corpus; the next search reloads it."""
        with self._state_lock:
            self._generation += 1
            self._chunks = None
            self._matrices = {}
            self._skipped = {}
        logger.debug("similarity_cache_invalidated", generation=self._generation)

    clear = invalidate

    @property
    def is_cached(self) -> bool:
        return self._chunks is not None

    async def _get_chunks(self) -> Tuple[List[Chunk], int]:
        with self._state_lock:
            if self._chunks is not None:
                return self._chunks, self._generation

        async with self._populate_lock:
            chunks: List[Chunk] = []
            for _ in range(MAX_POPULATE_ATTEMPTS):
                with self._state_lock:
                    if self._chunks is not None:
                        return self._chunks, self._generation
                    generation = self._generation

                chunks = await asyncio.to_thread(self.corpus.get_all_chunks)

                with self._state_lock:
                    if generation == self._generation:
                        self._chunks = chunks
                        logger.info("similarity_cache_populated", chunk_count=len(chunks))
                        return chunks, generation

                logger.debug("similarity_cache_populate_raced", generation=generation)

            # Still racing writers: serve the freshest read without caching it
            return chunks, -1

    def _matrix_for(self, chunks: List[Chunk], generation: int, dimension: int) -> Optional[_Matrix]:
        with self._state_lock:
            if generation == self._generation and dimension in self._matrices:
                return self._matrices[dimension]

        valid: List[Chunk] = []
        skipped = {"missing": 0, "malformed": 0, "dimension_mismatch": 0}
        for chunk in chunks:
            if chunk.embedding is None:
                skipped["missing"] += 1
                continue
            embedding, problem = validate_embedding(chunk.embedding)
            if problem:
                skipped["malformed"] += 1
                continue
            if embedding.shape[0] != dimension:
                skipped["dimension_mismatch"] += 1
                continue
            valid.append(chunk)

        matrix = _Matrix(valid) if valid else None

        with self._state_lock:
            if generation == self._generation:
                self._matrices[dimension] = matrix
                self._skipped = skipped

        if any(skipped.values()):
            logger.info("unscored_chunks_skipped", dimension=dimension, **skipped)
        return matrix

    async def embed_query(self, query: str) -> Optional[np.ndarray]:
        try:
            vector = await self.embedding_provider.embed(query)
        except ProviderError as e:
            logger.error("query_embedding_failed", error=str(e), query_preview=query[:100])
            return None

        embedding, problem = validate_embedding(vector)
        if problem:
            logger.error("query_embedding_invalid", problem=problem)
        return embedding

    async def search(
        self,
        query: str,
        top_k: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> List[SimilarityResult]:
        """Rank every cached chunk against the query.

        Args:
            query: User question
            top_k: Number of results to return (overrides default)
            min_score: Drop results scoring below this (overrides default)

        Returns:
            Results ordered by score descending, then chunk id ascending.
            Empty when nothing can be scored.
        """
        top_k = self.top_k if top_k is None else top_k
        min_score = self.min_score if min_score is None else min_score

        if top_k <= 0 or not query or not query.strip():
            return []

        chunks, generation = await self._get_chunks()
        if not chunks:
            logger.info("similarity_search_empty_corpus")
            return []

        query_embedding = await self.embed_query(query)
        if query_embedding is None:
            return []

        matrix = self._matrix_for(chunks, generation, query_embedding.shape[0])
        if matrix is None:
            logger.warning(
                "no_scorable_chunks",
                chunk_count=len(chunks),
                dimension=query_embedding.shape[0],
            )
            return []

        query_norm = float(np.linalg.norm(query_embedding))
        denominators = matrix.norms * query_norm
        dots = matrix.vectors @ query_embedding
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = np.where(denominators > 0, dots / denominators, 0.0)
        scores = np.clip(scores, -1.0, 1.0)

        results = [
            SimilarityResult(chunk=chunk, score=float(score))
            for chunk, score in zip(matrix.chunks, scores)
        ]
        if min_score is not None:
            results = [r for r in results if r.score >= min_score]

        results.sort(key=lambda r: (-r.score, r.chunk.id if r.chunk.id is not None else -1))
        results = results[:top_k]

        logger.info(
            "retrieval_completed",
            query_length=len(query),
            candidates=len(matrix.chunks),
            results_returned=len(results),
            top_score=results[0].score if results else None,
        )
        return results

    def get_stats(self) -> dict:
        with self._state_lock:
            return {
                "cached": self._chunks is not None,
                "cached_chunks": len(self._chunks) if self._chunks is not None else 0,
                "generation": self._generation,
                "skipped": dict(self._skipped),
            }
