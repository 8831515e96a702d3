"""Records shared by the retrieval pipeline.

Sections are transient segmentation output; chunks, files and turns
mirror what the storage layer persists.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

import numpy as np


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Section:
    """A run of Markdown lines, optionally opened by a heading."""

    text: str
    heading: Optional[str] = None
    level: Optional[int] = None  # 1-6 for h1-h6
    label: Optional[str] = None  # stands in for a missing heading


@dataclass
class ImageReference:
    """An image embedded in a Markdown file."""

    url: str
    alt: str = ""


@dataclass
class ChunkMetadata:
    """Provenance attached to every chunk."""

    path: str
    section_label: str = "content"
    has_image: bool = False
    image_url: Optional[str] = None
    image_alt: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "section_label": self.section_label,
            "has_image": self.has_image,
            "image_url": self.image_url,
            "image_alt": self.image_alt,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChunkMetadata":
        return cls(
            path=data.get("path", ""),
            section_label=data.get("section_label") or "content",
            has_image=bool(data.get("has_image", False)),
            image_url=data.get("image_url"),
            image_alt=data.get("image_alt"),
        )


@dataclass
class Chunk:
    """An independently retrievable unit of documentation text."""

    file_id: int
    content: str
    metadata: ChunkMetadata
    embedding: Optional[np.ndarray] = None
    id: Optional[int] = None
    last_updated: datetime = field(default_factory=utcnow)

    @property
    def path(self) -> str:
        return self.metadata.path


@dataclass
class DocumentationFile:
    """A Markdown file known to the corpus."""

    id: int
    path: str
    content: str
    has_images: bool = False
    source_url: Optional[str] = None
    last_updated: datetime = field(default_factory=utcnow)


@dataclass
class SourceDocument:
    """Raw input handed over by an ingestion source."""

    path: str
    content: str
    images: List[ImageReference] = field(default_factory=list)
    source_url: Optional[str] = None


@dataclass
class SimilarityResult:
    """A chunk scored against a query."""

    chunk: Chunk
    score: float

    @property
    def source(self) -> str:
        """Get a formatted source string for display."""
        label = self.chunk.metadata.section_label
        if label and label != "content":
            return f"{self.chunk.path} > {label}"
        return self.chunk.path


@dataclass
class ConversationTurn:
    """One message of a chat session."""

    role: str  # 'user' or 'assistant'
    content: str
    timestamp: datetime = field(default_factory=utcnow)

    def as_message(self) -> dict:
        return {"role": self.role, "content": self.content}
