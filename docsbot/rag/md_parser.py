"""Markdown parser for splitting documentation into heading-aware sections.

Handles:
- Heading detection outside protected blocks
- Fenced code, GitBook hint callouts and pipe tables kept intact
- Image reference extraction
"""
import re
from typing import List, Optional, Tuple

import structlog

from docsbot import config
from docsbot.rag.models import ImageReference, Section

logger = structlog.get_logger()

# Block modes tracked while scanning lines
CODE = "code"
CALLOUT = "callout"
TABLE = "table"

SHORT_DOCUMENT_LABEL = "full content"
FALLBACK_LABEL = "full content (fallback)"


class MarkdownParser:
    """Line-oriented Markdown segmenter."""

    # Regex for markdown headings
    HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)\s*$")

    # GitBook-style callout directives
    CALLOUT_OPEN_PATTERN = re.compile(r"\{%\s*hint\b")
    CALLOUT_CLOSE_PATTERN = re.compile(r"\{%\s*endhint\s*%\}")

    # Table header separator such as |---|:---:|
    TABLE_SEPARATOR_PATTERN = re.compile(r"-{3,}")

    # ![alt](url)
    IMAGE_PATTERN = re.compile(r"!\[(.*?)\]\((.*?)\)")

    def __init__(self, short_document_threshold: int = None):
        """Initialize the markdown parser.

        Args:
            short_document_threshold: Documents shorter than this many
                characters are returned as one section (default from config)
        """
        if short_document_threshold is None:
            short_document_threshold = config.SHORT_DOCUMENT_THRESHOLD
        self.short_document_threshold = short_document_threshold

    @staticmethod
    def _is_fence(line: str) -> bool:
        return line.strip().startswith("```")

    def _starts_table(self, line: str) -> bool:
        return "|" in line and bool(self.TABLE_SEPARATOR_PATTERN.search(line))

    def segment(self, text: str) -> List[Section]:
        """Split markdown text into sections, one per heading.

        The heading line belongs to the section it opens. Headings inside
        code fences, callouts or tables never start a section.

        Args:
            text: Raw markdown content

        Returns:
            Ordered list of Section objects
        """
        if len(text.strip()) < self.short_document_threshold:
            logger.debug(
                "short_document_not_segmented",
                content_length=len(text),
                threshold=self.short_document_threshold,
            )
            return [Section(text=text, label=SHORT_DOCUMENT_LABEL)]

        sections: List[Section] = []
        heading: Optional[str] = None
        level: Optional[int] = None
        lines: List[str] = []
        mode: Optional[str] = None

        def flush() -> None:
            body = "\n".join(lines)
            if body.strip():
                sections.append(Section(text=body, heading=heading, level=level))

        for line in text.split("\n"):
            if mode == CODE:
                lines.append(line)
                if self._is_fence(line):
                    mode = None
                continue

            if mode == CALLOUT:
                lines.append(line)
                if self.CALLOUT_CLOSE_PATTERN.search(line):
                    mode = None
                continue

            if mode == TABLE:
                if "|" in line:
                    lines.append(line)
                    continue
                mode = None

            if self._is_fence(line):
                mode = CODE
                lines.append(line)
                continue

            if self.CALLOUT_OPEN_PATTERN.search(line):
                if not self.CALLOUT_CLOSE_PATTERN.search(line):
                    mode = CALLOUT
                lines.append(line)
                continue

            if self._starts_table(line):
                mode = TABLE
                lines.append(line)
                continue

            match = self.HEADING_PATTERN.match(line)
            if match:
                flush()
                heading = match.group(2)
                level = len(match.group(1))
                lines = [line]
            else:
                lines.append(line)

        flush()

        if not sections:
            return [Section(text=text, label=FALLBACK_LABEL)]

        logger.debug(
            "markdown_segmented",
            content_length=len(text),
            section_count=len(sections),
        )
        return sections

    def protected_blocks(self, lines: List[str]) -> List[Tuple[int, int]]:
        """Find code fences, callouts and tables in a list of lines.

        A table block also covers the pipe lines directly above its
        separator row (the header row).

        Args:
            lines: Markdown lines

        Returns:
            List of (start, end) line ranges, end exclusive
        """
        blocks: List[Tuple[int, int]] = []
        i = 0
        while i < len(lines):
            line = lines[i]

            if self._is_fence(line):
                end = i + 1
                while end < len(lines) and not self._is_fence(lines[end]):
                    end += 1
                # An unclosed fence runs to the end of the text
                blocks.append((i, min(end + 1, len(lines))))
                i = end + 1
                continue

            if self.CALLOUT_OPEN_PATTERN.search(line):
                end = i
                while end < len(lines) and not self.CALLOUT_CLOSE_PATTERN.search(lines[end]):
                    end += 1
                blocks.append((i, min(end + 1, len(lines))))
                i = end + 1
                continue

            if self._starts_table(line):
                start = i
                floor = blocks[-1][1] if blocks else 0
                while start > floor and "|" in lines[start - 1] and lines[start - 1].strip():
                    start -= 1
                end = i + 1
                while end < len(lines) and "|" in lines[end]:
                    end += 1
                blocks.append((start, end))
                i = end
                continue

            i += 1

        return blocks

    def extract_images(self, text: str) -> List[ImageReference]:
        """Extract markdown image references in document order.

        Inline ``data:`` images are skipped.

        Args:
            text: Markdown content

        Returns:
            List of ImageReference objects
        """
        images = []
        for match in self.IMAGE_PATTERN.finditer(text):
            alt, url = match.group(1), match.group(2).strip()
            if not url or url.startswith("data:"):
                continue
            images.append(ImageReference(url=url, alt=alt))
        return images


# Singleton instance for convenience
_parser_instance = None


def get_parser() -> MarkdownParser:
    """Get a singleton markdown parser instance.

    Returns:
        MarkdownParser instance
    """
    global _parser_instance
    if _parser_instance is None:
        _parser_instance = MarkdownParser()
    return _parser_instance


# Convenience function
def segment_markdown(text: str) -> List[Section]:
    """Segment markdown text (convenience function).

    Args:
        text: Markdown content

    Returns:
        List of Section objects
    """
    return get_parser().segment(text)
