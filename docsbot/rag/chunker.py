"""Section sizing for the RAG pipeline.

Splits oversized sections on paragraph boundaries and merges undersized
ones into their neighbours, without ever cutting through a code fence,
callout or table.
"""
from typing import Callable, Dict, List, Tuple, Union

import structlog

from docsbot import config
from docsbot.rag.md_parser import MarkdownParser
from docsbot.rag.models import Section

logger = structlog.get_logger()

MergePolicy = Callable[[Section, Section], bool]


def merge_into_subsection(current: Section, following: Section) -> bool:
    """Merge when the next section is headingless or a deeper sub-section."""
    if following.heading is None:
        return True
    if current.level is None or following.level is None:
        return False
    return following.level > current.level


def merge_same_heading(current: Section, following: Section) -> bool:
    """Merge only continuation pieces that share the same heading."""
    return following.heading is not None and following.heading == current.heading


MERGE_POLICIES: Dict[str, MergePolicy] = {
    "deeper_level": merge_into_subsection,
    "same_heading": merge_same_heading,
}


class SectionSizer:
    """Enforces minimum and maximum section sizes."""

    def __init__(
        self,
        min_size: int = None,
        max_size: int = None,
        merge_policy: Union[str, MergePolicy] = None,
        parser: MarkdownParser = None,
    ):
        """Initialize the section sizer.

        Args:
            min_size: Headed sections shorter than this are merged (default from config)
            max_size: Sections longer than this are split (default from config)
            merge_policy: Policy name or callable deciding whether a small
                section absorbs the next one (default from config)
            parser: Parser used to locate protected blocks
        """
        self.min_size = config.MIN_SECTION_SIZE if min_size is None else min_size
        self.max_size = config.MAX_SECTION_SIZE if max_size is None else max_size

        if self.min_size > self.max_size:
            raise ValueError(
                f"Minimum size ({self.min_size}) must not exceed "
                f"maximum size ({self.max_size})"
            )

        merge_policy = merge_policy or config.MERGE_POLICY
        if isinstance(merge_policy, str):
            try:
                merge_policy = MERGE_POLICIES[merge_policy]
            except KeyError:
                raise ValueError(f"Unknown merge policy: {merge_policy}") from None
        self.merge_policy = merge_policy

        self.parser = parser or MarkdownParser()

        logger.debug(
            "section_sizer_initialized",
            min_size=self.min_size,
            max_size=self.max_size,
            merge_policy=getattr(self.merge_policy, "__name__", repr(self.merge_policy)),
        )

    def resize(self, sections: List[Section]) -> List[Section]:
        """Apply the split pass then the merge pass.

        Args:
            sections: Segmenter output

        Returns:
            Resized sections carrying the same content
        """
        split: List[Section] = []
        for section in sections:
            split.extend(self.split_section(section))

        resized = self.merge_sections(split)

        logger.debug(
            "sections_resized",
            input_count=len(sections),
            split_count=len(split),
            output_count=len(resized),
        )
        return resized

    def split_section(self, section: Section) -> List[Section]:
        """Split a section longer than max_size into paragraph-aligned pieces.

        Protected blocks are treated as single units when grouping lines
        into paragraphs, so they always land whole in a single piece.
        A paragraph that is itself longer than max_size is kept as one
        oversized piece.

        Args:
            section: Section to split

        Returns:
            One or more sections with the parent's heading and level
        """
        if len(section.text) <= self.max_size:
            return [section]

        paragraphs = self._paragraphs(section.text)

        pieces: List[str] = []
        current = ""
        for paragraph in paragraphs:
            if len(paragraph) > self.max_size:
                if current:
                    pieces.append(current)
                    current = ""
                pieces.append(paragraph)
                logger.debug(
                    "oversized_paragraph_kept",
                    heading=section.heading,
                    size=len(paragraph),
                    max_size=self.max_size,
                )
                continue

            if current and len(current) + 2 + len(paragraph) > self.max_size:
                pieces.append(current)
                current = paragraph
            elif current:
                current += "\n\n" + paragraph
            else:
                current = paragraph

        if current:
            pieces.append(current)

        if not pieces:
            return [section]

        return [
            Section(text=piece, heading=section.heading, level=section.level, label=section.label)
            for piece in pieces
        ]

    def _paragraphs(self, text: str) -> List[str]:
        """Group lines into blank-line separated paragraphs.

        Each protected block is one opaque unit, so blank lines inside a
        fence, callout or table never end a paragraph.
        """
        lines = text.split("\n")
        units: List[Tuple[str, bool]] = []  # (text, is_block)
        cursor = 0
        for start, end in self.parser.protected_blocks(lines):
            units.extend((line, False) for line in lines[cursor:start])
            units.append(("\n".join(lines[start:end]), True))
            cursor = end
        units.extend((line, False) for line in lines[cursor:])

        paragraphs: List[str] = []
        current: List[str] = []
        for unit, is_block in units:
            if not is_block and not unit.strip():
                if current:
                    paragraphs.append("\n".join(current))
                    current = []
                continue
            current.append(unit)
        if current:
            paragraphs.append("\n".join(current))

        return paragraphs

    def merge_sections(self, sections: List[Section]) -> List[Section]:
        """Merge undersized sections into the sections that follow them.

        A headed section below min_size absorbs the next section while the
        merge policy accepts it and the result stays within max_size.
        Headingless sections only accumulate with adjacent headingless ones.

        Args:
            sections: Sections after the split pass

        Returns:
            Merged sections
        """
        merged: List[Section] = []
        i = 0
        while i < len(sections):
            current = sections[i]
            i += 1
            while i < len(sections) and len(current.text) < self.min_size:
                following = sections[i]
                if current.heading is None:
                    accepted = following.heading is None
                else:
                    accepted = self.merge_policy(current, following)
                if not accepted or len(current.text) + 1 + len(following.text) > self.max_size:
                    break
                current = Section(
                    text=current.text + "\n" + following.text,
                    heading=current.heading,
                    level=current.level,
                    label=current.label,
                )
                i += 1
            merged.append(current)
        return merged

    def get_stats(self, sections: List[Section]) -> dict:
        """Get statistics about a set of sections.

        Args:
            sections: List of Section objects

        Returns:
            Dictionary with section statistics
        """
        if not sections:
            return {
                "section_count": 0,
                "total_chars": 0,
                "avg_section_size": 0,
                "min_section_size": 0,
                "max_section_size": 0,
                "oversized_count": 0,
            }

        sizes = [len(s.text) for s in sections]

        return {
            "section_count": len(sections),
            "total_chars": sum(sizes),
            "avg_section_size": sum(sizes) // len(sections),
            "min_section_size": min(sizes),
            "max_section_size": max(sizes),
            "oversized_count": sum(1 for size in sizes if size > self.max_size),
        }
