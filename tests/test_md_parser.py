"""Tests for heading-aware Markdown segmentation."""
from docsbot.rag.md_parser import (
    FALLBACK_LABEL,
    SHORT_DOCUMENT_LABEL,
    MarkdownParser,
    segment_markdown,
)

from tests.conftest import GUIDE


def test_splits_on_headings_outside_blocks(parser):
    sections = parser.segment(GUIDE)

    assert [s.heading for s in sections] == ["Intro", "Installation", "Requirements"]
    assert [s.level for s in sections] == [1, 2, 2]
    assert sections[1].text.startswith("## Installation")


def test_segmentation_loses_no_content(parser):
    sections = parser.segment(GUIDE)

    rebuilt = "".join(s.text for s in sections)
    assert rebuilt.replace("\n", "") == GUIDE.replace("\n", "")


def test_short_document_is_one_section():
    parser = MarkdownParser(short_document_threshold=500)
    text = "# Title\n\nShort body.\n\n## Sub\n\nMore."

    sections = parser.segment(text)

    assert len(sections) == 1
    assert sections[0].text == text
    assert sections[0].heading is None
    assert sections[0].label == SHORT_DOCUMENT_LABEL


def test_empty_document_is_single_verbatim_section():
    parser = MarkdownParser(short_document_threshold=0)

    sections = parser.segment("   \n")

    assert len(sections) == 1
    assert sections[0].text == "   \n"
    assert sections[0].label == FALLBACK_LABEL


def test_heading_inside_code_fence_is_not_a_boundary():
    parser = MarkdownParser(short_document_threshold=0)
    text = "# Setup\n\n```bash\n# not a heading\necho hi\n```\n\nAfter the fence."

    sections = parser.segment(text)

    assert len(sections) == 1
    assert "# not a heading" in sections[0].text
    assert sections[0].text.endswith("After the fence.")


def test_heading_inside_callout_is_not_a_boundary():
    parser = MarkdownParser(short_document_threshold=0)
    text = (
        "# Notes\n\n"
        '{% hint style="info" %}\n'
        "## Inside the hint\n"
        "{% endhint %}\n\n"
        "## Next\n\nBody."
    )

    sections = parser.segment(text)

    assert [s.heading for s in sections] == ["Notes", "Next"]
    assert "## Inside the hint" in sections[0].text


def test_table_rows_stay_together():
    parser = MarkdownParser(short_document_threshold=0)
    text = (
        "# Options\n\n"
        "| Name | Default |\n"
        "| ---- | ------- |\n"
        "| port | 8080 |\n"
        "| host | localhost |\n"
        "\n"
        "## Later\n\nText."
    )

    sections = parser.segment(text)

    assert len(sections) == 2
    assert "| host | localhost |" in sections[0].text


def test_unclosed_fence_swallows_the_rest():
    parser = MarkdownParser(short_document_threshold=0)
    text = "# Start\n\n```\ncode\n## still code"

    sections = parser.segment(text)

    assert len(sections) == 1
    assert sections[0].text.endswith("## still code")


def test_text_before_first_heading_is_headingless():
    parser = MarkdownParser(short_document_threshold=0)
    text = "Preamble line.\n\n# First\n\nBody."

    sections = parser.segment(text)

    assert sections[0].heading is None
    assert sections[0].level is None
    assert sections[1].heading == "First"


def test_protected_blocks_cover_table_header():
    parser = MarkdownParser()
    lines = ["intro", "| a | b |", "|---|---|", "| 1 | 2 |", "", "```", "x", "```"]

    assert parser.protected_blocks(lines) == [(1, 4), (5, 8)]


def test_extract_images_skips_data_urls():
    parser = MarkdownParser()
    text = (
        "![Diagram](https://example.com/a.png)\n"
        "![](data:image/png;base64,AAAA)\n"
        "![](images/b.png)"
    )

    images = parser.extract_images(text)

    assert [(i.url, i.alt) for i in images] == [
        ("https://example.com/a.png", "Diagram"),
        ("images/b.png", ""),
    ]


def test_segment_markdown_uses_default_parser():
    assert segment_markdown("tiny")[0].text == "tiny"


def test_segmented_sections_carry_no_label(parser):
    assert all(s.label is None for s in parser.segment(GUIDE))
