"""Tests for chunk construction and embedding validation."""
import math

import numpy as np
import pytest

from docsbot.rag.chunk_builder import ChunkBuilder, find_primary_image, validate_embedding
from docsbot.rag.models import DocumentationFile, ImageReference, Section


@pytest.fixture
def doc_file():
    return DocumentationFile(id=7, path="guide/setup.md", content="")


@pytest.mark.anyio
async def test_builds_one_chunk_per_section(embedder, doc_file):
    builder = ChunkBuilder(embedder, concurrency=2)
    sections = [
        Section(text="# Setup\npip install widget", heading="Setup", level=1),
        Section(text="Loose text about python"),
        Section(text="Whole short page", label="full content"),
    ]

    chunks = await builder.build_chunks(doc_file, sections, images=[])

    assert [c.content for c in chunks] == [s.text for s in sections]
    assert [c.metadata.section_label for c in chunks] == ["Setup", "content", "full content"]
    assert all(c.file_id == 7 and c.path == "guide/setup.md" for c in chunks)
    assert chunks[0].embedding.dtype == np.float32
    assert chunks[0].embedding[0] == 1.0  # "install"


@pytest.mark.anyio
async def test_blank_sections_are_skipped(embedder, doc_file):
    builder = ChunkBuilder(embedder)

    chunks = await builder.build_chunks(doc_file, [Section(text="  \n"), Section(text="body")], images=[])

    assert [c.content for c in chunks] == ["body"]
    assert embedder.calls == ["body"]


@pytest.mark.anyio
async def test_embedding_failure_keeps_chunk_without_vector(embedder, doc_file):
    embedder.fail_on = ["broken"]
    builder = ChunkBuilder(embedder)

    chunks = await builder.build_chunks(
        doc_file, [Section(text="broken part"), Section(text="fine part")], images=[]
    )

    assert chunks[0].embedding is None
    assert chunks[1].embedding is not None


@pytest.mark.anyio
async def test_primary_image_attached_to_metadata(embedder, doc_file):
    builder = ChunkBuilder(embedder)
    images = [
        ImageReference(url="img/one.png", alt="First"),
        ImageReference(url="img/two.png", alt="Second"),
    ]
    sections = [
        Section(text="See ![Second](img/two.png) and ![First](img/one.png)"),
        Section(text="No pictures here"),
    ]

    chunks = await builder.build_chunks(doc_file, sections, images)

    assert chunks[0].metadata.has_image
    assert chunks[0].metadata.image_url == "img/one.png"
    assert chunks[0].metadata.image_alt == "First"
    assert not chunks[1].metadata.has_image
    assert chunks[1].metadata.image_url is None


def test_find_primary_image_matches_alt_text():
    images = [ImageReference(url="https://cdn/x.png", alt="Architecture diagram")]

    assert find_primary_image("The Architecture diagram shows...", images) is images[0]
    assert find_primary_image("nothing", images) is None


def test_empty_alt_never_matches():
    images = [ImageReference(url="a.png", alt="")]

    assert find_primary_image("some text", images) is None


@pytest.mark.parametrize(
    "vector, problem",
    [
        (None, "missing"),
        (["a", "b"], "not_numeric"),
        ([], "bad_shape"),
        ([[1.0, 2.0]], "bad_shape"),
        ([1.0, math.nan], "non_finite"),
    ],
)
def test_validate_embedding_rejects(vector, problem):
    assert validate_embedding(vector) == (None, problem)


def test_validate_embedding_accepts_list():
    array, problem = validate_embedding([1, 2, 3])

    assert problem is None
    assert array.tolist() == [1.0, 2.0, 3.0]
