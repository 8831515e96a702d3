"""Tests for SQLite persistence."""
import sqlite3

import numpy as np

from docsbot.db import decode_embedding, encode_embedding, get_connection
from docsbot.rag.models import Chunk, ChunkMetadata, ImageReference


def make_chunk(file_id, content, embedding=None, **metadata):
    return Chunk(
        file_id=file_id,
        content=content,
        metadata=ChunkMetadata(path="guide.md", **metadata),
        embedding=embedding,
    )


def test_upsert_file_keeps_one_row_per_path(corpus):
    first = corpus.upsert_file(path="guide.md", content="v1")
    second = corpus.upsert_file(path="guide.md", content="v2", has_images=True)

    assert first.id == second.id
    assert corpus.get_file(first.id).content == "v2"
    assert corpus.get_file_by_path("guide.md").has_images
    assert len(corpus.list_files()) == 1


def test_replace_chunks_swaps_the_whole_set(corpus):
    file = corpus.upsert_file(path="guide.md", content="")
    corpus.replace_chunks_for_file(file.id, [make_chunk(file.id, "old 1"), make_chunk(file.id, "old 2")])

    stored = corpus.replace_chunks_for_file(file.id, [make_chunk(file.id, "new")])

    assert [c.content for c in corpus.get_chunks_for_file(file.id)] == ["new"]
    assert stored[0].id is not None


def test_chunks_round_trip_metadata_and_embedding(corpus):
    file = corpus.upsert_file(path="guide.md", content="")
    embedding = np.array([0.25, -1.5, 3.0], dtype=np.float32)
    corpus.replace_chunks_for_file(
        file.id,
        [make_chunk(file.id, "body", embedding, section_label="Setup", has_image=True, image_url="a.png")],
    )

    chunk = corpus.get_all_chunks()[0]

    assert chunk.metadata.section_label == "Setup"
    assert chunk.metadata.image_url == "a.png"
    assert chunk.embedding.tolist() == [0.25, -1.5, 3.0]


def test_all_chunks_ordered_by_id_across_files(corpus):
    a = corpus.upsert_file(path="a.md", content="")
    b = corpus.upsert_file(path="b.md", content="")
    corpus.replace_chunks_for_file(b.id, [make_chunk(b.id, "b1")])
    corpus.replace_chunks_for_file(a.id, [make_chunk(a.id, "a1")])

    assert [c.content for c in corpus.get_all_chunks()] == ["b1", "a1"]


def test_update_and_delete_chunk(corpus):
    file = corpus.upsert_file(path="guide.md", content="")
    chunk = corpus.replace_chunks_for_file(file.id, [make_chunk(file.id, "before")])[0]

    updated = corpus.update_chunk(chunk.id, "after", ChunkMetadata(path="guide.md"), np.ones(2))

    assert updated.content == "after"
    assert updated.embedding.tolist() == [1.0, 1.0]
    assert corpus.update_chunk(9999, "x", ChunkMetadata(path="x"), None) is None
    assert corpus.delete_chunk(chunk.id)
    assert not corpus.delete_chunk(chunk.id)


def test_delete_file_removes_chunks_and_images(corpus):
    file = corpus.upsert_file(path="guide.md", content="")
    corpus.replace_images_for_file(file.id, [ImageReference(url="a.png")])
    corpus.replace_chunks_for_file(file.id, [make_chunk(file.id, "body")])

    assert corpus.delete_file(file.id)

    assert corpus.get_stats() == {
        "file_count": 0,
        "image_count": 0,
        "chunk_count": 0,
        "embedded_chunk_count": 0,
    }


def test_images_kept_in_file_order(corpus):
    file = corpus.upsert_file(path="guide.md", content="")
    images = [ImageReference(url="b.png", alt="B"), ImageReference(url="a.png")]

    corpus.replace_images_for_file(file.id, images)

    assert corpus.get_images_for_file(file.id) == images


def test_mutations_notify_listeners(corpus):
    events = []
    corpus.add_change_listener(lambda: events.append(1))

    file = corpus.upsert_file(path="guide.md", content="")
    corpus.replace_chunks_for_file(file.id, [make_chunk(file.id, "body")])
    corpus.purge_all()

    assert len(events) == 3


def test_purge_reports_counts(corpus):
    file = corpus.upsert_file(path="guide.md", content="")
    corpus.replace_chunks_for_file(file.id, [make_chunk(file.id, "1"), make_chunk(file.id, "2")])

    counts = corpus.purge_all()

    assert counts["documentation_chunks"] == 2
    assert counts["documentation_files"] == 1
    assert corpus.get_all_chunks() == []


def test_malformed_embedding_blob_reads_as_missing(corpus):
    file = corpus.upsert_file(path="guide.md", content="")
    chunk = corpus.replace_chunks_for_file(file.id, [make_chunk(file.id, "body", np.ones(2))])[0]

    conn = get_connection(corpus.db_path)
    try:
        conn.execute("UPDATE documentation_chunks SET embedding = ? WHERE id = ?", (b"\x00\x01\x02", chunk.id))
        conn.commit()
    finally:
        conn.close()

    assert corpus.get_all_chunks()[0].embedding is None


def test_embedding_codec():
    assert encode_embedding(None) is None
    assert decode_embedding(b"") is None
    assert decode_embedding(encode_embedding(np.array([1.5, 2.0]))).tolist() == [1.5, 2.0]


def test_chat_history_recent_window(chat_history):
    for i in range(5):
        chat_history.add_message("s1", "user" if i % 2 == 0 else "assistant", f"m{i}")
    chat_history.add_message("s2", "user", "other")

    assert [t.content for t in chat_history.get_messages("s1")] == ["m0", "m1", "m2", "m3", "m4"]
    assert [t.content for t in chat_history.get_messages("s1", limit=2)] == ["m3", "m4"]


def test_chat_history_sessions(chat_history):
    chat_history.add_message("old", "user", "a")
    chat_history.add_message("new", "user", "b")
    chat_history.add_message("new", "assistant", "c")

    sessions = chat_history.list_sessions()

    assert [s["session_id"] for s in sessions] == ["new", "old"]
    assert sessions[0]["message_count"] == 2
    assert chat_history.delete_session("old")
    assert chat_history.get_messages("old") == []


def test_schema_is_created(db_path, corpus):
    conn = sqlite3.connect(str(db_path))
    try:
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    finally:
        conn.close()

    assert {"documentation_files", "documentation_images", "documentation_chunks", "chat_messages"} <= tables
