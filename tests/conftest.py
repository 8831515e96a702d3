"""Shared fixtures: deterministic providers and throwaway SQLite databases."""
from typing import Dict, List

import pytest

from docsbot.db import ChatHistory, Corpus
from docsbot.providers import ProviderError
from docsbot.rag.chunker import SectionSizer
from docsbot.rag.md_parser import MarkdownParser
from docsbot.service import DocsService

# Each vector component counts occurrences of one word, so texts sharing
# words with a query score above texts that share none.
VOCABULARY = ["install", "pip", "python", "toolkit", "widget", "requirements", "config", "image"]

INTRO = "# Intro\n\nWelcome to the widget toolkit.\n"
INSTALLATION = "## Installation\n\n" + "Run pip install widget to set up the package.\n\n" * 12
REQUIREMENTS = "## Requirements\n\n" + "The toolkit needs Python 3.10 or newer.\n\n" * 10
GUIDE = INTRO + "\n" + INSTALLATION + REQUIREMENTS


class FakeEmbeddingProvider:
    """Bag-of-words embedder over a tiny fixed vocabulary."""

    def __init__(self, vocabulary: List[str] = None):
        self.vocabulary = vocabulary or VOCABULARY
        self.calls: List[str] = []
        self.fail_on: List[str] = []
        self.fail_all = False

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail_all or any(marker in text for marker in self.fail_on):
            raise ProviderError("embedding backend unavailable")
        lowered = text.lower()
        return [float(lowered.count(word)) for word in self.vocabulary]


class FakeGenerationProvider:
    """Returns a canned reply and records every prompt it receives."""

    def __init__(self, reply: str = "Run `pip install widget`."):
        self.reply = reply
        self.prompts: List[List[Dict[str, str]]] = []
        self.error = None

    async def generate(self, messages: List[Dict[str, str]]) -> str:
        self.prompts.append(messages)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "docsbot.sqlite"


@pytest.fixture
def corpus(db_path):
    return Corpus(db_path)


@pytest.fixture
def chat_history(db_path):
    return ChatHistory(db_path)


@pytest.fixture
def embedder():
    return FakeEmbeddingProvider()


@pytest.fixture
def generator():
    return FakeGenerationProvider()


@pytest.fixture
def parser():
    return MarkdownParser(short_document_threshold=200)


@pytest.fixture
def sizer(parser):
    return SectionSizer(min_size=150, max_size=1500, merge_policy="deeper_level", parser=parser)


@pytest.fixture
def service(db_path, embedder, generator, parser, sizer):
    return DocsService(
        embedding_provider=embedder,
        generation_provider=generator,
        db_path=db_path,
        parser=parser,
        sizer=sizer,
    )
