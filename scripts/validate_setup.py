#!/usr/bin/env python
"""Check that dependencies, configuration and the Ollama service are ready.

Usage:
    python scripts/validate_setup.py
"""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"

REQUIRED_MODULES = [
    ("quart", "Quart web framework"),
    ("hypercorn", "Hypercorn ASGI server"),
    ("httpx", "HTTP client"),
    ("numpy", "Vector math"),
    ("pydantic", "Request validation"),
    ("structlog", "Structured logging"),
    ("pytest", "Testing framework"),
]


class Report:
    """Collects check outcomes and prints them as they arrive."""

    def __init__(self):
        self.errors = []
        self.warnings = []

    @staticmethod
    def section(title):
        print(f"\n{BLUE}{'=' * 60}\n{title:^60}\n{'=' * 60}{RESET}\n")

    @staticmethod
    def ok(msg):
        print(f"{GREEN}✓{RESET} {msg}")

    @staticmethod
    def info(msg):
        print(f"{BLUE}ℹ{RESET} {msg}")

    def fail(self, msg, summary=None):
        print(f"{RED}✗{RESET} {msg}")
        self.errors.append(summary or msg)

    def warn(self, msg, summary=None):
        print(f"{YELLOW}⚠{RESET} {msg}")
        self.warnings.append(summary or msg)

    def summarize(self):
        self.section("Summary")
        if not self.errors:
            self.ok("All checks passed!")
            self.info("  Next step: python scripts/reindex.py")
        for label, items in (("error", self.errors), ("warning", self.warnings)):
            if items:
                print(f"\nFound {len(items)} {label}(s):")
                for i, item in enumerate(items, 1):
                    print(f"  {i}. {item}")
        print()


def check_environment(report):
    report.section("1. Python Environment")
    version = ".".join(str(part) for part in sys.version_info[:3])
    if sys.version_info >= (3, 10):
        report.ok(f"Python {version}")
    else:
        report.fail(f"Python {version} is older than 3.10", "Python version too old")

    if sys.base_prefix == sys.prefix:
        report.warn("Not running in a virtual environment (recommended)", "Not in venv")

    report.section("2. Core Dependencies")
    for module_name, description in REQUIRED_MODULES:
        try:
            __import__(module_name)
            report.ok(f"{description:30} ({module_name})")
        except ImportError as e:
            report.fail(f"{description:30} ({module_name}) - {e}", f"Missing: {module_name}")


def check_config(report):
    report.section("3. Configuration")
    from docsbot import config
    from docsbot.rag.chunker import MERGE_POLICIES

    report.info(f"  Ollama URL:      {config.OLLAMA_BASE_URL}")
    report.info(f"  Chat model:      {config.CHAT_MODEL}")
    report.info(f"  Embedding model: {config.EMBEDDING_MODEL}")
    report.info(f"  Database:        {config.DB_PATH}")

    if config.MIN_SECTION_SIZE > config.MAX_SECTION_SIZE:
        report.fail(
            f"MIN_SECTION_SIZE ({config.MIN_SECTION_SIZE}) exceeds "
            f"MAX_SECTION_SIZE ({config.MAX_SECTION_SIZE})",
            "Invalid section sizes",
        )
    else:
        report.ok(f"Section sizes {config.MIN_SECTION_SIZE}-{config.MAX_SECTION_SIZE} chars")

    if config.MERGE_POLICY in MERGE_POLICIES:
        report.ok(f"Merge policy: {config.MERGE_POLICY}")
    else:
        report.fail(f"Unknown merge policy: {config.MERGE_POLICY}", "Invalid merge policy")

    if config.DOCS_DIR.is_dir():
        count = sum(1 for _ in config.DOCS_DIR.rglob("*.md"))
        report.ok(f"Docs directory {config.DOCS_DIR} holds {count} Markdown files")
    else:
        report.warn(f"Docs directory missing: {config.DOCS_DIR}", "Docs directory missing")


async def check_ollama(report):
    from docsbot import config
    from docsbot.llm_client import OllamaClient

    report.section("4. Ollama Service")
    client = OllamaClient()
    try:
        models = set(await client.list_models())
    except Exception as e:
        report.fail(f"Cannot reach Ollama at {config.OLLAMA_BASE_URL}: {e}", "Ollama not running")
        report.info("  Start it with: ollama serve")
        return

    report.ok(f"Ollama is serving {len(models)} models")
    for role, model in (("chat", config.CHAT_MODEL), ("embedding", config.EMBEDDING_MODEL)):
        if model in models:
            report.ok(f"{role.capitalize()} model available: {model}")
        else:
            report.fail(f"{role.capitalize()} model missing: {model}", f"Missing {role} model: {model}")
            report.info(f"  Run: ollama pull {model}")

    report.section("5. Embedding Round Trip")
    try:
        vector = (await client.embeddings(prompt="test")).get("embedding")
    except Exception as e:
        report.fail(f"Embedding request failed: {e}", "Embedding API issue")
        return
    if vector:
        report.ok(f"Embedding API working (dimension: {len(vector)})")
    else:
        report.fail("Embedding response has no 'embedding' field", "Embedding API issue")


async def main():
    report = Report()
    report.section("Documentation Assistant - Setup Validation")

    check_environment(report)
    try:
        check_config(report)
    except Exception as e:
        report.fail(f"Failed to load config: {e}", "Config loading failed")
    else:
        await check_ollama(report)

    report.summarize()
    return report


if __name__ == "__main__":
    result = asyncio.run(main())
    sys.exit(1 if result.errors else 0)
