"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
DOCS_DIR = Path(os.getenv("DOCS_DIR", str(BASE_DIR / "docs")))
DB_PATH = Path(os.getenv("DB_PATH", str(DATA_DIR / "docsbot.sqlite")))

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gemma3:12b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "mxbai-embed-large:latest")
OLLAMA_TIMEOUT = float(os.getenv("OLLAMA_TIMEOUT", "60.0"))
GENERATION_TEMPERATURE = float(os.getenv("GENERATION_TEMPERATURE", "0.4"))

# Segmentation (character-based to avoid tokenizer inconsistencies)
MIN_SECTION_SIZE = int(os.getenv("MIN_SECTION_SIZE", "500"))
MAX_SECTION_SIZE = int(os.getenv("MAX_SECTION_SIZE", "8000"))
SHORT_DOCUMENT_THRESHOLD = int(os.getenv("SHORT_DOCUMENT_THRESHOLD", "500"))
MERGE_POLICY = os.getenv("MERGE_POLICY", "deeper_level")  # or "same_heading"

# Retrieval
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "5"))
MIN_SIMILARITY = float(os.environ["MIN_SIMILARITY"]) if os.getenv("MIN_SIMILARITY") else None
MAX_CONTEXT_CHARS = int(os.environ["MAX_CONTEXT_CHARS"]) if os.getenv("MAX_CONTEXT_CHARS") else None
HISTORY_WINDOW = int(os.getenv("HISTORY_WINDOW", "10"))

# Concurrency
EMBED_CONCURRENCY = int(os.getenv("EMBED_CONCURRENCY", "4"))
INGEST_CONCURRENCY = int(os.getenv("INGEST_CONCURRENCY", "4"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
