"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Markdown segmentation and image extraction
- Section sizing (split and merge passes)
- Chunk building and embedding
- In-memory cosine similarity search
- Prompt assembly and question answering
"""
