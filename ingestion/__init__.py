"""
Ingestion Pipeline Package

1. Extract (PyMuPDF)   → positioned, font-sized text fragments
2. Structure           → title + ordered sections (font-size heading heuristic)
3. Chunk               → token-bounded content chunks with keywords
4. Process material    → extract + structure once, cache on the material row
"""

from .schemas import TextFragment, Section, StructuredDocument, ContentChunk, ChunkingConfig
from .structurer import structure_document, structure_markdown, FontSizeHeadingClassifier
from .chunker import chunk_sections, chunk_document, chunk_text, estimate_tokens

__all__ = [
    "TextFragment",
    "Section",
    "StructuredDocument",
    "ContentChunk",
    "ChunkingConfig",
    "structure_document",
    "structure_markdown",
    "FontSizeHeadingClassifier",
    "chunk_sections",
    "chunk_document",
    "chunk_text",
    "estimate_tokens",
]
