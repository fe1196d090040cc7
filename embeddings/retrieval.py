"""
Retrieval collaborator for the job runner.

  index_material   chunk a processed material with the default config and
                   replace its chunk vectors in Qdrant
  QdrantRetriever  (query, filters, top_k) → passage texts, best first
"""

import logging
import os
from typing import Any, Dict, List, Optional

from database.models import CourseMaterial
from ingestion.chunker import chunk_document
from ingestion.schemas import ChunkingConfig, StructuredDocument
from .generator import EmbeddingGenerator, get_embedding_generator
from .qdrant_manager import QdrantManager, get_qdrant_manager

log = logging.getLogger(__name__)

RETRIEVAL_ENABLED = os.getenv("RETRIEVAL_ENABLED", "false").lower() in ("1", "true", "yes")


class QdrantRetriever:
    """Embeds the query and returns the text of the nearest indexed chunks."""

    def __init__(
        self,
        embedder: Optional[EmbeddingGenerator] = None,
        store: Optional[QdrantManager] = None,
        score_threshold: Optional[float] = None,
    ):
        self._embedder = embedder
        self._store = store
        self.score_threshold = score_threshold

    @property
    def embedder(self) -> EmbeddingGenerator:
        if self._embedder is None:
            self._embedder = get_embedding_generator()
        return self._embedder

    @property
    def store(self) -> QdrantManager:
        if self._store is None:
            self._store = get_qdrant_manager()
        return self._store

    def retrieve(self, query: str, filters: Dict[str, Any], top_k: int) -> List[str]:
        vector = self.embedder.generate_embedding(query)
        hits = self.store.search(
            vector,
            limit=top_k,
            material_id=filters.get("material_id"),
            course_id=filters.get("course_id"),
            score_threshold=self.score_threshold,
        )
        return [h["text"] for h in hits if h.get("text")]

    __call__ = retrieve


def index_material(
    material: CourseMaterial,
    document: StructuredDocument,
    embedder: Optional[EmbeddingGenerator] = None,
    store: Optional[QdrantManager] = None,
    config: Optional[ChunkingConfig] = None,
) -> int:
    """Replace a material's stored chunks with a fresh chunking; returns the number indexed."""
    chunks = chunk_document(document, config or ChunkingConfig())
    store = store or get_qdrant_manager()
    store.delete_by_material(material.id)
    if not chunks:
        return 0
    embedder = embedder or get_embedding_generator()
    embeddings = embedder.generate_embeddings_batch([c.content for c in chunks])
    metadatas = [
        {
            "course_id": material.course_id,
            "title": c.title,
            "text": c.content,
            "keywords": c.metadata.topic_keywords,
        }
        for c in chunks
    ]
    count = store.index_chunks_batch(material.id, [c.id for c in chunks], embeddings, metadatas)
    log.info(f"[INDEX] material {material.id}: {count} chunks indexed")
    return count
