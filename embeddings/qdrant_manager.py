"""
Qdrant Vector Database Manager
Stores material chunks for retrieval-augmented generation

One collection, material_chunks; payload carries material_id / course_id / chunk_id
so searches can be scoped to the material a job runs on.
"""

from typing import List, Dict, Optional, Any
import logging
import os
import uuid

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance, VectorParams, PointStruct,
    Filter, FieldCondition, MatchValue,
)

log = logging.getLogger(__name__)


class QdrantManager:
    """Manages the material_chunks collection."""

    COLLECTION_CHUNKS = "material_chunks"
    EMBEDDING_DIM = 1536  # text-embedding-3-small
    PAYLOAD_INDEXES = [
        ("material_id", "integer"),
        ("course_id", "integer"),
        ("chunk_id", "keyword"),
    ]

    def __init__(
        self,
        host: str = None,
        port: int = None,
        url: str = None,
        client: Optional[QdrantClient] = None,
    ):
        """
        Args:
            host: Qdrant host (default: QDRANT_HOST or localhost)
            port: Qdrant port (default: QDRANT_PORT or 6333)
            url: Full URL (overrides host/port; default QDRANT_URL)
            client: pre-built client (e.g. QdrantClient(":memory:") in tests)
        """
        if client is not None:
            self.client = client
            return
        url = url or os.getenv("QDRANT_URL")
        if url:
            self.client = QdrantClient(url=url)
            log.info(f"Connected to Qdrant at {url}")
        else:
            host = host or os.getenv("QDRANT_HOST", "localhost")
            port = port or int(os.getenv("QDRANT_PORT", "6333"))
            self.client = QdrantClient(host=host, port=port)
            log.info(f"Connected to Qdrant at {host}:{port}")

    def create_collection(self, recreate: bool = False):
        names = [c.name for c in self.client.get_collections().collections]
        if self.COLLECTION_CHUNKS in names:
            if not recreate:
                return
            self.client.delete_collection(self.COLLECTION_CHUNKS)
            log.info(f"Deleted existing: {self.COLLECTION_CHUNKS}")
        self.client.create_collection(
            collection_name=self.COLLECTION_CHUNKS,
            vectors_config=VectorParams(size=self.EMBEDDING_DIM, distance=Distance.COSINE),
        )
        for field, schema in self.PAYLOAD_INDEXES:
            self.client.create_payload_index(
                collection_name=self.COLLECTION_CHUNKS,
                field_name=field,
                field_schema=schema,
            )
        log.info(f"Created collection: {self.COLLECTION_CHUNKS}")

    @staticmethod
    def point_id(material_id: int, chunk_id: str) -> str:
        """Stable id so re-indexing a material overwrites its points."""
        return str(uuid.uuid5(uuid.NAMESPACE_URL, f"material/{material_id}/{chunk_id}"))

    def index_chunks_batch(
        self,
        material_id: int,
        chunk_ids: List[str],
        embeddings: List[List[float]],
        metadatas: List[Dict[str, Any]],
    ) -> int:
        """Upsert chunk vectors; metadata should include course_id, title and text."""
        if not (len(chunk_ids) == len(embeddings) == len(metadatas)):
            raise ValueError("chunk_ids, embeddings, and metadatas must have same length")
        self.create_collection()
        points = [
            PointStruct(
                id=self.point_id(material_id, chunk_id),
                vector=emb,
                payload={**meta, "material_id": material_id, "chunk_id": chunk_id},
            )
            for chunk_id, emb, meta in zip(chunk_ids, embeddings, metadatas)
        ]
        self.client.upsert(collection_name=self.COLLECTION_CHUNKS, points=points)
        log.info(f"Indexed {len(points)} chunks for material {material_id}")
        return len(points)

    def search(
        self,
        query_vector: List[float],
        limit: int = 5,
        material_id: Optional[int] = None,
        course_id: Optional[int] = None,
        score_threshold: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Nearest chunks, optionally scoped to one material or course."""
        must_conditions = []
        if material_id is not None:
            must_conditions.append(FieldCondition(key="material_id", match=MatchValue(value=material_id)))
        if course_id is not None:
            must_conditions.append(FieldCondition(key="course_id", match=MatchValue(value=course_id)))
        search_filter = Filter(must=must_conditions) if must_conditions else None

        response = self.client.query_points(
            collection_name=self.COLLECTION_CHUNKS,
            query=query_vector,
            query_filter=search_filter,
            limit=limit,
            score_threshold=score_threshold,
            with_payload=True,
        )
        return [
            {
                "chunk_id": (p.payload or {}).get("chunk_id"),
                "score": p.score,
                "text": (p.payload or {}).get("text", ""),
                "metadata": p.payload or {},
            }
            for p in response.points
        ]

    def delete_by_material(self, material_id: int):
        """Drop a material's points so a re-chunked material leaves no stale chunks behind."""
        names = [c.name for c in self.client.get_collections().collections]
        if self.COLLECTION_CHUNKS not in names:
            return
        self.client.delete(
            collection_name=self.COLLECTION_CHUNKS,
            points_selector=Filter(
                must=[FieldCondition(key="material_id", match=MatchValue(value=material_id))]
            ),
        )
        log.info(f"Deleted chunks of material {material_id}")


# Singleton instance
_qdrant_manager: Optional[QdrantManager] = None


def get_qdrant_manager() -> QdrantManager:
    global _qdrant_manager
    if _qdrant_manager is None:
        _qdrant_manager = QdrantManager()
    return _qdrant_manager
