"""
Embeddings package
Chunk vectors (OpenAI) stored in Qdrant for retrieval-augmented generation
"""

from .generator import EmbeddingGenerator, get_embedding_generator
from .qdrant_manager import QdrantManager, get_qdrant_manager
from .retrieval import QdrantRetriever, index_material

__all__ = [
    "EmbeddingGenerator",
    "get_embedding_generator",
    "QdrantManager",
    "get_qdrant_manager",
    "QdrantRetriever",
    "index_material",
]
