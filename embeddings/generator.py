"""
Embedding Generator
Converts chunk text and retrieval queries to vectors with OpenAI text-embedding-3-small

- Model: text-embedding-3-small (override with EMBEDDING_MODEL)
- Dimensions: 1536
"""

from typing import List, Optional
import logging
import os
from openai import OpenAI
from tqdm import tqdm

log = logging.getLogger(__name__)


class EmbeddingGenerator:
    """Generate embeddings for text using the OpenAI embeddings API"""

    DEFAULT_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    EMBEDDING_DIM = 1536

    def __init__(self, model_name: str = DEFAULT_MODEL, api_key: str = None, client: Optional[OpenAI] = None):
        """
        Args:
            model_name: OpenAI model name
            api_key: OpenAI API key (defaults to OPENAI_API_KEY env var)
            client: pre-built OpenAI client (tests)
        """
        self.model_name = model_name
        if client is None:
            api_key = api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError(
                    "OPENAI_API_KEY not set. Please set environment variable or pass api_key parameter."
                )
            client = OpenAI(api_key=api_key)
        self.client = client
        log.info(f"Embedding model: {model_name} ({self.EMBEDDING_DIM}-dim)")

    def generate_embedding(self, text: str) -> List[float]:
        """Embed one text; empty text maps to the zero vector."""
        if not text or not text.strip():
            return [0.0] * self.EMBEDDING_DIM
        response = self.client.embeddings.create(input=text, model=self.model_name)
        return response.data[0].embedding

    def generate_embeddings_batch(
        self,
        texts: List[str],
        batch_size: int = 100,
        show_progress: bool = True
    ) -> List[List[float]]:
        """
        Embed many texts, batch_size per API call, order preserved.

        Args:
            texts: List of input texts
            batch_size: Batch size for API calls (max 2048, recommended 100)
            show_progress: Show progress bar
        """
        if not texts:
            return []

        processed_texts = [text if text and text.strip() else " " for text in texts]
        batches = [
            processed_texts[i:i + batch_size]
            for i in range(0, len(processed_texts), batch_size)
        ]
        iterator = tqdm(batches, desc="Embedding batches") if show_progress and len(batches) > 1 else batches

        all_embeddings: List[List[float]] = []
        for batch in iterator:
            response = self.client.embeddings.create(input=batch, model=self.model_name)
            all_embeddings.extend(item.embedding for item in response.data)
        return all_embeddings


# Singleton instance for reuse
_embedding_generator: Optional[EmbeddingGenerator] = None


def get_embedding_generator() -> EmbeddingGenerator:
    """
    Get singleton embedding generator instance
    Lazy initialization - client created on first call
    """
    global _embedding_generator
    if _embedding_generator is None:
        _embedding_generator = EmbeddingGenerator()
    return _embedding_generator
