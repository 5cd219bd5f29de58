#!/usr/bin/env python3
"""
Embedding module for the supermarket chatbot.

Wraps a sentence-transformers model shared by ingestion (document chunks)
and retrieval (customer queries).
"""

import threading
from typing import List

from sentence_transformers import SentenceTransformer

from .config import Config
from ..utils.logger import get_logger

logger = get_logger()


class EmbeddingClient:
    """Lazily loaded sentence-transformers encoder."""

    def __init__(self, model_name: str = None, batch_size: int = 32):
        """
        Set up the client without touching the model.

        The model is loaded on first use so the API can start (and report a
        degraded retrieval state) even when the model cannot be fetched.
        """
        self.model_name = model_name or Config.EMBEDDING_MODEL
        self.batch_size = batch_size
        self._model = None
        self._lock = threading.Lock()

    @property
    def model(self) -> SentenceTransformer:
        if self._model is None:
            with self._lock:
                if self._model is None:
                    logger.info(f"Loading embedding model {self.model_name}")
                    self._model = SentenceTransformer(self.model_name)
        return self._model

    def generate_embedding(self, text: str) -> List[float]:
        """
        Embed a single query or chunk.

        Args:
            text: Text to encode

        Returns:
            Vector as a plain list of floats
        """
        return self.model.encode(text, convert_to_numpy=True).tolist()

    def generate_embeddings_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed many chunks at once, in batches of ``batch_size``."""
        vectors = self.model.encode(
            texts,
            batch_size=self.batch_size,
            convert_to_numpy=True,
            show_progress_bar=len(texts) > 100,
        )
        return vectors.tolist()

    def warm_up(self) -> bool:
        """Load the model now instead of on the first query. Returns whether it loaded."""
        try:
            self.model
        except Exception as e:
            logger.warning(f"Embedding model {self.model_name} could not be loaded: {e}")
            return False
        return True
