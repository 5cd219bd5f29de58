#!/usr/bin/env python3
"""
Retrieval module for the supermarket chatbot.

This module holds the FAISS vector store built from the chain's documents and
the adapter the chat pipeline uses to query it. The adapter never raises: a
missing index, an embedding error, a search error or a timeout all come back
as a typed ``RetrievalFailure``.
"""

import json
import os
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from typing import Any, Dict, List, Optional, Union

import faiss
import numpy as np

from .config import Config
from .embed import EmbeddingClient
from .errors import RetrievalCause, RetrievalFailure, RetrievalSuccess
from ..schemas.io_models import RetrievedDocument
from ..utils.logger import get_logger, truncate

logger = get_logger()

INDEX_FILE = "index.faiss"
CHUNKS_FILE = "chunks.json"


class VectorStore:
    """FAISS L2 index plus the chunk records it was built from."""

    def __init__(self, index: "faiss.Index", chunks: List[Dict[str, Any]]):
        if index.ntotal != len(chunks):
            raise ValueError(f"Index has {index.ntotal} vectors but {len(chunks)} chunks were given")
        self.index = index
        self.chunks = chunks

    @property
    def size(self) -> int:
        return self.index.ntotal

    @classmethod
    def from_documents(cls, documents: List[Dict[str, Any]], embed_client: EmbeddingClient) -> "VectorStore":
        """
        Create a vector store from document chunks.

        Args:
            documents: Chunks with "content" and "metadata" keys
            embed_client: Client used to embed the chunk texts

        Returns:
            A populated vector store
        """
        if not documents:
            raise ValueError("No documents to index")

        texts = [doc["content"] for doc in documents]
        logger.info(f"Generating embeddings for {len(texts)} chunks...")
        embeddings = embed_client.generate_embeddings_batch(texts)
        embeddings_array = np.array(embeddings).astype("float32")

        index = faiss.IndexFlatL2(embeddings_array.shape[1])
        index.add(embeddings_array)

        chunks = [{"content": doc["content"], "metadata": dict(doc.get("metadata") or {})} for doc in documents]
        logger.info(f"FAISS index created with {index.ntotal} vectors")
        return cls(index, chunks)

    @classmethod
    def load(cls, path: str) -> "VectorStore":
        """Load a store saved with ``save``. Raises FileNotFoundError if absent."""
        index_file = os.path.join(path, INDEX_FILE)
        chunks_file = os.path.join(path, CHUNKS_FILE)
        if not (os.path.exists(index_file) and os.path.exists(chunks_file)):
            raise FileNotFoundError(f"No vector store found at {path}")

        index = faiss.read_index(index_file)
        with open(chunks_file, "r", encoding="utf-8") as f:
            chunks = json.load(f)
        logger.info(f"Loaded FAISS index with {index.ntotal} vectors from {path}")
        return cls(index, chunks)

    def save(self, path: str):
        os.makedirs(path, exist_ok=True)
        faiss.write_index(self.index, os.path.join(path, INDEX_FILE))
        with open(os.path.join(path, CHUNKS_FILE), "w", encoding="utf-8") as f:
            json.dump(self.chunks, f, indent=2, ensure_ascii=False)
        logger.info(f"Vector store saved to {path}")

    def similarity_search_by_vector(self, query_embedding: List[float], k: int = 5) -> List[RetrievedDocument]:
        """
        Search the index for the chunks nearest to an embedding.

        Args:
            query_embedding: Query embedding vector
            k: Number of results to return

        Returns:
            Documents ordered by relevance, score = 1 / (1 + L2 distance)
        """
        k = min(k, self.size)
        if k <= 0:
            return []

        query_vector = np.array(query_embedding).astype("float32").reshape(1, -1)
        distances, indices = self.index.search(query_vector, k)

        results = []
        for idx, distance in zip(indices[0], distances[0]):
            if idx == -1:  # -1 means no result
                continue
            chunk = self.chunks[int(idx)]
            results.append(RetrievedDocument(
                content=chunk["content"],
                metadata=chunk.get("metadata", {}),
                score=1 / (1 + float(distance)),
            ))
        return results


class RetrievalAdapter:
    """Typed, time-bounded access to the vector store."""

    def __init__(
        self,
        embed_client: EmbeddingClient = None,
        store: Optional[VectorStore] = None,
        timeout: float = Config.RETRIEVAL_TIMEOUT,
        max_k: int = Config.MAX_SEARCH_LIMIT,
    ):
        self.embed_client = embed_client or EmbeddingClient()
        self.store = store
        self.timeout = timeout
        self.max_k = max_k
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="retrieval")

    @property
    def is_ready(self) -> bool:
        return self.store is not None

    def set_store(self, store: Optional[VectorStore]):
        self.store = store

    def load(self, path: str = None) -> bool:
        """Load the store from disk. Returns whether a store is now available."""
        path = path or Config.VECTOR_STORE_PATH
        try:
            self.store = VectorStore.load(path)
        except FileNotFoundError:
            logger.warning(f"No vector store at {path}; retrieval stays unavailable until documents are set up")
            self.store = None
        except Exception as e:
            logger.error(f"Could not load vector store from {path}: {e}")
            self.store = None
        return self.is_ready

    def _search(self, store: VectorStore, query: str, k: int) -> Union[RetrievalSuccess, RetrievalFailure]:
        try:
            query_embedding = self.embed_client.generate_embedding(query)
        except Exception as e:
            return RetrievalFailure(RetrievalCause.EMBEDDING_FAILED, str(e))
        try:
            documents = store.similarity_search_by_vector(query_embedding, k)
        except Exception as e:
            return RetrievalFailure(RetrievalCause.SEARCH_FAILED, str(e))
        return RetrievalSuccess(documents)

    def retrieve(self, query: str, k: int = Config.RETRIEVAL_K) -> Union[RetrievalSuccess, RetrievalFailure]:
        """
        Retrieve the chunks most relevant to a query.

        Args:
            query: Query text
            k: Number of documents wanted (clamped to 1..max_k)

        Returns:
            RetrievalSuccess (possibly empty) or RetrievalFailure
        """
        store = self.store
        if store is None:
            return RetrievalFailure(RetrievalCause.NOT_INITIALIZED, "Vector store not initialized")

        k = max(1, min(int(k), self.max_k))
        future = self._executor.submit(self._search, store, query, k)
        try:
            result = future.result(timeout=self.timeout)
        except FuturesTimeout:
            future.cancel()
            return RetrievalFailure(RetrievalCause.TIMEOUT, f"Retrieval exceeded {self.timeout}s")

        if isinstance(result, RetrievalSuccess):
            logger.debug(f"Retrieved {len(result.documents)} documents for '{truncate(query)}'")
        return result

    def close(self):
        self._executor.shutdown(wait=False)
