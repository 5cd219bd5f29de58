#!/usr/bin/env python3
"""
Document ingestion for the supermarket chatbot.

This module extracts text from the chain's PDF documents (product catalogs,
aisle locations, branch information), splits it into overlapping chunks with
metadata and builds the FAISS vector store used for retrieval.
"""

import io
import os
import shutil
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Tuple

from langchain_text_splitters import RecursiveCharacterTextSplitter
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from .config import Config
from .embed import EmbeddingClient
from .errors import DocumentError
from .retrieval import VectorStore
from ..utils.logger import get_logger

logger = get_logger()

DOCUMENT_TYPES = (
    ("catalog", ("catalogo", "producto")),
    ("location", ("ubicacion", "gondola")),
    ("store_info", ("sucursal", "local")),
)


@dataclass
class ExtractedPdf:
    text: str
    num_pages: int
    filename: str


def determine_document_type(filename: str) -> str:
    """Classify a document by keywords in its file name."""
    lower = filename.lower()
    for doc_type, keywords in DOCUMENT_TYPES:
        if any(keyword in lower for keyword in keywords):
            return doc_type
    return "general"


class DocumentService:
    """Turns PDF files into a searchable vector store."""

    def __init__(
        self,
        embed_client: EmbeddingClient = None,
        chunk_size: int = Config.CHUNK_SIZE,
        chunk_overlap: int = Config.CHUNK_OVERLAP,
        vector_store_path: str = None,
        pdfs_folder: str = None,
    ):
        self.embed_client = embed_client or EmbeddingClient()
        self.vector_store_path = vector_store_path or Config.VECTOR_STORE_PATH
        self.pdfs_folder = pdfs_folder or Config.PDFS_FOLDER
        self.text_splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            separators=["\n\n", "\n", ". ", " ", ""],
        )

    def extract_text_from_pdf(self, data: bytes, filename: str) -> ExtractedPdf:
        """
        Extract the text of every page of a PDF.

        Args:
            data: Raw PDF bytes
            filename: Original file name, for messages and metadata

        Returns:
            The extracted text and page count
        """
        logger.info(f"Extracting text from PDF: {filename}")
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except (PdfReadError, ValueError, OSError) as e:
            raise DocumentError(f"Could not process PDF {filename}: {e}") from e

        text = "\n".join(pages).strip()
        if not text:
            raise DocumentError(f"Could not process PDF {filename}: no extractable text")

        logger.info(f"Extracted {len(text)} characters from {filename}")
        return ExtractedPdf(text=text, num_pages=len(pages), filename=filename)

    def split_text_into_chunks(self, text: str, metadata: Dict[str, Any] = None) -> List[Dict[str, Any]]:
        chunks = self.text_splitter.split_text(text)
        documents = [
            {
                "content": chunk,
                "metadata": {**(metadata or {}), "chunk_index": index, "chunk_size": len(chunk)},
            }
            for index, chunk in enumerate(chunks)
        ]
        logger.info(f"Text split into {len(documents)} chunks")
        return documents

    def process_pdfs(self, pdf_files: List[Tuple[str, bytes]]) -> List[Dict[str, Any]]:
        """
        Extract and chunk a batch of PDFs.

        Args:
            pdf_files: (filename, bytes) pairs

        Returns:
            Chunks with source, type, page count and processing time metadata
        """
        logger.info(f"Processing {len(pdf_files)} PDF files")
        all_documents = []
        for filename, data in pdf_files:
            extracted = self.extract_text_from_pdf(data, filename)
            all_documents.extend(self.split_text_into_chunks(extracted.text, {
                "source": filename,
                "type": determine_document_type(filename),
                "num_pages": extracted.num_pages,
                "processed_at": datetime.now().isoformat(),
            }))
        logger.info(f"Total chunks processed: {len(all_documents)}")
        return all_documents

    def build_vector_store(self, documents: List[Dict[str, Any]]) -> VectorStore:
        if not documents:
            raise DocumentError("No documents to process")
        return VectorStore.from_documents(documents, self.embed_client)

    def save_vector_store(self, store: VectorStore, path: str = None) -> str:
        path = path or self.vector_store_path
        store.save(path)
        return path

    def ingest(self, pdf_files: List[Tuple[str, bytes]], path: str = None) -> Tuple[VectorStore, Dict[str, Any]]:
        """Process, index and save a batch of PDFs."""
        documents = self.process_pdfs(pdf_files)
        store = self.build_vector_store(documents)
        saved_to = self.save_vector_store(store, path)
        return store, {
            "documentsProcessed": len(documents),
            "pdfFiles": [filename for filename, _ in pdf_files],
            "vectorStorePath": saved_to,
        }

    def load_default_pdfs(self, folder: str = None) -> List[Tuple[str, bytes]]:
        folder = folder or self.pdfs_folder
        if not os.path.isdir(folder):
            logger.warning(f"PDF folder not found: {folder}")
            return []

        loaded = []
        for filename in sorted(os.listdir(folder)):
            if not filename.lower().endswith(".pdf"):
                continue
            with open(os.path.join(folder, filename), "rb") as f:
                loaded.append((filename, f.read()))

        if not loaded:
            logger.warning(f"No PDF files found in {folder}")
        else:
            logger.info(f"Loaded {len(loaded)} default PDF files")
        return loaded

    def setup_from_default_pdfs(self, folder: str = None, path: str = None) -> Tuple[VectorStore, Dict[str, Any]]:
        logger.info("Setting up vector store from default PDFs...")
        pdf_files = self.load_default_pdfs(folder)
        if not pdf_files:
            raise DocumentError("No PDF files found to process")
        return self.ingest(pdf_files, path)

    def status(self) -> Dict[str, Any]:
        try:
            available = sorted(f for f in os.listdir(self.pdfs_folder) if f.lower().endswith(".pdf"))
        except OSError:
            logger.warning(f"Could not read PDF folder {self.pdfs_folder}")
            available = []
        return {
            "vectorStore": {"exists": os.path.exists(self.vector_store_path), "path": self.vector_store_path},
            "pdfs": {"folder": self.pdfs_folder, "available": available, "count": len(available)},
        }

    def reset(self) -> bool:
        """Delete the saved vector store. Returns whether one existed."""
        if not os.path.exists(self.vector_store_path):
            return False
        shutil.rmtree(self.vector_store_path)
        logger.info(f"Vector store removed: {self.vector_store_path}")
        return True
