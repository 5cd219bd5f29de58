#!/usr/bin/env python3
"""
Test suite for DocumentService.

USAGE:
    Run from project root: python -m pytest tests/test_documents.py -v
"""

import io
import os
import tempfile
import unittest
from unittest.mock import Mock, patch

from pypdf import PdfWriter

from tienda_chat.app.documents import DocumentService, ExtractedPdf, determine_document_type
from tienda_chat.app.errors import DocumentError
from tienda_chat.app.retrieval import VectorStore


class FakeEmbedder:
    def generate_embedding(self, text):
        return [float(len(text)), float(text.count(" ")), 1.0]

    def generate_embeddings_batch(self, texts):
        return [self.generate_embedding(t) for t in texts]


def blank_pdf_bytes():
    writer = PdfWriter()
    writer.add_blank_page(width=72, height=72)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


SAMPLE_TEXT = (
    "Lácteos en el pasillo 3. Panadería al fondo del local. "
    "Leche entera 1L $1200. Manteca 200g $900. Yogur bebible $700. "
) * 10


class TestDetermineDocumentType(unittest.TestCase):

    def test_document_types(self):
        self.assertEqual(determine_document_type("Catalogo_Productos.pdf"), "catalog")
        self.assertEqual(determine_document_type("productos-2024.pdf"), "catalog")
        self.assertEqual(determine_document_type("ubicacion_gondolas.pdf"), "location")
        self.assertEqual(determine_document_type("GONDOLA-mapa.pdf"), "location")
        self.assertEqual(determine_document_type("sucursales.pdf"), "store_info")
        self.assertEqual(determine_document_type("horarios_local.pdf"), "store_info")
        self.assertEqual(determine_document_type("promociones.pdf"), "general")


class TestDocumentService(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.pdfs_folder = os.path.join(self.tmp.name, "pdfs")
        self.store_path = os.path.join(self.tmp.name, "vector-store")
        os.makedirs(self.pdfs_folder)
        self.service = DocumentService(
            embed_client=FakeEmbedder(),
            chunk_size=200,
            chunk_overlap=40,
            vector_store_path=self.store_path,
            pdfs_folder=self.pdfs_folder,
        )

    def tearDown(self):
        self.tmp.cleanup()

    def write_pdf(self, name, data=b"%PDF-1.4"):
        with open(os.path.join(self.pdfs_folder, name), "wb") as f:
            f.write(data)

    def fake_extract(self, data, filename):
        return ExtractedPdf(text=SAMPLE_TEXT, num_pages=2, filename=filename)

    def test_split_text_into_chunks(self):
        chunks = self.service.split_text_into_chunks(SAMPLE_TEXT, {"source": "catalogo.pdf"})

        self.assertGreater(len(chunks), 1)
        for index, chunk in enumerate(chunks):
            self.assertLessEqual(len(chunk["content"]), 200)
            self.assertEqual(chunk["metadata"]["chunk_index"], index)
            self.assertEqual(chunk["metadata"]["chunk_size"], len(chunk["content"]))
            self.assertEqual(chunk["metadata"]["source"], "catalogo.pdf")

    def test_extract_text_from_pdf(self):
        page = Mock()
        page.extract_text.return_value = "Leche $1200"
        reader = Mock()
        reader.pages = [page, page]
        with patch("tienda_chat.app.documents.PdfReader", return_value=reader):
            extracted = self.service.extract_text_from_pdf(b"%PDF", "catalogo.pdf")

        self.assertEqual(extracted.num_pages, 2)
        self.assertEqual(extracted.text, "Leche $1200\nLeche $1200")

    def test_extract_pdf_without_text(self):
        with self.assertRaises(DocumentError):
            self.service.extract_text_from_pdf(blank_pdf_bytes(), "vacio.pdf")

    def test_extract_invalid_pdf(self):
        with self.assertRaises(DocumentError):
            self.service.extract_text_from_pdf(b"this is not a pdf", "roto.pdf")

    def test_process_pdfs_adds_metadata(self):
        with patch.object(self.service, "extract_text_from_pdf", side_effect=self.fake_extract):
            documents = self.service.process_pdfs([("catalogo.pdf", b""), ("sucursales.pdf", b"")])

        sources = {d["metadata"]["source"] for d in documents}
        self.assertEqual(sources, {"catalogo.pdf", "sucursales.pdf"})
        first = documents[0]["metadata"]
        self.assertEqual(first["type"], "catalog")
        self.assertEqual(first["num_pages"], 2)
        self.assertIn("processed_at", first)

    def test_build_vector_store_requires_documents(self):
        with self.assertRaises(DocumentError):
            self.service.build_vector_store([])

    def test_ingest_saves_store(self):
        with patch.object(self.service, "extract_text_from_pdf", side_effect=self.fake_extract):
            store, summary = self.service.ingest([("catalogo.pdf", b"")])

        self.assertEqual(store.size, summary["documentsProcessed"])
        self.assertEqual(summary["pdfFiles"], ["catalogo.pdf"])
        self.assertEqual(VectorStore.load(self.store_path).size, store.size)

    def test_load_default_pdfs_only_reads_pdfs(self):
        self.write_pdf("b_catalogo.pdf")
        self.write_pdf("a_sucursales.PDF")
        self.write_pdf("notas.txt")

        loaded = self.service.load_default_pdfs()
        self.assertEqual([name for name, _ in loaded], ["a_sucursales.PDF", "b_catalogo.pdf"])

    def test_load_default_pdfs_missing_folder(self):
        self.assertEqual(self.service.load_default_pdfs(os.path.join(self.tmp.name, "nope")), [])

    def test_setup_without_pdfs_fails(self):
        with self.assertRaises(DocumentError):
            self.service.setup_from_default_pdfs()

    def test_setup_from_default_pdfs(self):
        self.write_pdf("catalogo.pdf")
        with patch.object(self.service, "extract_text_from_pdf", side_effect=self.fake_extract):
            store, summary = self.service.setup_from_default_pdfs()
        self.assertEqual(summary["pdfFiles"], ["catalogo.pdf"])
        self.assertGreater(store.size, 0)

    def test_status_and_reset(self):
        self.write_pdf("catalogo.pdf")
        status = self.service.status()
        self.assertFalse(status["vectorStore"]["exists"])
        self.assertEqual(status["pdfs"]["available"], ["catalogo.pdf"])
        self.assertEqual(status["pdfs"]["count"], 1)

        with patch.object(self.service, "extract_text_from_pdf", side_effect=self.fake_extract):
            self.service.ingest([("catalogo.pdf", b"")])
        self.assertTrue(self.service.status()["vectorStore"]["exists"])

        self.assertTrue(self.service.reset())
        self.assertFalse(self.service.reset())
        self.assertFalse(self.service.status()["vectorStore"]["exists"])


if __name__ == '__main__':
    unittest.main()
