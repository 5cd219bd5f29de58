#!/usr/bin/env python3
"""
Data ingestion script for the supermarket chatbot.

This script extracts the store's PDF documents (catalogs, aisle locations,
branch information), splits them into chunks and saves the FAISS vector
store the chat API loads on startup.
"""

import sys

from ..app.config import Config
from ..app.documents import DocumentService
from ..app.errors import DocumentError


def process_directory(input_dir: str, output_dir: str) -> int:
    """
    Build and save the vector store from every PDF in a directory.

    Args:
        input_dir: Directory containing the PDF files
        output_dir: Directory the vector store is written to

    Returns:
        Process exit code
    """
    print(f"Processing directory: {input_dir}")
    service = DocumentService(vector_store_path=output_dir, pdfs_folder=input_dir)

    pdf_files = service.load_default_pdfs()
    if not pdf_files:
        print(f"No PDF files found in {input_dir}")
        print("Add the store's PDF documents to that folder and run again.")
        return 1

    for filename, _ in pdf_files:
        print(f"  - {filename}")

    try:
        store, summary = service.ingest(pdf_files)
    except DocumentError as e:
        print(f"Error: {e}")
        return 1
    except (OSError, RuntimeError) as e:
        print(f"Error building the vector store: {e}")
        print(f"Check that the embedding model '{Config.EMBEDDING_MODEL}' can be downloaded or is cached.")
        return 1

    print(f"Chunks indexed: {summary['documentsProcessed']}")
    print(f"Vectors in index: {store.size}")
    print(f"Vector store saved to: {summary['vectorStorePath']}")
    print("Processing completed!")
    return 0


def main():
    """Main function to run the ingestion pipeline."""
    import argparse

    parser = argparse.ArgumentParser(description='Build the supermarket chatbot vector store from PDFs')
    parser.add_argument('--input', '-i', default=Config.PDFS_FOLDER,
                        help='Input directory containing PDF files')
    parser.add_argument('--output', '-o', default=Config.VECTOR_STORE_PATH,
                        help='Output directory for the vector store')

    args = parser.parse_args()

    sys.exit(process_directory(args.input, args.output))


if __name__ == '__main__':
    main()
