#!/usr/bin/env python3
"""
Main FastAPI application for the supermarket chatbot.
"""

import platform
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Config
from .controller import HybridChatOrchestrator
from .documents import DocumentService
from .embed import EmbeddingClient
from .errors import ChatError, DocumentError, ErrorKind, RetrievalError
from .generate import GenerationClient
from .retrieval import RetrievalAdapter
from .session import create_session_store
from ..schemas.io_models import (
    ChatRequest,
    ChatResponse,
    ChatResponseData,
    ErrorResponse,
    SearchRequest,
    SearchResponse,
    SearchResponseData,
)
from ..utils.logger import configure_logging, get_logger

logger = get_logger()

STARTED_AT = time.time()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the chat components on startup and release them on shutdown."""
    Config.validate()
    configure_logging(Config.LOG_LEVEL, Config.LOG_FILE)
    logger.info(f"Starting {Config.STORE_NAME} chatbot ({Config.ENVIRONMENT})")

    embed_client = EmbeddingClient()
    sessions = create_session_store()
    orchestrator = HybridChatOrchestrator(
        sessions=sessions,
        retriever=RetrievalAdapter(embed_client),
        generator=GenerationClient(),
    )
    orchestrator.initialize()
    sessions.start()

    app.state.orchestrator = orchestrator
    app.state.documents = DocumentService(embed_client)
    try:
        yield
    finally:
        logger.info("Shutting down chat components")
        orchestrator.close()


# Initialize FastAPI app
app = FastAPI(
    title="Supermarket Chatbot API",
    description="Hybrid RAG customer-support chatbot for a supermarket chain",
    version=Config.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_orchestrator(request: Request) -> HybridChatOrchestrator:
    return request.app.state.orchestrator


def get_documents(request: Request) -> DocumentService:
    return request.app.state.documents


def error_response(status_code: int, error: str, **extra) -> JSONResponse:
    body = ErrorResponse(error=error, **extra)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f} ms)")
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(part) for part in err["loc"] if part != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    logger.warning(f"Invalid input on {request.url.path}: {details}")
    return error_response(400, "Invalid input data", details=details)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    failure = exc.failure
    if failure.kind is ErrorKind.VALIDATION_FAILURE:
        return error_response(400, failure.detail)
    return error_response(
        503,
        "The assistant is temporarily unavailable, please try again in a moment",
        kind=failure.kind.value,
    )


@app.exception_handler(RetrievalError)
async def retrieval_error_handler(request: Request, exc: RetrievalError):
    return error_response(
        503,
        "Document search is temporarily unavailable",
        cause=exc.failure.cause.value,
    )


@app.exception_handler(DocumentError)
async def document_error_handler(request: Request, exc: DocumentError):
    logger.warning(f"Document processing failed: {exc}")
    return error_response(400, str(exc))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(500, "Internal server error")


@app.get("/")
async def root():
    """Service banner and endpoint index."""
    return {
        "message": f"{Config.STORE_NAME} chatbot API",
        "version": Config.APP_VERSION,
        "endpoints": {
            "health": "/api/health",
            "chat": "/api/chat",
            "search": "/api/chat/search",
            "diagnose": "/api/chat/diagnose",
            "sessions": "/api/chat/sessions",
            "documents": "/api/documents",
        },
    }


@app.get("/api/health")
async def health():
    return {
        "status": "OK",
        "timestamp": datetime.now().isoformat(),
        "uptime": round(time.time() - STARTED_AT, 1),
        "version": Config.APP_VERSION,
        "model": Config.OLLAMA_MODEL,
    }


@app.get("/api/health/detailed")
async def health_detailed():
    return {
        "status": "OK",
        "timestamp": datetime.now().isoformat(),
        "uptime": round(time.time() - STARTED_AT, 1),
        "version": Config.APP_VERSION,
        "config": Config.summary(),
        "system": {
            "python": platform.python_version(),
            "platform": platform.platform(),
        },
    }


CHAT_ERRORS = {400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}}


@app.post("/api/chat", response_model=ChatResponse, responses=CHAT_ERRORS)
def chat(request: ChatRequest, orchestrator: HybridChatOrchestrator = Depends(get_orchestrator)):
    """
    Answer a customer message within its session.

    Args:
        request: Message and optional userId

    Returns:
        The answer with its session id and retrieval/fallback flags
    """
    result = orchestrator.chat_or_raise(request.message, request.user_id)
    return ChatResponse(data=ChatResponseData(
        response=result.text,
        timestamp=result.timestamp,
        userId=result.user_id,
        ragUsed=result.used_retrieval,
        fallback=result.degraded,
    ))


@app.post("/api/chat/search", response_model=SearchResponse, responses=CHAT_ERRORS)
def search(request: SearchRequest, orchestrator: HybridChatOrchestrator = Depends(get_orchestrator)):
    """Return the documents relevant to a query without generating an answer."""
    documents = orchestrator.search(request.message, request.limit)
    return SearchResponse(data=SearchResponseData(
        query=request.message,
        documents=documents,
        count=len(documents),
        timestamp=datetime.now(),
    ))


@app.get("/api/chat/health")
def chat_health(orchestrator: HybridChatOrchestrator = Depends(get_orchestrator)):
    return {"success": True, "data": orchestrator.health()}


@app.get("/api/chat/diagnose")
def diagnose(orchestrator: HybridChatOrchestrator = Depends(get_orchestrator)):
    return {"success": True, "data": orchestrator.diagnose()}


@app.post("/api/chat/reinitialize")
def reinitialize(orchestrator: HybridChatOrchestrator = Depends(get_orchestrator)):
    loaded = orchestrator.reload_store()
    return {
        "success": True,
        "message": "Vector store reloaded" if loaded else "No vector store found; answering without documents",
        "data": {"vectorStoreLoaded": loaded},
    }


@app.get("/api/chat/sessions")
def session_stats(orchestrator: HybridChatOrchestrator = Depends(get_orchestrator)):
    return {"success": True, "data": orchestrator.session_stats()}


@app.delete("/api/chat/sessions/{user_id}")
def clear_session(user_id: str, orchestrator: HybridChatOrchestrator = Depends(get_orchestrator)):
    cleared = orchestrator.clear_session(user_id)
    return {
        "success": True,
        "message": f"Session {user_id} cleared",
        "data": {"userId": user_id, "cleared": cleared},
    }


@app.post("/api/documents/upload")
def upload_documents(
    pdfs: List[UploadFile] = File(...),
    documents: DocumentService = Depends(get_documents),
    orchestrator: HybridChatOrchestrator = Depends(get_orchestrator),
):
    """
    Index uploaded PDFs and swap them in as the live vector store.

    Args:
        pdfs: Up to MAX_UPLOAD_FILES PDF files of at most MAX_UPLOAD_SIZE bytes each

    Returns:
        Processing summary
    """
    if len(pdfs) > Config.MAX_UPLOAD_FILES:
        return error_response(400, f"At most {Config.MAX_UPLOAD_FILES} files per upload")

    pdf_files = []
    for upload in pdfs:
        filename = upload.filename or "document.pdf"
        if upload.content_type != "application/pdf" and not filename.lower().endswith(".pdf"):
            return error_response(400, f"Only PDF files are allowed: {filename}")
        data = upload.file.read()
        if len(data) > Config.MAX_UPLOAD_SIZE:
            return error_response(413, f"File too large: {filename}")
        pdf_files.append((filename, data))

    store, summary = documents.ingest(pdf_files)
    orchestrator.retriever.set_store(store)
    logger.info(f"Vector store replaced with {store.size} chunks from {len(pdf_files)} uploads")
    return {"success": True, "message": "PDFs processed successfully", "data": summary}


@app.post("/api/documents/setup")
def setup_documents(
    documents: DocumentService = Depends(get_documents),
    orchestrator: HybridChatOrchestrator = Depends(get_orchestrator),
):
    store, summary = documents.setup_from_default_pdfs()
    orchestrator.retriever.set_store(store)
    return {"success": True, "message": "Vector store set up from default PDFs", "data": summary}


@app.get("/api/documents/status")
def documents_status(documents: DocumentService = Depends(get_documents)):
    return {"success": True, "data": documents.status()}


@app.delete("/api/documents/reset")
def reset_documents(
    documents: DocumentService = Depends(get_documents),
    orchestrator: HybridChatOrchestrator = Depends(get_orchestrator),
):
    removed = documents.reset()
    orchestrator.retriever.set_store(None)
    return {"success": True, "message": "Vector store reset", "data": {"removed": removed}}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
