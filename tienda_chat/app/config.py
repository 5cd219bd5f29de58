#!/usr/bin/env python3
"""
Configuration management for the supermarket chatbot backend.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


class Config:
    """Configuration class for the application."""

    APP_VERSION = "1.0.0"
    ENVIRONMENT = os.getenv("APP_ENV", "development")
    STORE_NAME = os.getenv("STORE_NAME", "Tienda Alemana")

    # Ollama (generation backend) Configuration
    OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://127.0.0.1:11434").rstrip("/")
    OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.2:1b")
    OLLAMA_TEMPERATURE = _float_env("OLLAMA_TEMPERATURE", 0.7)
    GENERATION_TIMEOUT = _float_env("GENERATION_TIMEOUT", 60)
    HEALTH_TIMEOUT = _float_env("HEALTH_TIMEOUT", 5)

    # Embedding / Retrieval Configuration
    EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "all-MiniLM-L6-v2")
    RETRIEVAL_TIMEOUT = _float_env("RETRIEVAL_TIMEOUT", 15)
    RETRIEVAL_K = _int_env("RETRIEVAL_K", 3)
    DEFAULT_SEARCH_LIMIT = 5
    MAX_SEARCH_LIMIT = 20

    # Vector store / documents
    VECTOR_STORE_PATH = os.getenv("VECTOR_STORE_PATH", "./data/vector-store")
    PDFS_FOLDER = os.getenv("PDFS_FOLDER", "./data/pdfs")
    CHUNK_SIZE = _int_env("CHUNK_SIZE", 1000)
    CHUNK_OVERLAP = _int_env("CHUNK_OVERLAP", 200)
    MAX_UPLOAD_SIZE = 10 * 1024 * 1024
    MAX_UPLOAD_FILES = 10

    # Session Configuration
    SESSION_BACKEND = os.getenv("SESSION_BACKEND", "memory").lower()
    SESSION_MAX_AGE = _int_env("SESSION_MAX_AGE", 30 * 60)
    SESSION_MAX_TURNS = _int_env("SESSION_MAX_TURNS", 20)
    SESSION_CONTEXT_TURNS = _int_env("SESSION_CONTEXT_TURNS", 10)
    SESSION_SWEEP_INTERVAL = _int_env("SESSION_SWEEP_INTERVAL", 5 * 60)

    # Redis Configuration
    REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT = _int_env("REDIS_PORT", 6379)
    REDIS_DB = _int_env("REDIS_DB", 0)

    # Request limits
    MAX_MESSAGE_LENGTH = 1000

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE")

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv(
            "CORS_ORIGINS",
            "http://localhost:3000,http://localhost:5173,http://localhost:8080",
        ).split(",")
        if origin.strip()
    ]

    @classmethod
    def summary(cls):
        """Non-secret settings, for the detailed health endpoint."""
        return {
            "environment": cls.ENVIRONMENT,
            "storeName": cls.STORE_NAME,
            "ollamaUrl": cls.OLLAMA_BASE_URL,
            "ollamaModel": cls.OLLAMA_MODEL,
            "embeddingModel": cls.EMBEDDING_MODEL,
            "vectorStorePath": cls.VECTOR_STORE_PATH,
            "pdfsFolder": cls.PDFS_FOLDER,
            "sessionBackend": cls.SESSION_BACKEND,
            "sessionMaxAge": cls.SESSION_MAX_AGE,
            "sessionMaxTurns": cls.SESSION_MAX_TURNS,
        }

    @classmethod
    def validate(cls):
        """Validate that all required configuration is present and sane."""
        invalid = []

        if not cls.OLLAMA_BASE_URL:
            invalid.append("OLLAMA_BASE_URL")
        if not cls.OLLAMA_MODEL:
            invalid.append("OLLAMA_MODEL")
        if cls.SESSION_BACKEND not in ("memory", "redis"):
            invalid.append("SESSION_BACKEND")
        for name in ("GENERATION_TIMEOUT", "RETRIEVAL_TIMEOUT", "RETRIEVAL_K",
                     "SESSION_MAX_AGE", "SESSION_MAX_TURNS", "SESSION_CONTEXT_TURNS",
                     "SESSION_SWEEP_INTERVAL", "CHUNK_SIZE"):
            if getattr(cls, name) <= 0:
                invalid.append(name)
        if cls.CHUNK_OVERLAP < 0 or cls.CHUNK_OVERLAP >= cls.CHUNK_SIZE:
            invalid.append("CHUNK_OVERLAP")

        if invalid:
            raise ValueError(f"Invalid configuration: {', '.join(invalid)}")

        return True
