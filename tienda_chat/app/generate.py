#!/usr/bin/env python3
"""
Generation module for the supermarket chatbot.

This module handles answer generation through the Ollama HTTP API. Each call
is a single request with a timeout; failures come back typed by cause and
retrying is left to the caller.
"""

from typing import Any, Dict, Union

import requests

from .config import Config
from .errors import GenerationCause, GenerationFailure, GenerationSuccess
from ..utils.logger import get_logger

logger = get_logger()


class GenerationClient:
    """Client for generating answers with an Ollama-served LLM."""

    def __init__(
        self,
        base_url: str = None,
        model: str = None,
        temperature: float = None,
        timeout: float = None,
        session: requests.Session = None,
    ):
        """Initialize the generation client."""
        self.base_url = (base_url or Config.OLLAMA_BASE_URL).rstrip("/")
        self.llm_model = model or Config.OLLAMA_MODEL
        self.temperature = Config.OLLAMA_TEMPERATURE if temperature is None else temperature
        self.timeout = timeout or Config.GENERATION_TIMEOUT
        self.http = session or requests.Session()

    def generate(self, prompt: str) -> Union[GenerationSuccess, GenerationFailure]:
        """
        Generate an answer using the LLM.

        Args:
            prompt: Formatted prompt for the LLM

        Returns:
            GenerationSuccess with the answer text, or GenerationFailure
        """
        logger.debug(f"Generating answer with {self.llm_model}, prompt length: {len(prompt)}")

        payload = {
            "model": self.llm_model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": self.temperature},
        }

        try:
            response = self.http.post(f"{self.base_url}/api/generate", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            # connection refused, DNS failure, timeout
            return GenerationFailure(GenerationCause.UNREACHABLE, str(e))

        if not 200 <= response.status_code < 300:
            return GenerationFailure(
                GenerationCause.BAD_STATUS,
                response.text[:200],
                status_code=response.status_code,
            )

        try:
            data = response.json()
            answer = data["response"]
        except (ValueError, KeyError, TypeError) as e:
            return GenerationFailure(GenerationCause.MALFORMED_RESPONSE, f"Unexpected response body: {e}")

        if not isinstance(answer, str) or not answer.strip():
            return GenerationFailure(GenerationCause.MALFORMED_RESPONSE, "Empty answer in response body")

        logger.debug(f"Extracted answer, length: {len(answer)}")
        return GenerationSuccess(answer.strip())

    def check_health(self) -> Dict[str, Any]:
        """Probe the Ollama server version endpoint."""
        try:
            response = self.http.get(f"{self.base_url}/api/version", timeout=Config.HEALTH_TIMEOUT)
            if response.ok:
                data = response.json()
                return {"status": "connected", "model": self.llm_model, "version": data.get("version")}
            return {"status": "disconnected", "error": f"HTTP {response.status_code}"}
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error connecting to Ollama: {e}")
            return {"status": "disconnected", "error": str(e)}
