"""Controller / Orchestrator for the hybrid RAG chat flow.

A chat turn walks START -> HISTORY_LOADED -> RETRIEVAL_ATTEMPTED ->
PROMPT_COMPOSED -> GENERATED -> DONE. Retrieval problems only change what
goes into the prompt; generation gets one retry with a bare prompt and, if
that fails too, the turn ends in ERROR with a typed ChatFailure and no
assistant message is stored.
"""
import secrets
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Tuple, Union

from .config import Config
from .errors import (
    ChatError,
    ChatFailure,
    ErrorKind,
    GenerationCause,
    GenerationFailure,
    RetrievalCause,
    RetrievalError,
    RetrievalFailure,
    RetrievalSuccess,
)
from .generate import GenerationClient
from .prompt_builder import DOCUMENTS_UNAVAILABLE, NO_DOCUMENTS_FOUND, PromptComposer, PromptMode
from .retrieval import RetrievalAdapter
from .session import ASSISTANT, USER
from ..schemas.io_models import ChatResult, RetrievedDocument
from ..utils.logger import get_logger, truncate

logger = get_logger()

DIAGNOSTIC_SESSION = "diagnostic_test"
DIAGNOSTIC_QUERY = "¿Cuáles son los precios?"


class ChatState(str, Enum):
    START = "start"
    HISTORY_LOADED = "history_loaded"
    RETRIEVAL_ATTEMPTED = "retrieval_attempted"
    PROMPT_COMPOSED = "prompt_composed"
    GENERATED = "generated"
    DONE = "done"
    ERROR = "error"


def new_session_id() -> str:
    return f"user{secrets.token_hex(8)}"


class HybridChatOrchestrator:
    def __init__(
        self,
        sessions,
        retriever: RetrievalAdapter,
        generator: GenerationClient,
        composer: PromptComposer = None,
        k: int = Config.RETRIEVAL_K,
        strict: bool = False,
        max_message_length: int = Config.MAX_MESSAGE_LENGTH,
    ):
        self.sessions = sessions
        self.retriever = retriever
        self.generator = generator
        self.composer = composer or PromptComposer()
        self.k = k
        self.strict = strict
        self.max_message_length = max_message_length
        self.initialized = False

    def initialize(self, vector_store_path: str = None) -> bool:
        """Load the vector store and check the LLM backend. Neither is fatal."""
        logger.info("Initializing chat orchestrator...")
        store_loaded = self.retriever.load(vector_store_path)
        # model load stays outside the per-query retrieval timeout
        embeddings_ready = self.retriever.embed_client.warm_up()
        health = self.generator.check_health()
        if health.get("status") != "connected":
            logger.warning(f"Generation backend not reachable: {health.get('error')}")
        self.initialized = True
        logger.info(
            f"Chat orchestrator ready: model={self.generator.llm_model} "
            f"vector_store={'LOADED' if store_loaded else 'MISSING'} "
            f"embeddings={'READY' if embeddings_ready else 'UNAVAILABLE'} sessions={self.sessions.backend}"
        )
        return store_loaded

    def close(self):
        self.sessions.stop()
        self.retriever.close()

    def _advance(self, state: ChatState, new_state: ChatState, session_id: str) -> ChatState:
        logger.debug(f"[CHAT {session_id}] {state.value} -> {new_state.value}")
        return new_state

    def _validate(self, message: str):
        if not message:
            return "Message must not be empty"
        if len(message) > self.max_message_length:
            return f"Message must not exceed {self.max_message_length} characters"
        return None

    def _retrieve(self, message: str):
        # adapters that raise are treated like ones that report a failure
        try:
            return self.retriever.retrieve(message, self.k)
        except Exception as e:
            return RetrievalFailure(RetrievalCause.SEARCH_FAILED, str(e))

    def _generate(self, prompt: str):
        try:
            return self.generator.generate(prompt)
        except Exception as e:
            return GenerationFailure(GenerationCause.UNREACHABLE, str(e))

    def _context_from(self, retrieval, session_id: str, message: str) -> Tuple[bool, PromptMode, str]:
        """Decide (used_retrieval, mode, retrieved_text) from a retrieval result."""
        if isinstance(retrieval, RetrievalFailure):
            logger.warning(
                f"[CHAT {session_id}] {retrieval.kind.value} ({retrieval.cause.value}: {retrieval.detail}) "
                f"for '{truncate(message)}'"
            )
            return False, PromptMode.HYBRID, DOCUMENTS_UNAVAILABLE
        if retrieval.is_empty:
            logger.info(f"[CHAT {session_id}] no relevant documents for '{truncate(message)}'")
            return False, PromptMode.HYBRID, NO_DOCUMENTS_FOUND
        mode = PromptMode.STRICT if self.strict else PromptMode.HYBRID
        text = "\n\n".join(doc.content for doc in retrieval.documents)
        logger.info(f"[CHAT {session_id}] using {len(retrieval.documents)} documents ({len(text)} chars)")
        return True, mode, text

    def chat(self, message: str, user_id: str = None) -> Union[ChatResult, ChatFailure]:
        """
        Answer one customer message.

        Args:
            message: The customer's message
            user_id: Session key; a new one is generated when missing

        Returns:
            ChatResult, or ChatFailure for invalid input or when generation
            failed on both the primary and the bare fallback prompt
        """
        message = (message or "").strip()
        problem = self._validate(message)
        if problem:
            logger.warning(f"[CHAT {user_id}] rejected message: {problem}")
            return ChatFailure(ErrorKind.VALIDATION_FAILURE, problem, user_id)

        session_id = user_id or new_session_id()
        state = ChatState.START
        logger.info(f"[CHAT {session_id}] message: '{truncate(message)}'")

        try:
            self.sessions.append(session_id, USER, message)
            history = self.sessions.format_context(session_id)
            state = self._advance(state, ChatState.HISTORY_LOADED, session_id)

            retrieval = self._retrieve(message)
            used_retrieval, mode, retrieved_text = self._context_from(retrieval, session_id, message)
            state = self._advance(state, ChatState.RETRIEVAL_ATTEMPTED, session_id)

            prompt = self.composer.compose(message, history, retrieved_text, mode)
            state = self._advance(state, ChatState.PROMPT_COMPOSED, session_id)

            generation = self._generate(prompt)
            degraded = False
            if isinstance(generation, GenerationFailure):
                logger.warning(
                    f"[CHAT {session_id}] generation failed ({generation.cause.value}: {generation.detail}); "
                    "retrying with bare prompt"
                )
                bare_prompt = self.composer.compose(message, "", "", PromptMode.BARE)
                generation = self._generate(bare_prompt)
                degraded = True
                if isinstance(generation, GenerationFailure):
                    state = self._advance(state, ChatState.ERROR, session_id)
                    logger.error(
                        f"[CHAT {session_id}] {generation.kind.value} ({generation.cause.value}: "
                        f"{generation.detail}) for '{truncate(message)}'"
                    )
                    return ChatFailure(generation.kind, generation.detail, session_id)
            state = self._advance(state, ChatState.GENERATED, session_id)

            self.sessions.append(session_id, ASSISTANT, generation.text)
            state = self._advance(state, ChatState.DONE, session_id)
        except Exception:
            logger.exception(f"[CHAT {session_id}] failed during {state.value} for '{truncate(message)}'")
            raise

        return ChatResult(
            text=generation.text,
            used_retrieval=used_retrieval and not degraded,
            degraded=degraded,
            user_id=session_id,
        )

    def chat_or_raise(self, message: str, user_id: str = None) -> ChatResult:
        result = self.chat(message, user_id)
        if isinstance(result, ChatFailure):
            raise ChatError(result)
        return result

    def search(self, query: str, limit: int = Config.DEFAULT_SEARCH_LIMIT) -> List[RetrievedDocument]:
        """Return the documents relevant to a query without generating an answer."""
        limit = max(1, min(int(limit), Config.MAX_SEARCH_LIMIT))
        result = self.retriever.retrieve(query, limit)
        if isinstance(result, RetrievalFailure):
            logger.error(f"[SEARCH] retrieval failed ({result.cause.value}: {result.detail}) for '{truncate(query)}'")
            raise RetrievalError(result)
        logger.info(f"[SEARCH] {len(result.documents)} documents for '{truncate(query)}'")
        return result.documents

    def clear_session(self, user_id: str) -> bool:
        return self.sessions.clear(user_id)

    def session_stats(self) -> Dict[str, int]:
        return self.sessions.stats()

    def reload_store(self, path: str = None) -> bool:
        return self.retriever.load(path)

    def health(self) -> Dict[str, Any]:
        store = self.retriever.store
        return {
            "chatService": "initialized" if self.initialized else "not_initialized",
            "ollama": self.generator.check_health(),
            "vectorStore": {"loaded": store is not None, "size": store.size if store is not None else 0},
            "sessionBackend": self.sessions.backend,
        }

    def diagnose(self) -> Dict[str, Any]:
        """Run every self-check step, never stopping early, and summarize."""
        logger.info("Running RAG diagnosis...")
        diagnosis = {
            "timestamp": datetime.now().isoformat(),
            "initialized": self.initialized,
            "components": {
                "ollama": self.generator is not None,
                "embeddings": self.retriever.embed_client is not None,
                "vectorStore": self.retriever.is_ready,
                "sessions": self.sessions is not None,
            },
            "tests": {},
        }
        tests = diagnosis["tests"]

        health = self.generator.check_health()
        tests["ollamaConnection"] = {"success": health.get("status") == "connected", "data": health}

        try:
            embedding = self.retriever.embed_client.generate_embedding("test query")
            tests["embeddings"] = {
                "success": True,
                "dimensions": len(embedding),
                "sampleValues": embedding[:5],
            }
        except Exception as e:
            tests["embeddings"] = {"success": False, "error": str(e)}

        search = self.retriever.retrieve("test", 2)
        if isinstance(search, RetrievalSuccess):
            tests["vectorSearch"] = {
                "success": True,
                "documentsFound": len(search.documents),
                "sampleContent": [doc.content[:50] for doc in search.documents],
            }
        else:
            tests["vectorSearch"] = {"success": False, "cause": search.cause.value, "error": search.detail}

        try:
            result = self.chat(DIAGNOSTIC_QUERY, DIAGNOSTIC_SESSION)
            if isinstance(result, ChatFailure):
                tests["endToEndRAG"] = {"success": False, "error": result.detail}
            else:
                tests["endToEndRAG"] = {
                    "success": True,
                    "ragUsed": result.used_retrieval,
                    "degraded": result.degraded,
                    "responseLength": len(result.text),
                }
        except Exception as e:
            tests["endToEndRAG"] = {"success": False, "error": str(e)}
        finally:
            self.sessions.clear(DIAGNOSTIC_SESSION)

        for name, outcome in tests.items():
            logger.info(f"Diagnosis {name}: {'PASSED' if outcome['success'] else 'FAILED'}")

        diagnosis["passed"] = sum(1 for t in tests.values() if t["success"])
        diagnosis["total"] = len(tests)
        logger.info(f"Diagnosis complete: {diagnosis['passed']}/{diagnosis['total']} tests passed")
        return diagnosis
