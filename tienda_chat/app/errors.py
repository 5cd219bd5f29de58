"""Error kinds and typed stage results for the chat pipeline.

Each stage (retrieval, generation, the chat turn as a whole) returns either a
success value or one of the failure dataclasses below. The orchestrator
branches on them explicitly instead of relying on exceptions.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..schemas.io_models import RetrievedDocument


class ErrorKind(str, Enum):
    RETRIEVAL_UNAVAILABLE = "retrieval_unavailable"
    GENERATION_UNAVAILABLE = "generation_unavailable"
    VALIDATION_FAILURE = "validation_failure"


class RetrievalCause(str, Enum):
    NOT_INITIALIZED = "not_initialized"
    EMBEDDING_FAILED = "embedding_failed"
    SEARCH_FAILED = "search_failed"
    TIMEOUT = "timeout"


class GenerationCause(str, Enum):
    UNREACHABLE = "unreachable"
    BAD_STATUS = "bad_status"
    MALFORMED_RESPONSE = "malformed_response"


@dataclass(frozen=True)
class RetrievalSuccess:
    documents: List[RetrievedDocument] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.documents


@dataclass(frozen=True)
class RetrievalFailure:
    cause: RetrievalCause
    detail: str = ""

    kind = ErrorKind.RETRIEVAL_UNAVAILABLE


@dataclass(frozen=True)
class GenerationSuccess:
    text: str


@dataclass(frozen=True)
class GenerationFailure:
    cause: GenerationCause
    detail: str = ""
    status_code: Optional[int] = None

    kind = ErrorKind.GENERATION_UNAVAILABLE


@dataclass(frozen=True)
class ChatFailure:
    kind: ErrorKind
    detail: str = ""
    user_id: Optional[str] = None


class ChatError(Exception):
    """Raised by callers that want a chat failure as an exception."""

    def __init__(self, failure: ChatFailure):
        super().__init__(f"{failure.kind.value}: {failure.detail}")
        self.failure = failure


class RetrievalError(Exception):
    """Raised by direct document search when the retrieval backend fails."""

    def __init__(self, failure: RetrievalFailure):
        super().__init__(f"{failure.cause.value}: {failure.detail}")
        self.failure = failure


class DocumentError(Exception):
    """A document could not be ingested (unreadable PDF, no text, no files)."""
