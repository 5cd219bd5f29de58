"""Pydantic models for API I/O and the chat pipeline contracts.

RetrievedDocument and ChatResult are shared by the retrieval adapter, the
orchestrator and the HTTP layer; the request models carry the input
validation rules for the chat and search endpoints.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..app.config import Config

Scalar = Union[str, int, float, bool, None]

MAX_MESSAGE_LENGTH = Config.MAX_MESSAGE_LENGTH


class RetrievedDocument(BaseModel):
    content: str
    metadata: Dict[str, Scalar] = Field(default_factory=dict)
    score: Optional[float] = None


class ChatResult(BaseModel):
    text: str
    used_retrieval: bool = False
    degraded: bool = False
    user_id: str
    timestamp: datetime = Field(default_factory=datetime.now)


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)
    user_id: Optional[str] = Field(default=None, alias="userId", min_length=3, max_length=50)

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("user_id")
    @classmethod
    def user_id_alphanumeric(cls, value):
        if value is not None and not value.isalnum():
            raise ValueError("userId must be alphanumeric")
        return value


class SearchRequest(BaseModel):
    message: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)
    limit: int = Field(default=Config.DEFAULT_SEARCH_LIMIT, ge=1, le=Config.MAX_SEARCH_LIMIT)

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, value):
        return value.strip() if isinstance(value, str) else value


class ChatResponseData(BaseModel):
    response: str
    timestamp: datetime
    userId: str
    ragUsed: bool
    fallback: bool


class ChatResponse(BaseModel):
    success: bool = True
    data: ChatResponseData


class SearchResponseData(BaseModel):
    query: str
    documents: List[RetrievedDocument]
    count: int
    timestamp: datetime


class SearchResponse(BaseModel):
    success: bool = True
    data: SearchResponseData


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: Optional[Any] = None
    kind: Optional[str] = None
    cause: Optional[str] = None
