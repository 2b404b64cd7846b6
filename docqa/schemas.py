"""Request and response models for the query API and history accessor."""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from docqa import config


class ConversationTurn(BaseModel):
    """One prior message of a conversation, supplied by the caller."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


class SearchRequest(BaseModel):
    query: str = Field(min_length=1, max_length=config.MAX_QUESTION_CHARS)
    framework: str = Field(min_length=1)
    history: Optional[List[ConversationTurn]] = None

    @field_validator("query", "framework")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class SearchResponse(BaseModel):
    answer: str
    framework: str


class HistoryResponse(BaseModel):
    history: List[ConversationTurn]


class ErrorResponse(BaseModel):
    error: str
    code: str
