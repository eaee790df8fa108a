"""Conversation models for chat history."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_TITLE = "新对话"
TITLE_PREVIEW_CHARS = 20


def generate_message_id() -> str:
    return f"msg_{uuid4().hex[:12]}"


def title_from_text(text: str) -> str:
    """First characters of a message, used as a conversation title."""
    preview = text[:TITLE_PREVIEW_CHARS]
    return preview + ("..." if len(text) > TITLE_PREVIEW_CHARS else "")


class Role(StrEnum):
    """Closed set of chat roles."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class HistoryMessage(BaseModel):
    """Read-only (role, content) projection of a prior message."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class SearchResultItem(BaseModel):
    """A single ranked web-search hit."""

    title: str = ""
    url: str = ""
    content: str = ""
    score: float | None = Field(default=None, ge=0, le=1)


class TodoItem(BaseModel):
    """One task in a generated TODO list."""

    id: str
    content: str
    priority: Literal["high", "medium", "low"] = "medium"
    estimated_time: int = Field(default=30, ge=1, le=480)
    category: str = "默认"
    completed: bool = False


class TodoListData(BaseModel):
    """Structured TODO list payload attached to assistant messages."""

    type: Literal["todo_list"] = "todo_list"
    title: str
    items: list[TodoItem] = Field(default_factory=list)


class Message(BaseModel):
    """A single message in a conversation."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=generate_message_id)
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    thinking: str | None = None
    search_info: str | None = Field(default=None, alias="searchInfo")
    search_results: list[SearchResultItem] = Field(default_factory=list, alias="searchResults")
    search_time: int | None = Field(default=None, alias="searchTime")
    todo_data: TodoListData | None = Field(default=None, alias="todoData")

    def to_document(self) -> dict:
        """Serialize for storage and for API responses (camelCase keys)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_history(self) -> HistoryMessage:
        return HistoryMessage(role=Role(self.role), content=self.content)


class Conversation(BaseModel):
    """Core conversation model. Represents a row in the conversations table."""

    id: str
    user_id: str
    title: str = DEFAULT_TITLE
    messages: list[Message] = Field(default_factory=list)
    is_archived: bool = False
    created_at: datetime
    updated_at: datetime


class CreateConversationRequest(BaseModel):
    """What the client sends to POST /api/conversations."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    title: str | None = Field(default=None, max_length=200)
    initial_message: str | None = Field(default=None, alias="initialMessage")


class UpdateConversationRequest(BaseModel):
    """What the client sends to PATCH /api/conversations/{id}."""

    model_config = {"extra": "forbid"}

    title: str = Field(min_length=1, max_length=200)


class ConversationResponse(BaseModel):
    """What the API returns for conversations (camelCase for the chat UI)."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    user_id: str = Field(alias="userId")
    messages: list[dict]
    message_count: int = Field(alias="messageCount")
    is_archived: bool = Field(alias="isArchived")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @classmethod
    def from_model(cls, conversation: Conversation) -> ConversationResponse:
        """Convert internal Conversation model to public API response."""
        return cls(
            id=conversation.id,
            title=conversation.title,
            user_id=conversation.user_id,
            messages=[m.to_document() for m in conversation.messages],
            message_count=len(conversation.messages),
            is_archived=conversation.is_archived,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )
