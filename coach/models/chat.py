"""Chat pipeline models: requests, stream events, results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Annotated, Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from coach.models.conversation import HistoryMessage, SearchResultItem, TodoListData

LOCAL_CONVERSATION_PREFIX = "local-"


class ToolType(StrEnum):
    """Response strategy selected for a turn."""

    TODO = "todo"
    GOAL = "goal"
    SEARCH = "search"
    NONE = "none"


class ChatRequest(BaseModel):
    """What the client sends to POST /api/stream and POST /api/chat."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    message: str = Field(min_length=1, max_length=10000)
    conversation_id: str | None = Field(default=None, alias="conversationId")
    use_deep_thinking: bool = Field(default=False, alias="useDeepThinking")
    use_web_search: bool = Field(default=False, alias="useWebSearch")
    history: list[HistoryMessage] = Field(default_factory=list)


@dataclass(frozen=True)
class TurnContext:
    """Request-scoped identity for one conversation turn."""

    user_id: str
    conversation_id: str | None = None
    request_id: str = field(default_factory=lambda: uuid4().hex[:8])

    @property
    def is_local(self) -> bool:
        return bool(self.conversation_id) and self.conversation_id.startswith(LOCAL_CONVERSATION_PREFIX)

    @property
    def is_persistent(self) -> bool:
        return bool(self.conversation_id) and not self.is_local


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


class _Event(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with the UI's camelCase keys; unset optionals omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ThinkingEvent(_Event):
    type: Literal["thinking"] = "thinking"
    content: str


class ContentEvent(_Event):
    type: Literal["content"] = "content"
    content: str


class SearchEvent(_Event):
    type: Literal["search"] = "search"
    content: str
    search_results: list[SearchResultItem] | None = Field(default=None, alias="searchResults")
    search_time: int | None = Field(default=None, alias="searchTime")


class TodoDataEvent(_Event):
    type: Literal["tododata"] = "tododata"
    content: str = ""
    todo_data: TodoListData = Field(alias="todoData")


class MetadataEvent(_Event):
    type: Literal["metadata"] = "metadata"
    content: str
    conversation_id: str | None = Field(default=None, alias="conversationId")
    message_count: int | None = Field(default=None, alias="messageCount")
    is_local: bool | None = Field(default=None, alias="isLocal")


class ErrorEvent(_Event):
    type: Literal["error"] = "error"
    content: str


StreamEvent = Annotated[
    ThinkingEvent | ContentEvent | SearchEvent | TodoDataEvent | MetadataEvent | ErrorEvent,
    Field(discriminator="type"),
]


class StreamDone:
    """Terminal marker of an orchestrator stream."""

    def __repr__(self) -> str:
        return "STREAM_DONE"


STREAM_DONE = StreamDone()


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class ToolResult:
    """Outcome of a tool executor's non-streaming invoke."""

    tool_type: ToolType
    content: str
    todo_data: TodoListData | None = None
    failed: bool = False


class InvokeResult(BaseModel):
    """What POST /api/chat returns."""

    model_config = ConfigDict(populate_by_name=True)

    content: str
    tool_type: ToolType = Field(alias="toolType")
    todo_data: TodoListData | None = Field(default=None, alias="todoData")
    search_content: str | None = Field(default=None, alias="searchContent")
    thinking_content: str | None = Field(default=None, alias="thinkingContent")
