"""
Pydantic models for the interest coach.

All data shapes defined here. No imports from db, repos, or routes.
"""

from coach.models.chat import (
    STREAM_DONE,
    ChatRequest,
    ContentEvent,
    ErrorEvent,
    InvokeResult,
    MetadataEvent,
    SearchEvent,
    StreamDone,
    StreamEvent,
    ThinkingEvent,
    TodoDataEvent,
    ToolResult,
    ToolType,
    TurnContext,
)
from coach.models.conversation import (
    Conversation,
    ConversationResponse,
    CreateConversationRequest,
    HistoryMessage,
    Message,
    Role,
    SearchResultItem,
    TodoItem,
    TodoListData,
    UpdateConversationRequest,
)

__all__ = [
    # Conversation models
    "Conversation",
    "ConversationResponse",
    "CreateConversationRequest",
    "UpdateConversationRequest",
    "Message",
    "HistoryMessage",
    "Role",
    "SearchResultItem",
    "TodoItem",
    "TodoListData",
    # Chat pipeline models
    "ChatRequest",
    "TurnContext",
    "ToolType",
    "ToolResult",
    "InvokeResult",
    "StreamEvent",
    "ThinkingEvent",
    "ContentEvent",
    "SearchEvent",
    "TodoDataEvent",
    "MetadataEvent",
    "ErrorEvent",
    "StreamDone",
    "STREAM_DONE",
]
