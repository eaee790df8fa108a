"""Folds a turn's stream events into the assistant message that gets persisted."""

from __future__ import annotations

from coach.models.chat import ContentEvent, SearchEvent, StreamEvent, ThinkingEvent, TodoDataEvent
from coach.models.conversation import Message, SearchResultItem, TodoListData

TODO_ONLY_CONTENT = "已生成TODO列表"


class TurnRecorder:
    """Accumulates one assistant turn from its events."""

    def __init__(self) -> None:
        self.content_parts: list[str] = []
        self.thinking_parts: list[str] = []
        self.search_info: str | None = None
        self.search_results: list[SearchResultItem] = []
        self.search_time: int | None = None
        self.todo_data: TodoListData | None = None

    def record(self, event: StreamEvent) -> None:
        match event:
            case ContentEvent():
                self.content_parts.append(event.content)
            case ThinkingEvent():
                self.thinking_parts.append(event.content)
            case SearchEvent():
                self.search_info = event.content
                if event.search_results is not None:
                    self.search_results = list(event.search_results)
                if event.search_time is not None:
                    self.search_time = event.search_time
            case TodoDataEvent():
                self.todo_data = event.todo_data
            case _:
                # metadata and error events are transport notes, not turn content
                pass

    @property
    def content(self) -> str:
        return "".join(self.content_parts)

    @property
    def has_output(self) -> bool:
        return bool(self.content.strip()) or self.todo_data is not None

    def build_assistant_message(self) -> Message | None:
        """The assistant Message for this turn, or None if nothing was produced."""
        if not self.has_output:
            return None

        content = self.content
        if not content.strip():
            content = TODO_ONLY_CONTENT

        return Message(
            role="assistant",
            content=content,
            thinking="".join(self.thinking_parts) or None,
            search_info=self.search_info,
            search_results=self.search_results,
            search_time=self.search_time,
            todo_data=self.todo_data,
        )
