"""Tests for folding stream events into the persisted assistant message."""

from __future__ import annotations

from coach.models.chat import ContentEvent, ErrorEvent, MetadataEvent, SearchEvent, ThinkingEvent, TodoDataEvent
from coach.models.conversation import SearchResultItem, TodoItem, TodoListData
from coach.services.turn_recorder import TODO_ONLY_CONTENT, TurnRecorder


def test_empty_turn_builds_nothing():
    recorder = TurnRecorder()
    recorder.record(MetadataEvent(content="正在生成任务计划..."))
    recorder.record(ErrorEvent(content="服务调用失败"))

    assert recorder.build_assistant_message() is None


def test_whitespace_only_answer_builds_nothing():
    recorder = TurnRecorder()
    recorder.record(ContentEvent(content="  \n"))

    assert recorder.build_assistant_message() is None


def test_full_turn_is_folded():
    hit = SearchResultItem(title="指南", url="https://g.example", content="内容", score=0.5)
    recorder = TurnRecorder()
    recorder.record(SearchEvent(content="正在搜索最新信息..."))
    recorder.record(SearchEvent(content="搜索完成，找到 1 条相关信息", search_results=[hit], search_time=120))
    recorder.record(ThinkingEvent(content="先想"))
    recorder.record(ThinkingEvent(content="再答"))
    recorder.record(ContentEvent(content="回答"))
    recorder.record(ContentEvent(content="完毕"))

    message = recorder.build_assistant_message()

    assert message.role == "assistant"
    assert message.content == "回答完毕"
    assert message.thinking == "先想再答"
    assert message.search_info == "搜索完成，找到 1 条相关信息"
    assert message.search_results == [hit]
    assert message.search_time == 120
    assert message.todo_data is None


def test_todo_only_turn_gets_placeholder_content():
    todo = TodoListData(title="计划", items=[TodoItem(id="1", content="开始")])
    recorder = TurnRecorder()
    recorder.record(TodoDataEvent(todo_data=todo))

    message = recorder.build_assistant_message()

    assert message.content == TODO_ONLY_CONTENT
    assert message.todo_data == todo


def test_document_uses_camel_case_and_omits_absent_fields():
    recorder = TurnRecorder()
    recorder.record(ContentEvent(content="你好"))

    document = recorder.build_assistant_message().to_document()

    assert document["content"] == "你好"
    assert "thinking" not in document
    assert "todoData" not in document
    assert document["searchResults"] == []
