"""Chat routes: SSE streaming turn and non-streaming turn."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from coach.config import settings
from coach.errors import ConfigurationError
from coach.identity import get_user_id
from coach.models.chat import ChatRequest, ErrorEvent, InvokeResult, MetadataEvent, StreamDone, TurnContext
from coach.models.conversation import HistoryMessage, Message
from coach.repos.conversation_repo import ConversationRepo
from coach.services.orchestrator import Orchestrator, build_orchestrator
from coach.services.turn_recorder import TurnRecorder

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])
conversation_repo = ConversationRepo()

USER_MESSAGE_SAVED = "用户消息已保存"
CONVERSATION_SAVED = "对话已保存"
SAVE_FAILED = "保存对话时遇到问题，但回复已生成"
LOCAL_UPDATED = "本地对话已更新"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@lru_cache(maxsize=1)
def get_orchestrator() -> Orchestrator:
    """Shared orchestrator; raises ConfigurationError until credentials are set."""
    return build_orchestrator()


def sse_frame(payload: dict[str, Any] | str) -> str:
    """One SSE frame; non-ASCII text is sent as-is."""
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"data: {data}\n\n"


async def load_history(req: ChatRequest, context: TurnContext) -> list[HistoryMessage]:
    """The request's history if given, else the stored conversation's recent messages."""
    if req.history:
        return req.history[-settings.MAX_HISTORY_LENGTH :]
    if not context.is_persistent:
        return []
    try:
        messages = await conversation_repo.get_history(
            context.user_id, context.conversation_id, limit=settings.MAX_HISTORY_LENGTH
        )
    except Exception:
        logger.exception("chat: failed to load history conversation_id=%s", context.conversation_id)
        return []
    return [m.to_history() for m in messages]


async def stream_turn(req: ChatRequest, context: TurnContext) -> AsyncIterator[str]:
    """
    Produce the SSE body for one turn.

    Persists the user message before and the assistant message after the
    orchestrated stream. Always ends with the [DONE] frame.
    """
    try:
        # Read history before the append so the current message is not repeated in it
        history = await load_history(req, context)

        if context.is_persistent:
            try:
                count = await conversation_repo.append_message(
                    context.user_id, context.conversation_id, Message(role="user", content=req.message)
                )
            except Exception:
                logger.exception("chat: failed to save user message conversation_id=%s", context.conversation_id)
            else:
                if count is None:
                    logger.warning("chat: conversation_id=%s not found, user message not saved", context.conversation_id)
                else:
                    yield sse_frame(
                        MetadataEvent(
                            content=USER_MESSAGE_SAVED,
                            conversation_id=context.conversation_id,
                            message_count=count,
                        ).to_wire()
                    )

        orchestrator = get_orchestrator()
        recorder = TurnRecorder()
        async with aclosing(orchestrator.stream(req, context, history)) as events:
            async for event in events:
                if isinstance(event, StreamDone):
                    break
                recorder.record(event)
                yield sse_frame(event.to_wire())

        assistant_message = recorder.build_assistant_message()
        if assistant_message is not None:
            if context.is_persistent:
                async for frame in _save_assistant_message(context, assistant_message):
                    yield frame
            elif context.is_local:
                yield sse_frame(
                    MetadataEvent(content=LOCAL_UPDATED, conversation_id=context.conversation_id, is_local=True).to_wire()
                )
    except Exception as e:
        logger.exception("chat: turn failed request_id=%s", context.request_id)
        yield sse_frame(ErrorEvent(content=f"服务调用失败: {e}").to_wire())

    yield sse_frame("[DONE]")


async def _save_assistant_message(context: TurnContext, message: Message) -> AsyncIterator[str]:
    try:
        count = await conversation_repo.append_message(context.user_id, context.conversation_id, message)
    except Exception:
        logger.exception("chat: failed to save assistant message conversation_id=%s", context.conversation_id)
        yield sse_frame(MetadataEvent(content=SAVE_FAILED).to_wire())
        return

    if count is None:
        logger.warning("chat: conversation_id=%s not found, assistant message not saved", context.conversation_id)
        return

    yield sse_frame(
        MetadataEvent(
            content=CONVERSATION_SAVED,
            conversation_id=context.conversation_id,
            message_count=count,
            is_local=False,
        ).to_wire()
    )


@router.post("/stream")
async def stream_chat(req: ChatRequest, user_id: str = Depends(get_user_id)) -> StreamingResponse:
    """Run one turn and stream its events as Server-Sent Events."""
    context = TurnContext(user_id=user_id, conversation_id=req.conversation_id)
    logger.info(
        "chat: stream request_id=%s user_id=%s conversation_id=%s",
        context.request_id,
        user_id,
        req.conversation_id,
    )
    return StreamingResponse(
        stream_turn(req, context),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/chat", status_code=200, response_model_exclude_none=True)
async def chat(req: ChatRequest, user_id: str = Depends(get_user_id)) -> InvokeResult:
    """Run one turn without streaming."""
    context = TurnContext(user_id=user_id, conversation_id=req.conversation_id)
    try:
        orchestrator = get_orchestrator()
    except ConfigurationError as e:
        logger.error("chat: orchestrator unavailable: %s", e)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e

    history = await load_history(req, context)
    return await orchestrator.invoke(req, context, history)
