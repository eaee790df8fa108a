"""Conversation CRUD routes: list, create, get, rename, archive and delete."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from coach.identity import get_user_id
from coach.models.conversation import ConversationResponse, CreateConversationRequest, UpdateConversationRequest
from coach.repos.conversation_repo import ConversationRepo

router = APIRouter(prefix="/api/conversations", tags=["conversations"])
conversation_repo = ConversationRepo()

NOT_FOUND = "Conversation not found."


@router.get("", status_code=200)
async def list_conversations(
    archived: bool = False,
    user_id: str = Depends(get_user_id),
) -> list[ConversationResponse]:
    """List the caller's conversations, most recently updated first."""
    conversations = await conversation_repo.list_for_user(user_id, archived=archived)
    return [ConversationResponse.from_model(c) for c in conversations]


@router.post("", status_code=201)
async def create_conversation(
    req: CreateConversationRequest,
    user_id: str = Depends(get_user_id),
) -> ConversationResponse:
    """Create an empty conversation."""
    conversation = await conversation_repo.create(user_id, title=req.title, initial_message=req.initial_message)
    return ConversationResponse.from_model(conversation)


@router.get("/{conversation_id}", status_code=200)
async def get_conversation(
    conversation_id: str,
    user_id: str = Depends(get_user_id),
) -> ConversationResponse:
    """Get a single conversation with its messages."""
    conversation = await conversation_repo.get(user_id, conversation_id)
    if not conversation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return ConversationResponse.from_model(conversation)


@router.patch("/{conversation_id}", status_code=200)
async def update_conversation(
    conversation_id: str,
    req: UpdateConversationRequest,
    user_id: str = Depends(get_user_id),
) -> ConversationResponse:
    """Rename a conversation."""
    conversation = await conversation_repo.update_title(user_id, conversation_id, req.title)
    if not conversation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return ConversationResponse.from_model(conversation)


@router.post("/{conversation_id}/archive", status_code=200)
async def archive_conversation(
    conversation_id: str,
    user_id: str = Depends(get_user_id),
) -> dict:
    """Archive a conversation."""
    archived = await conversation_repo.archive(user_id, conversation_id)
    if not archived:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return {"message": "Conversation archived."}


@router.delete("/{conversation_id}", status_code=200)
async def delete_conversation(
    conversation_id: str,
    user_id: str = Depends(get_user_id),
) -> dict:
    """Delete a conversation permanently."""
    deleted = await conversation_repo.delete(user_id, conversation_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND)
    return {"message": "Conversation deleted."}
