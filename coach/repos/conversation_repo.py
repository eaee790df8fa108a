"""Repository for conversation operations."""

from __future__ import annotations

import json
import logging
from uuid import uuid4

import asyncpg

from coach.db import user_conn
from coach.models.conversation import DEFAULT_TITLE, Conversation, Message, title_from_text

logger = logging.getLogger(__name__)


def _row_to_conversation(row: asyncpg.Record) -> Conversation:
    """Convert a database row to a Conversation model."""
    messages_raw = row["messages"]
    # JSONB comes back as a Python list from asyncpg
    if isinstance(messages_raw, str):
        messages_raw = json.loads(messages_raw)
    messages = [Message.model_validate(m) for m in messages_raw or []]

    return Conversation(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        messages=messages,
        is_archived=row["is_archived"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class ConversationRepo:
    """All conversation-related database operations."""

    async def create(
        self,
        user_id: str,
        title: str | None = None,
        initial_message: str | None = None,
    ) -> Conversation:
        """
        Create a new, empty conversation.

        Args:
            user_id: Pseudo-user id
            title: Explicit title
            initial_message: Used to derive a title when none is given

        Returns:
            Newly created Conversation
        """
        conversation_id = str(uuid4())
        if not title:
            title = title_from_text(initial_message) if initial_message else DEFAULT_TITLE

        async with user_conn(user_id) as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO conversations (id, user_id, title)
                VALUES ($1, $2, $3)
                RETURNING *
                """,
                conversation_id,
                user_id,
                title,
            )
            logger.info("conversation_repo: created conversation_id=%s user_id=%s", conversation_id, user_id)
            return _row_to_conversation(row)

    async def get(self, user_id: str, conversation_id: str) -> Conversation | None:
        """
        Get a conversation by ID. RLS ensures only the owner can access.

        Returns:
            Conversation if found, None otherwise
        """
        async with user_conn(user_id) as conn:
            row = await conn.fetchrow(
                "SELECT * FROM conversations WHERE id = $1 AND user_id = $2",
                conversation_id,
                user_id,
            )
            return _row_to_conversation(row) if row else None

    async def get_history(self, user_id: str, conversation_id: str, limit: int | None = None) -> list[Message]:
        """
        Get the stored messages of a conversation, oldest first.

        Args:
            user_id: Pseudo-user id
            conversation_id: Conversation id
            limit: Keep only the most recent N messages

        Returns:
            Messages (empty if the conversation does not exist)
        """
        conversation = await self.get(user_id, conversation_id)
        if conversation is None:
            return []
        messages = conversation.messages
        if limit is not None:
            messages = messages[-limit:] if limit > 0 else []
        return messages

    async def append_message(self, user_id: str, conversation_id: str, message: Message) -> int | None:
        """
        Atomically append a message to a conversation.

        A user message also retitles the conversation from its text.

        Args:
            user_id: Pseudo-user id
            conversation_id: Conversation id
            message: Message to append

        Returns:
            The conversation's message count after the append,
            or None if the conversation does not exist
        """
        new_title = title_from_text(message.content) if message.role == "user" and message.content else None

        async with user_conn(user_id) as conn:
            count = await conn.fetchval(
                """
                UPDATE conversations
                SET messages = messages || $3::jsonb,
                    title = COALESCE($4, title),
                    updated_at = now()
                WHERE id = $1 AND user_id = $2
                RETURNING jsonb_array_length(messages)
                """,
                conversation_id,
                user_id,
                [message.to_document()],
                new_title,
            )

        if count is None:
            logger.info("conversation_repo: conversation_id=%s not found, message not appended", conversation_id)
            return None

        logger.info(
            "conversation_repo: appended role=%s to conversation_id=%s count=%d",
            message.role,
            conversation_id,
            count,
        )
        return count

    async def list_for_user(self, user_id: str, archived: bool = False) -> list[Conversation]:
        """
        List a user's conversations.

        Args:
            user_id: Pseudo-user id
            archived: List archived conversations instead of active ones

        Returns:
            List of Conversation objects ordered by updated_at DESC
        """
        async with user_conn(user_id) as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM conversations
                WHERE user_id = $1 AND is_archived = $2
                ORDER BY updated_at DESC
                """,
                user_id,
                archived,
            )
            return [_row_to_conversation(row) for row in rows]

    async def update_title(self, user_id: str, conversation_id: str, title: str) -> Conversation | None:
        """
        Rename a conversation.

        Returns:
            Updated Conversation, or None if not found
        """
        async with user_conn(user_id) as conn:
            row = await conn.fetchrow(
                """
                UPDATE conversations
                SET title = $3, updated_at = now()
                WHERE id = $1 AND user_id = $2
                RETURNING *
                """,
                conversation_id,
                user_id,
                title,
            )
            return _row_to_conversation(row) if row else None

    async def archive(self, user_id: str, conversation_id: str) -> bool:
        """
        Archive a conversation.

        Returns:
            True if archived, False if not found or already archived
        """
        async with user_conn(user_id) as conn:
            result = await conn.execute(
                """
                UPDATE conversations
                SET is_archived = true, updated_at = now()
                WHERE id = $1 AND user_id = $2 AND is_archived = false
                """,
                conversation_id,
                user_id,
            )
            return result == "UPDATE 1"

    async def delete(self, user_id: str, conversation_id: str) -> bool:
        """
        Delete a conversation. RLS ensures only the owner can delete.

        Returns:
            True if deleted, False if not found or not owned by user
        """
        async with user_conn(user_id) as conn:
            result = await conn.execute(
                "DELETE FROM conversations WHERE id = $1 AND user_id = $2",
                conversation_id,
                user_id,
            )
            return result == "DELETE 1"
