from __future__ import annotations

import logging
from typing import Any

from proph_client.core.errors import ValidationError
from proph_client.schemas.messages import Conversation, Message
from proph_client.services.http import ApiClient
from proph_client.services.normalizer import as_int, normalize_conversation, normalize_many, normalize_message

logger = logging.getLogger(__name__)


class MessageGateway:
    """Conversation collaborator.

    Accepting an application creates its conversation server-side; this gateway
    is how either participant reads it afterwards.
    """

    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def list_conversations(self) -> list[Conversation]:
        payload = await self.api.get("/messages/conversations", fallback="Failed to fetch conversations")
        conversations, _ = normalize_many(normalize_conversation, payload or [], entity="conversation")
        return conversations

    async def get_messages(self, conversation_id: int) -> list[Message]:
        payload = await self.api.get(
            f"/messages/conversations/{int(conversation_id)}",
            fallback="Failed to fetch messages",
        )
        rows = payload.get("messages") if isinstance(payload, dict) else payload
        messages, _ = normalize_many(
            lambda row: normalize_message(row, conversation_id=conversation_id),
            rows or [],
            entity="message",
        )
        return messages

    async def send_message(
        self,
        text: str,
        *,
        conversation_id: int | None = None,
        recipient_user_id: int | None = None,
    ) -> Message:
        if not text.strip():
            raise ValidationError("message text must not be empty")
        if conversation_id is None and recipient_user_id is None:
            raise ValidationError("either conversation_id or recipient_user_id is required")
        payload = await self.api.post(
            "/messages/messages",
            json_body={
                "conversation_id": conversation_id,
                "recipient_user_id": recipient_user_id,
                "message_text": text,
            },
            fallback="Failed to send message",
        )
        return normalize_message(payload, conversation_id=conversation_id)

    async def create_conversation(self, player_user_id: int, initial_message: str | None = None) -> Conversation:
        payload = await self.api.post(
            "/messages/conversations",
            json_body={"player_user_id": int(player_user_id), "initial_message": initial_message},
            fallback="Failed to create conversation",
        )
        return normalize_conversation(payload)

    async def mark_read(self, *, conversation_id: int | None = None, message_ids: list[int] | None = None) -> bool:
        body: dict[str, Any] = {}
        if conversation_id:
            body["conversation_id"] = conversation_id
        if message_ids:
            body["message_ids"] = message_ids
        if not body:
            logger.warning("mark_read called without conversation_id or message_ids; skipping request")
            return False
        await self.api.patch("/messages/messages/read", json_body=body, fallback="Failed to mark messages as read")
        return True

    async def unread_count(self) -> int:
        payload = await self.api.get("/messages/unread-count", fallback="Failed to fetch unread count")
        data = payload if isinstance(payload, dict) else {}
        return as_int(data.get("unread_count")) or 0
