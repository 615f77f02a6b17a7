from datetime import datetime
from typing import Literal

from pydantic import BaseModel

ParticipantRole = Literal["player", "coach"]


class Message(BaseModel):
    id: str
    conversation_id: str
    sender_id: str
    text: str
    timestamp: datetime
    read: bool = False


class Participant(BaseModel):
    id: str
    name: str
    avatar: str = ""
    role: ParticipantRole
    school: str | None = None


class Conversation(BaseModel):
    id: str
    other_user: Participant
    last_message: Message
    unread_count: int = 0
    created_at: datetime
