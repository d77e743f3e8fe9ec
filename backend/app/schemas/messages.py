from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class MessageCreateSchema(BaseModel):
    content: str
    recipient_role: str | None = None
    recipient_id: int | None = None
    # Client-side hint only; the stored id is always recomputed.
    conversation_id: str | None = None


class MessageUpdateSchema(BaseModel):
    content: str


class MarkAsReadSchema(BaseModel):
    message_ids: list[int] | None = None
    conversation_id: str | None = None


class MessageSchema(BaseModel):
    id: int
    conversation_id: str
    content: str
    sender: str
    sender_id: int | None
    sender_name: str | None
    sender_avatar_url: str | None = None
    recipient_role: str | None
    recipient_id: int | None
    recipient_name: str | None = None
    recipient_avatar_url: str | None = None
    user_id: int | None
    is_read: bool
    is_own: bool
    peer_id: int | None = None
    peer_name: str | None = None
    peer_role: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ConversationSummarySchema(BaseModel):
    conversation_id: str
    last_message: MessageSchema
    unread: bool
    unread_count: int
    message_count: int


class InboxResponseSchema(BaseModel):
    conversations: list[ConversationSummarySchema]
    total: int
    limit: int
    offset: int
    has_more: bool


class ThreadResponseSchema(BaseModel):
    conversation_id: str
    messages: list[MessageSchema]
    total: int
    limit: int
    offset: int
    has_more: bool


class MarkAsReadResponseSchema(BaseModel):
    updated: int


class ConversationDeletedSchema(BaseModel):
    conversation_id: str
    deleted_at: datetime | None


class ConversationPurgedSchema(BaseModel):
    conversation_id: str
    messages_deleted: int


class UnreadCountSchema(BaseModel):
    unread_conversations: int = Field(ge=0)
