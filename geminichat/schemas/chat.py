from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field

NEW_CONVERSATION = "new"


# ---- Conversations ----

class ConversationStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    ALL = "all"


class ConversationSort(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    TITLE = "title"
    LAST_ACTIVE = "lastActive"


class ConversationCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)


class ConversationRename(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)


class ConversationArchive(BaseModel):
    archived: bool


class ConversationOut(BaseModel):
    id: str
    user_id: str
    title: str | None
    archived: bool
    split_from_id: str | None = None
    created_at: datetime
    updated_at: datetime
    last_active: datetime

    class Config:
        from_attributes = True


class ConversationSummary(ConversationOut):
    message_count: int = 0


# ---- Messages ----

class MessageOut(BaseModel):
    id: str
    conversation_id: str
    author_id: str
    content: str
    type: str
    model_used: str | None = None
    image_url: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class ConversationWindowOut(BaseModel):
    """Derived window; id is transient (<conversationId>_<epochMillis>) and never stored."""
    id: str
    conversation_id: str
    started_at: datetime
    ended_at: datetime
    message_count: int


# ---- Send ----

class SendMessageRequest(BaseModel):
    conversation_id: str = Field(NEW_CONVERSATION, min_length=1, max_length=64)
    message: str = Field(..., min_length=1, max_length=8000)


class SendMessageResponse(BaseModel):
    success: bool = True
    message: str
    conversation_id: str
