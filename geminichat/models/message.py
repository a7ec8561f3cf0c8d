"""One turn in a conversation. Immutable once written.

author_id is the user's id for user turns and MODEL_AUTHOR_ID for model turns,
so it carries no foreign key.
"""
import enum
import uuid

from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from geminichat.database import Base
from geminichat.utils.time import utcnow

MODEL_AUTHOR_ID = "model"


class MessageType(str, enum.Enum):
    TEXT = "text"
    IMAGE = "image"


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    conversation_id = Column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id = Column(String(64), nullable=False, index=True)
    content = Column(Text, nullable=False)
    type = Column(String(16), nullable=False, default=MessageType.TEXT.value)
    model_used = Column(String(64), nullable=True)
    image_url = Column(String(1024), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    conversation = relationship("Conversation", back_populates="messages")
