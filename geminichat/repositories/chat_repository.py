"""
Chat persistence: Conversation + Message. DB as source of truth.
All operations are sync (used from sync endpoints or run_in_executor from async).
Ownership: every conversation lookup filters on conversation.user_id.
"""
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from geminichat.models.conversation import Conversation
from geminichat.models.message import Message, MessageType
from geminichat.schemas.chat import ConversationSort, ConversationStatus
from geminichat.utils.time import utcnow


def create_conversation(
    db: Session,
    user_id: str,
    title: str | None,
    *,
    split_from_id: str | None = None,
    now: datetime | None = None,
) -> Conversation:
    now = now or utcnow()
    conv = Conversation(
        user_id=user_id,
        title=title,
        split_from_id=split_from_id,
        created_at=now,
        updated_at=now,
        last_active=now,
    )
    db.add(conv)
    db.commit()
    db.refresh(conv)
    return conv


def get_conversation(db: Session, user_id: str, conversation_id: str) -> Conversation | None:
    """Owner-scoped lookup: another user's conversation reads as missing."""
    return (
        db.query(Conversation)
        .filter(Conversation.id == conversation_id, Conversation.user_id == user_id)
        .first()
    )


def list_conversations(
    db: Session,
    user_id: str,
    *,
    query: str | None = None,
    status: ConversationStatus = ConversationStatus.ALL,
    sort: ConversationSort = ConversationSort.NEWEST,
) -> list[tuple[Conversation, int]]:
    """User's conversations with message counts. `query` matches title or any message content."""
    q = (
        db.query(Conversation, func.count(Message.id))
        .outerjoin(Message, Message.conversation_id == Conversation.id)
        .filter(Conversation.user_id == user_id)
        .group_by(Conversation.id)
    )
    if status == ConversationStatus.ACTIVE:
        q = q.filter(Conversation.archived.is_(False))
    elif status == ConversationStatus.ARCHIVED:
        q = q.filter(Conversation.archived.is_(True))

    if query and query.strip():
        pattern = f"%{query.strip()}%"
        matching = select(Message.conversation_id).where(Message.content.ilike(pattern))
        q = q.filter(or_(Conversation.title.ilike(pattern), Conversation.id.in_(matching)))

    if sort == ConversationSort.OLDEST:
        q = q.order_by(Conversation.updated_at.asc())
    elif sort == ConversationSort.TITLE:
        q = q.order_by(func.lower(func.coalesce(Conversation.title, "")).asc())
    elif sort == ConversationSort.LAST_ACTIVE:
        q = q.order_by(Conversation.last_active.desc())
    else:
        q = q.order_by(Conversation.updated_at.desc())
    return [(conv, count) for conv, count in q.all()]


def find_active_successor(
    db: Session,
    user_id: str,
    conversation_id: str,
    since: datetime,
) -> Conversation | None:
    """
    Most recent unarchived conversation split from `conversation_id` with a message since `since`.
    Activity is read from messages; rename and archive also touch last_active.
    """
    newest = (
        db.query(Message.conversation_id, func.max(Message.created_at).label("newest_at"))
        .group_by(Message.conversation_id)
        .subquery()
    )
    return (
        db.query(Conversation)
        .join(newest, newest.c.conversation_id == Conversation.id)
        .filter(
            Conversation.split_from_id == conversation_id,
            Conversation.user_id == user_id,
            Conversation.archived.is_(False),
            newest.c.newest_at >= since,
        )
        .order_by(newest.c.newest_at.desc())
        .first()
    )


def get_messages(db: Session, conversation_id: str) -> list[Message]:
    """All messages of a conversation, oldest-first. Caller checks ownership."""
    return (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at)
        .all()
    )


def save_message(
    db: Session,
    conversation_id: str,
    author_id: str,
    content: str,
    *,
    model_used: str | None = None,
    message_type: MessageType = MessageType.TEXT,
    image_url: str | None = None,
    now: datetime | None = None,
) -> Message:
    """Persist one message and mark its conversation active."""
    now = now or utcnow()
    msg = Message(
        conversation_id=conversation_id,
        author_id=author_id,
        content=content,
        type=message_type.value,
        model_used=model_used,
        image_url=image_url,
        created_at=now,
    )
    db.add(msg)
    db.query(Conversation).filter(Conversation.id == conversation_id).update(
        {"updated_at": now, "last_active": now},
        synchronize_session=False,
    )
    db.commit()
    db.refresh(msg)
    return msg


def rename_conversation(db: Session, conv: Conversation, title: str) -> Conversation:
    now = utcnow()
    conv.title = title
    conv.updated_at = now
    conv.last_active = now
    db.commit()
    db.refresh(conv)
    return conv


def set_archived(db: Session, conv: Conversation, archived: bool) -> Conversation:
    now = utcnow()
    conv.archived = archived
    conv.updated_at = now
    conv.last_active = now
    db.commit()
    db.refresh(conv)
    return conv


def delete_conversation(db: Session, conv: Conversation) -> None:
    """Delete messages first, then the conversation row."""
    db.query(Message).filter(Message.conversation_id == conv.id).delete(synchronize_session=False)
    db.delete(conv)
    db.commit()


class ChatRepository:
    """Thin wrapper for dependency injection; delegates to module functions."""

    @staticmethod
    def create_conversation(
        db: Session,
        user_id: str,
        title: str | None,
        *,
        split_from_id: str | None = None,
        now: datetime | None = None,
    ) -> Conversation:
        return create_conversation(db, user_id, title, split_from_id=split_from_id, now=now)

    @staticmethod
    def get_conversation(db: Session, user_id: str, conversation_id: str) -> Conversation | None:
        return get_conversation(db, user_id, conversation_id)

    @staticmethod
    def find_active_successor(
        db: Session, user_id: str, conversation_id: str, since: datetime
    ) -> Conversation | None:
        return find_active_successor(db, user_id, conversation_id, since)

    @staticmethod
    def get_messages(db: Session, conversation_id: str) -> list[Message]:
        return get_messages(db, conversation_id)

    @staticmethod
    def save_message(
        db: Session,
        conversation_id: str,
        author_id: str,
        content: str,
        *,
        model_used: str | None = None,
        now: datetime | None = None,
    ) -> Message:
        return save_message(db, conversation_id, author_id, content, model_used=model_used, now=now)
