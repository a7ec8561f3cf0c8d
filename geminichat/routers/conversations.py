"""
Conversation endpoints. Every lookup is scoped to the current user; another
user's conversation answers 404 exactly like a missing one.
"""
from datetime import timedelta

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from geminichat.auth import get_current_user
from geminichat.config import get_settings
from geminichat.core.errors import InputValidationError, NotFoundError
from geminichat.database import get_db
from geminichat.models.conversation import Conversation
from geminichat.models.user import User
from geminichat.repositories import chat_repository
from geminichat.schemas.chat import (
    ConversationArchive,
    ConversationCreate,
    ConversationOut,
    ConversationRename,
    ConversationSort,
    ConversationStatus,
    ConversationSummary,
    ConversationWindowOut,
    MessageOut,
)
from geminichat.services import conversation_window as cw

router = APIRouter(prefix="/api/conversations", tags=["conversations"])
settings = get_settings()


def _window() -> timedelta:
    return timedelta(minutes=settings.conversation_window_minutes)


def _get_owned(db: Session, user: User, conversation_id: str) -> Conversation:
    conv = chat_repository.get_conversation(db, user.id, conversation_id)
    if not conv:
        raise NotFoundError("Conversation not found")
    return conv


def _clean_title(title: str) -> str:
    title = title.strip()
    if not title:
        raise InputValidationError("Title must not be empty")
    return title


@router.post("", response_model=ConversationOut, status_code=status.HTTP_201_CREATED)
def create_conversation(
    body: ConversationCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return chat_repository.create_conversation(db, user.id, _clean_title(body.title))


@router.get("", response_model=list[ConversationSummary])
def list_conversations(
    q: str | None = None,
    status_filter: ConversationStatus = Query(ConversationStatus.ALL, alias="status"),
    sort: ConversationSort = ConversationSort.NEWEST,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """List own conversations. Optional ?q= search (title or message text), ?status=active|archived|all."""
    rows = chat_repository.list_conversations(
        db, user.id, query=q, status=status_filter, sort=sort
    )
    return [
        ConversationSummary.model_validate(conv).model_copy(update={"message_count": count})
        for conv, count in rows
    ]


@router.get("/{conversation_id}", response_model=ConversationOut)
def get_conversation(
    conversation_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return _get_owned(db, user, conversation_id)


@router.delete("/{conversation_id}")
def delete_conversation(
    conversation_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    conv = _get_owned(db, user, conversation_id)
    chat_repository.delete_conversation(db, conv)
    return {"success": True}


@router.patch("/{conversation_id}/title", response_model=ConversationOut)
def rename_conversation(
    conversation_id: str,
    body: ConversationRename,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    conv = _get_owned(db, user, conversation_id)
    return chat_repository.rename_conversation(db, conv, _clean_title(body.title))


@router.patch("/{conversation_id}/archive", response_model=ConversationOut)
def archive_conversation(
    conversation_id: str,
    body: ConversationArchive,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Archive or unarchive. Repeating the same value is a no-op apart from timestamps."""
    conv = _get_owned(db, user, conversation_id)
    return chat_repository.set_archived(db, conv, body.archived)


@router.get("/{conversation_ref}/messages", response_model=list[MessageOut])
def get_messages(
    conversation_ref: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Messages oldest-first. A window id (<id>_<epochMillis>) returns only the
    messages within the window of that marker.
    """
    ref = cw.parse_conversation_ref(conversation_ref, strict=True)
    if ref.is_new:
        raise NotFoundError("Conversation not found")
    conv = _get_owned(db, user, ref.base_id)
    messages = chat_repository.get_messages(db, conv.id)
    if ref.split_at is not None:
        messages = cw.messages_in_window(messages, ref.split_at, _window())
    return messages


@router.get("/{conversation_id}/windows", response_model=list[ConversationWindowOut])
def list_windows(
    conversation_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Derived windows of a conversation (neighbouring messages within the window of each other)."""
    conv = _get_owned(db, user, conversation_id)
    messages = chat_repository.get_messages(db, conv.id)
    return [
        ConversationWindowOut(
            id=w.id,
            conversation_id=conv.id,
            started_at=w.started_at,
            ended_at=w.ended_at,
            message_count=len(w.messages),
        )
        for w in cw.group_into_windows(conv.id, messages, _window())
    ]
