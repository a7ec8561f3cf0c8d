"""
Conversation windowing: decide whether an inbound message continues a stored
conversation or starts a new one, and which stored messages are relevant
context for the model call.

A window is a derived grouping of messages no more than WINDOW apart. It is
never stored; clients address one as "<conversationId>_<epochMillis>".
Everything here is pure: callers load history and persist results.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol, Sequence

from geminichat.core.errors import InputValidationError
from geminichat.schemas.chat import NEW_CONVERSATION
from geminichat.utils.time import from_epoch_millis, to_epoch_millis

WINDOW = timedelta(minutes=5)
TITLE_MAX_LENGTH = 50
FALLBACK_TITLE = "New Chat"
SPLIT_SEPARATOR = "_"


class TimedMessage(Protocol):
    author_id: str
    content: str
    created_at: datetime


@dataclass(frozen=True)
class ConversationRef:
    """Parsed conversation reference from the client."""
    base_id: str | None  # None for the "new" sentinel
    split_at: datetime | None = None

    @property
    def is_new(self) -> bool:
        return self.base_id is None


@dataclass(frozen=True)
class ChatTurn:
    role: str  # "user" | "assistant"
    content: str


@dataclass(frozen=True)
class WindowDecision:
    """Outcome for one send: continue `conversation_id`, or create a new conversation."""
    create_new: bool
    conversation_id: str | None
    history: tuple = ()


@dataclass(frozen=True)
class ConversationWindow:
    conversation_id: str
    messages: tuple

    @property
    def started_at(self) -> datetime:
        return self.messages[0].created_at

    @property
    def ended_at(self) -> datetime:
        return self.messages[-1].created_at

    @property
    def id(self) -> str:
        return encode_window_id(self.conversation_id, self.started_at)


def parse_conversation_ref(ref: str, *, strict: bool = False) -> ConversationRef:
    """
    "new" -> new-conversation sentinel. "<id>_<millis>" -> base id + split marker.
    A malformed marker is dropped, or rejected when strict=True.
    """
    ref = (ref or "").strip()
    if not ref or ref == NEW_CONVERSATION:
        return ConversationRef(base_id=None)
    base_id, sep, suffix = ref.partition(SPLIT_SEPARATOR)
    if not base_id:
        raise InputValidationError("Invalid conversation id")
    if not sep:
        return ConversationRef(base_id=base_id)
    try:
        split_at = from_epoch_millis(int(suffix))
    except (ValueError, OverflowError, OSError):
        if strict:
            raise InputValidationError("Invalid conversation window id")
        return ConversationRef(base_id=base_id)
    return ConversationRef(base_id=base_id, split_at=split_at)


def encode_window_id(conversation_id: str, split_at: datetime) -> str:
    return f"{conversation_id}{SPLIT_SEPARATOR}{to_epoch_millis(split_at)}"


def is_within_window(a: datetime, b: datetime, window: timedelta = WINDOW) -> bool:
    return abs(a - b) <= window


def conversation_title(message: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    """Title for a conversation started by `message`."""
    return message[:max_length] or FALLBACK_TITLE


def should_split(history: Sequence[TimedMessage], now: datetime, window: timedelta = WINDOW) -> bool:
    """True when the most recent stored message is more than `window` before `now`."""
    if not history:
        return False
    return not is_within_window(now, history[-1].created_at, window)


def relevant_history(
    history: Sequence[TimedMessage], now: datetime, window: timedelta = WINDOW
) -> list:
    """Messages within `window` of `now` (not of each other)."""
    return [m for m in history if is_within_window(m.created_at, now, window)]


def to_chat_turns(messages: Sequence[TimedMessage], user_id: str) -> list[ChatTurn]:
    return [
        ChatTurn(role="user" if m.author_id == user_id else "assistant", content=m.content)
        for m in messages
    ]


def decide(
    ref: ConversationRef,
    history: Sequence[TimedMessage],
    user_id: str,
    now: datetime,
    window: timedelta = WINDOW,
) -> WindowDecision:
    """
    Continuation vs. split for one inbound message.
    `history` is the base conversation's full, time-ordered message list.
    """
    if ref.is_new or should_split(history, now, window):
        return WindowDecision(create_new=True, conversation_id=None)
    context = relevant_history(history, now, window)
    return WindowDecision(
        create_new=False,
        conversation_id=ref.base_id,
        history=tuple(to_chat_turns(context, user_id)),
    )


def group_into_windows(
    conversation_id: str, messages: Sequence[TimedMessage], window: timedelta = WINDOW
) -> list[ConversationWindow]:
    """Split ordered messages wherever two neighbours are more than `window` apart."""
    windows: list[ConversationWindow] = []
    current: list = []
    for m in messages:
        if current and not is_within_window(m.created_at, current[-1].created_at, window):
            windows.append(ConversationWindow(conversation_id, tuple(current)))
            current = []
        current.append(m)
    if current:
        windows.append(ConversationWindow(conversation_id, tuple(current)))
    return windows


def messages_in_window(
    messages: Sequence[TimedMessage], split_at: datetime, window: timedelta = WINDOW
) -> list:
    """Messages within `window` of a split marker."""
    return [m for m in messages if is_within_window(m.created_at, split_at, window)]
