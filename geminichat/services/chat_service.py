"""
Send pipeline: one user turn from request to stored reply.

ResolvingUser -> ResolvingConversation -> PersistingUserMessage
-> CallingModel (up to max_attempts on rate limiting) -> PersistingModelMessage.

- The user message is stored before the model is called and is kept if the call fails.
- Store and model failures are logged here and re-raised as core.errors kinds.
- Blocking store/model calls run in the default executor; retry sleeps hold no lock.
"""
import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from geminichat.config import get_settings
from geminichat.core.errors import (
    ChatError,
    InternalError,
    NotFoundError,
    UpstreamFatalError,
    UpstreamTransientError,
)
from geminichat.models.message import MODEL_AUTHOR_ID
from geminichat.repositories import user_repository
from geminichat.repositories.chat_repository import ChatRepository
from geminichat.schemas.user import Principal
from geminichat.services import conversation_window as cw
from geminichat.services.conversation_locks import ConversationLocks
from geminichat.services.model_client import ModelClient, ModelError, ModelRateLimitedError
from geminichat.services.retry import RetriesExhaustedError, RetryPolicy
from geminichat.utils.time import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendResult:
    conversation_id: str
    reply: str


def default_retry_policy() -> RetryPolicy:
    settings = get_settings()
    return RetryPolicy(
        max_attempts=settings.model_max_attempts,
        base_delay=settings.model_retry_base_delay_seconds,
        retry_on=(ModelRateLimitedError,),
    )


class ChatService:
    """Orchestrates one send. Every collaborator is passed in so tests can substitute it."""

    def __init__(
        self,
        model_client: ModelClient,
        repository: ChatRepository | None = None,
        retry_policy: RetryPolicy | None = None,
        locks=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        settings = get_settings()
        self._model = model_client
        self._repo = repository or ChatRepository()
        self._retry = retry_policy or default_retry_policy()
        self._locks = locks if locks is not None else ConversationLocks()
        self._clock = clock
        self._window = timedelta(minutes=settings.conversation_window_minutes)
        self._title_max_length = settings.conversation_title_max_length

    async def _run(self, fn, *args, **kwargs):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, lambda: fn(*args, **kwargs))

    async def send_message(
        self,
        db: Session,
        principal: Principal,
        conversation_ref: str,
        text: str,
    ) -> SendResult:
        try:
            user = await self._run(user_repository.get_or_create, db, principal)
            ref = cw.parse_conversation_ref(conversation_ref)

            if ref.is_new:
                now = self._clock()
                conversation_id, history = await self._start_conversation(db, user.id, text, now)
                await self._run(self._repo.save_message, db, conversation_id, user.id, text, now=now)
            else:
                # Split decision and user-message write are serialized per base conversation
                async with self._locks.hold(ref.base_id):
                    now = self._clock()
                    conversation_id, history = await self._resolve_conversation(
                        db, user.id, ref, text, now
                    )
                    await self._run(self._repo.save_message, db, conversation_id, user.id, text, now=now)

            reply = await self._call_model(history, text)

            await self._run(
                self._repo.save_message,
                db,
                conversation_id,
                MODEL_AUTHOR_ID,
                reply,
                model_used=self._model.model_name,
                now=self._clock(),
            )
        except ChatError:
            raise
        except SQLAlchemyError as e:
            logger.exception("Store failure while sending message")
            db.rollback()
            raise UpstreamFatalError("Failed to save your message. Please try again.") from e
        except Exception as e:
            logger.exception("Unexpected error in send_message")
            raise InternalError() from e

        return SendResult(conversation_id=conversation_id, reply=reply)

    async def _start_conversation(
        self, db: Session, user_id: str, text: str, now: datetime, *, split_from_id: str | None = None
    ) -> tuple[str, list[cw.ChatTurn]]:
        title = cw.conversation_title(text, self._title_max_length)
        conv = await self._run(
            self._repo.create_conversation, db, user_id, title, split_from_id=split_from_id, now=now
        )
        logger.info("Started conversation %s for user %s (split_from=%s)", conv.id, user_id, split_from_id)
        return conv.id, []

    async def _resolve_conversation(
        self, db: Session, user_id: str, ref: cw.ConversationRef, text: str, now: datetime
    ) -> tuple[str, list[cw.ChatTurn]]:
        conv = await self._run(self._repo.get_conversation, db, user_id, ref.base_id)
        if conv is None:
            raise NotFoundError("Conversation not found")

        messages = await self._run(self._repo.get_messages, db, conv.id)
        decision = cw.decide(ref, messages, user_id, now, self._window)
        if not decision.create_new:
            return decision.conversation_id, list(decision.history)

        # A split already made from this conversation that is still active takes the message
        successor = await self._run(
            self._repo.find_active_successor, db, user_id, conv.id, now - self._window
        )
        if successor is not None:
            logger.info("Continuing split %s of conversation %s", successor.id, conv.id)
            successor_messages = await self._run(self._repo.get_messages, db, successor.id)
            context = cw.relevant_history(successor_messages, now, self._window)
            return successor.id, cw.to_chat_turns(context, user_id)

        logger.info("Conversation %s idle past the window; splitting", conv.id)
        return await self._start_conversation(db, user_id, text, now, split_from_id=conv.id)

    async def _call_model(self, history: list[cw.ChatTurn], text: str) -> str:
        async def attempt() -> str:
            if not history:
                return await self._run(self._model.generate, text)
            return await self._run(self._model.chat, history, text)

        try:
            return await self._retry.run(attempt, label="Gemini call")
        except RetriesExhaustedError as e:
            logger.error("Gemini call gave up after %d attempts: %s", e.attempts, e.last_error)
            raise UpstreamTransientError() from (e.last_error or e)
        except ModelError as e:
            logger.exception("Gemini call failed")
            raise UpstreamFatalError() from e
