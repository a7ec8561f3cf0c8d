"""
Chat endpoints:
- POST /api/chat/send: send a message to a conversation (or "new"); returns the model reply
"""
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from geminichat.auth import get_current_principal
from geminichat.database import get_db
from geminichat.schemas.chat import SendMessageRequest, SendMessageResponse
from geminichat.schemas.user import Principal
from geminichat.services.chat_service import ChatService
from geminichat.services.model_client import ModelClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


# ---------- Dependencies: clients built in the app lifespan ----------


def get_model_client(request: Request) -> ModelClient:
    return request.app.state.model_client


def get_conversation_locks(request: Request):
    return request.app.state.conversation_locks


def get_chat_service(
    model_client: ModelClient = Depends(get_model_client),
    locks=Depends(get_conversation_locks),
) -> ChatService:
    return ChatService(model_client=model_client, locks=locks)


# ---------- Send ----------


@router.post("/send", response_model=SendMessageResponse)
async def send_message(
    body: SendMessageRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    chat_service: ChatService = Depends(get_chat_service),
):
    """
    Send one message. conversation_id is "new", a conversation id, or a window id.
    The reply may land in a new conversation when the old one has been idle past the window;
    the returned conversation_id is the one the exchange was stored in.
    """
    result = await chat_service.send_message(db, principal, body.conversation_id, body.message)
    return SendMessageResponse(message=result.reply, conversation_id=result.conversation_id)
