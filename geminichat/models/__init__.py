from geminichat.models.user import User
from geminichat.models.conversation import Conversation
from geminichat.models.message import Message, MessageType, MODEL_AUTHOR_ID

__all__ = ["User", "Conversation", "Message", "MessageType", "MODEL_AUTHOR_ID"]
