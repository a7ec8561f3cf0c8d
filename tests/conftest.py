import os

# Settings are cached on first import; pin the test configuration before that happens
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_ALGORITHM"] = "HS256"
os.environ["AUTH_SECRET_KEY"] = "test-secret"
os.environ["AUTH0_CLIENT_ID"] = ""
os.environ["AUTH0_AUDIENCE"] = ""
os.environ["REDIS_URL"] = ""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from geminichat.database import Base, get_db
from geminichat.main import app
from geminichat.models import Conversation, Message, User
from geminichat.routers.chat import get_chat_service
from geminichat.services.chat_service import ChatService
from geminichat.services.conversation_locks import ConversationLocks
from geminichat.services.model_client import ModelRateLimitedError
from geminichat.services.retry import RetryPolicy
from geminichat.utils.time import utcnow


class FakeModelClient:
    """Records every call. `errors` are raised one per call, then `reply` is returned."""

    model_name = "gemini-test"

    def __init__(self, reply: str = "Hi! How can I help?", errors=None, always=None):
        self.reply = reply
        self.errors = list(errors or [])
        self.always = always
        self.calls = []

    def _respond(self, kind, history, text):
        self.calls.append((kind, list(history), text))
        if self.always is not None:
            raise self.always
        if self.errors:
            raise self.errors.pop(0)
        return self.reply

    def generate(self, text):
        return self._respond("generate", [], text)

    def chat(self, history, text):
        return self._respond("chat", history, text)


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_token(sub: str, email: str = "", name: str | None = None, minutes: int = 60) -> str:
    payload = {
        "sub": sub,
        "email": email or f"{sub.split('|')[-1]}@example.com",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes),
    }
    if name:
        payload["name"] = name
    return jwt.encode(payload, "test-secret", algorithm="HS256")


def auth_headers(sub: str) -> dict:
    return {"Authorization": f"Bearer {make_token(sub)}"}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def model():
    return FakeModelClient()


@pytest.fixture
def sleeps():
    return RecordingSleep()


@pytest.fixture
def retry_policy(sleeps):
    return RetryPolicy(max_attempts=3, base_delay=1.0, retry_on=(ModelRateLimitedError,), sleep=sleeps)


@pytest.fixture
def service(model, retry_policy):
    return ChatService(model_client=model, retry_policy=retry_policy, locks=ConversationLocks())


@pytest.fixture
def client(db, model, retry_policy):
    def _get_db():
        yield db

    def _get_chat_service():
        return ChatService(model_client=model, retry_policy=retry_policy, locks=ConversationLocks())

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_chat_service] = _get_chat_service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---- seed helpers ----


def seed_user(db, sub: str = "auth0|alice", email: str = "alice@example.com") -> User:
    user = User(auth0_id=sub, email=email, name=sub.split("|")[-1].title())
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def seed_conversation(db, user: User, title: str = "Old topic", archived: bool = False) -> Conversation:
    conv = Conversation(user_id=user.id, title=title, archived=archived)
    db.add(conv)
    db.commit()
    db.refresh(conv)
    return conv


def seed_message(db, conv: Conversation, author_id: str, content: str, minutes_ago: float) -> Message:
    msg = Message(
        conversation_id=conv.id,
        author_id=author_id,
        content=content,
        created_at=utcnow() - timedelta(minutes=minutes_ago),
    )
    db.add(msg)
    db.commit()
    db.refresh(msg)
    return msg
