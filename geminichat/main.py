import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from geminichat.config import get_settings
from geminichat.core.errors import ChatError, chat_error_handler
from geminichat.core.redis import build_conversation_locks, close_redis
from geminichat.routers import auth, chat, conversations, users
from geminichat.services.model_client import GeminiClient

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.model_client = GeminiClient(settings)
    app.state.conversation_locks = await build_conversation_locks()
    try:
        yield
    finally:
        await close_redis()


app = FastAPI(title="Gemini Chat API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(ChatError, chat_error_handler)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(conversations.router)
app.include_router(chat.router)


@app.get("/")
def root():
    return {"message": "Gemini Chat API", "docs": "/docs"}
