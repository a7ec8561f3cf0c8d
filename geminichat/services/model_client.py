"""
Gemini client for chat turns. Uses google-genai with either an API key or Vertex AI.
Failures surface as ModelError; rate limiting / quota exhaustion as ModelRateLimitedError.
"""
import logging
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Protocol

from geminichat.config import Settings, get_settings
from geminichat.services.conversation_window import ChatTurn

logger = logging.getLogger(__name__)

# Fallback classification for errors that carry no status code
RATE_LIMIT_MARKERS = ("rate limit", "429", "quota")

SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


class ModelError(Exception):
    """Model call failed; not worth retrying."""


class ModelRateLimitedError(ModelError):
    """Model call was rate limited or hit its quota; safe to retry after a delay."""


class ModelClient(Protocol):
    model_name: str

    def generate(self, text: str) -> str: ...

    def chat(self, history: Sequence[ChatTurn], text: str) -> str: ...


def is_rate_limit_error(exc: BaseException) -> bool:
    if getattr(exc, "code", None) == 429:
        return True
    status = getattr(exc, "status", None)
    if isinstance(status, str) and status.upper() == "RESOURCE_EXHAUSTED":
        return True
    message = str(exc).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


class GeminiClient:
    """Explicitly constructed handle; the underlying genai.Client is created on first use."""

    def __init__(self, settings: Settings | None = None, client: Any = None):
        self._settings = settings or get_settings()
        self._client = client

    @property
    def model_name(self) -> str:
        return self._settings.gemini_model

    def _get_client(self):
        if self._client is not None:
            return self._client
        try:
            from google import genai
        except ImportError as e:
            raise ModelError("Google GenAI not installed. pip install google-genai google-auth") from e

        settings = self._settings
        if settings.gemini_api_key:
            self._client = genai.Client(api_key=settings.gemini_api_key)
            return self._client

        if not settings.vertex_project_id:
            raise ModelError("Neither gemini_api_key nor vertex_project_id is configured")

        credentials = None
        if settings.vertex_credentials_path:
            from google.oauth2 import service_account

            path = Path(settings.vertex_credentials_path)
            if path.is_file():
                credentials = service_account.Credentials.from_service_account_file(
                    str(path),
                    scopes=["https://www.googleapis.com/auth/cloud-platform"],
                )

        self._client = genai.Client(
            vertexai=True,
            project=settings.vertex_project_id,
            location=settings.vertex_location,
            credentials=credentials,
        )
        return self._client

    def _config(self):
        from google.genai import types

        settings = self._settings
        return types.GenerateContentConfig(
            temperature=settings.gemini_temperature,
            top_k=settings.gemini_top_k,
            top_p=settings.gemini_top_p,
            max_output_tokens=settings.gemini_max_output_tokens,
            safety_settings=[
                types.SafetySetting(category=category, threshold="BLOCK_MEDIUM_AND_ABOVE")
                for category in SAFETY_CATEGORIES
            ],
        )

    def generate(self, text: str) -> str:
        """Single-turn prompt."""
        return self._call(
            lambda client: client.models.generate_content(
                model=self.model_name,
                contents=text,
                config=self._config(),
            )
        )

    def chat(self, history: Sequence[ChatTurn], text: str) -> str:
        """Multi-turn chat seeded with `history` (oldest-first), then `text` as the next user turn."""
        from google.genai import types

        contents = []
        for turn in history:
            content = (turn.content or "").strip()
            if not content:
                continue
            role = "user" if turn.role == "user" else "model"
            contents.append(types.Content(role=role, parts=[types.Part.from_text(text=content)]))

        def _send(client):
            session = client.chats.create(
                model=self.model_name,
                config=self._config(),
                history=contents,
            )
            return session.send_message(text)

        return self._call(_send)

    def _call(self, fn: Callable[[Any], Any]) -> str:
        try:
            response = fn(self._get_client())
        except ModelError:
            raise
        except Exception as e:
            if is_rate_limit_error(e):
                raise ModelRateLimitedError(str(e)) from e
            raise ModelError(str(e)) from e
        return _response_text(response)


def _response_text(response: Any) -> str:
    if not response or not response.candidates:
        raise ModelError("Empty response from model")
    candidate = response.candidates[0]
    if not candidate.content or not candidate.content.parts:
        raise ModelError("No text in model response")
    return getattr(response, "text", None) or candidate.content.parts[0].text
