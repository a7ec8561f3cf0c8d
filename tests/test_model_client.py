from types import SimpleNamespace

import pytest

from geminichat.config import Settings
from geminichat.services.conversation_window import ChatTurn
from geminichat.services.model_client import (
    GeminiClient,
    ModelError,
    ModelRateLimitedError,
    is_rate_limit_error,
)


class VendorError(Exception):
    def __init__(self, message, code=None, status=None):
        super().__init__(message)
        self.code = code
        self.status = status


def text_response(text):
    part = SimpleNamespace(text=text)
    candidate = SimpleNamespace(content=SimpleNamespace(parts=[part]))
    return SimpleNamespace(candidates=[candidate], text=text)


class FakeModels:
    def __init__(self, outcome):
        self.outcome = outcome
        self.requests = []

    def generate_content(self, model, contents, config):
        self.requests.append({"model": model, "contents": contents, "config": config})
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class FakeChat:
    def __init__(self, outcome):
        self.outcome = outcome
        self.sent = []

    def send_message(self, text):
        self.sent.append(text)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class FakeChats:
    def __init__(self, outcome):
        self.outcome = outcome
        self.created = []

    def create(self, model, config, history):
        chat = FakeChat(self.outcome)
        self.created.append({"model": model, "history": history, "chat": chat})
        return chat


def fake_genai(outcome):
    return SimpleNamespace(models=FakeModels(outcome), chats=FakeChats(outcome))


@pytest.fixture
def settings():
    return Settings(gemini_model="gemini-test", gemini_api_key="k")


@pytest.mark.parametrize(
    "error",
    [
        VendorError("Too Many Requests", code=429),
        VendorError("exhausted", status="RESOURCE_EXHAUSTED"),
        VendorError("You exceeded your current quota"),
        VendorError("rate limit reached for requests"),
        VendorError("HTTP 429"),
    ],
)
def test_rate_limit_classification(error):
    assert is_rate_limit_error(error)


@pytest.mark.parametrize(
    "error",
    [
        VendorError("Invalid argument", code=400, status="INVALID_ARGUMENT"),
        VendorError("internal", code=500),
        ValueError("boom"),
    ],
)
def test_other_errors_are_not_rate_limits(error):
    assert not is_rate_limit_error(error)


def test_generate_sends_single_prompt(settings):
    genai = fake_genai(text_response("Hello there"))
    client = GeminiClient(settings, client=genai)

    assert client.generate("Hello") == "Hello there"
    request = genai.models.requests[0]
    assert request["model"] == "gemini-test"
    assert request["contents"] == "Hello"
    assert request["config"].max_output_tokens == settings.gemini_max_output_tokens


def test_chat_maps_roles_and_skips_blank_turns(settings):
    genai = fake_genai(text_response("Sure"))
    client = GeminiClient(settings, client=genai)
    history = [ChatTurn("user", "hi"), ChatTurn("assistant", "hello"), ChatTurn("user", "  ")]

    assert client.chat(history, "more please") == "Sure"
    created = genai.chats.created[0]
    assert [c.role for c in created["history"]] == ["user", "model"]
    assert [c.parts[0].text for c in created["history"]] == ["hi", "hello"]
    assert created["chat"].sent == ["more please"]


def test_rate_limit_becomes_typed_error(settings):
    client = GeminiClient(settings, client=fake_genai(VendorError("quota exceeded", code=429)))
    with pytest.raises(ModelRateLimitedError):
        client.generate("Hello")


def test_other_failure_becomes_model_error(settings):
    client = GeminiClient(settings, client=fake_genai(VendorError("bad", code=400)))
    with pytest.raises(ModelError) as exc_info:
        client.chat([ChatTurn("user", "hi")], "Hello")
    assert not isinstance(exc_info.value, ModelRateLimitedError)


def test_empty_response_is_model_error(settings):
    client = GeminiClient(settings, client=fake_genai(SimpleNamespace(candidates=[], text=None)))
    with pytest.raises(ModelError):
        client.generate("Hello")


def test_unconfigured_client_is_model_error():
    client = GeminiClient(Settings(gemini_api_key="", vertex_project_id=""))
    with pytest.raises(ModelError):
        client.generate("Hello")


def test_client_construction_failure_is_model_error(settings, monkeypatch):
    def broken_client(self):
        raise ValueError("Could not automatically determine credentials")

    monkeypatch.setattr(GeminiClient, "_get_client", broken_client)
    client = GeminiClient(settings)

    with pytest.raises(ModelError) as exc_info:
        client.generate("Hello")
    assert not isinstance(exc_info.value, ModelRateLimitedError)
    assert isinstance(exc_info.value.__cause__, ValueError)
