from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./chat.db"

    # Frontend URL for CORS and the post-login redirect
    frontend_url: str = "http://localhost:3000"

    # Auth0 (OIDC identity provider)
    auth0_domain: str = ""
    auth0_client_id: str = ""
    auth0_client_secret: str = ""
    auth0_audience: str = ""
    auth0_redirect_uri: str = "http://localhost:8000/api/auth/callback"

    # Bearer token verification: HS256 uses auth_secret_key, RS256 uses the Auth0 JWKS
    auth_algorithm: str = "HS256"
    auth_secret_key: str = "your-secret-key-change-in-production"

    # Gemini: API key takes precedence; otherwise Vertex AI
    gemini_api_key: str = ""
    vertex_project_id: str = ""
    vertex_location: str = "us-central1"
    vertex_credentials_path: str = ""  # path to service account JSON; empty = use ADC
    gemini_model: str = "gemini-1.5-flash-latest"
    gemini_temperature: float = 0.7
    gemini_top_k: int = 40
    gemini_top_p: float = 0.95
    gemini_max_output_tokens: int = 1024

    # Send retry (rate limit / quota): 3 attempts, 1s then 2s
    model_max_attempts: int = 3
    model_retry_base_delay_seconds: float = 1.0

    # Conversation windowing
    conversation_window_minutes: int = 5
    conversation_title_max_length: int = 50

    # Redis (optional; empty = in-process conversation locks)
    redis_url: str = ""  # e.g. redis://localhost:6379/0
    conversation_lock_timeout_seconds: int = 30

    log_level: str = "INFO"

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
