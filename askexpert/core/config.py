from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration read from environment variables."""

    app_name: str = Field(default="askexpert")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="%(asctime)s %(levelname)s %(name)s [%(conversation_id)s] %(message)s")

    # Conversation guard and presentation
    expected_tenant_id: str | None = Field(default=None)
    app_base_url: str = Field(default="http://localhost:8000")

    # Runtime values, used when no configuration table overrides them
    welcome_text: str = Field(default="Hi! Ask me a question, or ask an expert if I can't help.")
    knowledge_base_id: str | None = Field(default=None)
    knowledge_base_endpoint_key: str | None = Field(default=None)
    team_id: str | None = Field(default=None)

    # Database configuration
    postgres_dsn: str | None = Field(default=None)

    # Bot connector configuration
    bot_app_id: str | None = Field(default=None)
    bot_app_password: str | None = Field(default=None)
    bot_token_url: str = Field(
        default="https://login.microsoftonline.com/botframework.com/oauth2/v2.0/token"
    )
    bot_token_scope: str = Field(default="https://api.botframework.com/.default")
    bot_service_url: str = Field(default="https://smba.trafficmanager.net/teams/")
    bot_request_timeout: float = Field(default=10.0)

    # Knowledge base configuration
    knowledge_base_backend: str = Field(default="qnamaker")
    knowledge_base_host: str = Field(default="https://localhost/qnamaker")
    knowledge_base_top: int = Field(default=1)
    qdrant_host: str = Field(default="localhost")
    qdrant_port: int = Field(default=6333)
    qdrant_api_key: str | None = Field(default=None)
    qdrant_collection_name: str = Field(default="askexpert-faq")
    qdrant_min_score: float = Field(default=0.5)
    embedding_model_name: str = Field(default="sentence-transformers/all-MiniLM-L6-v2")

    # Observability configuration
    otel_enabled: bool = Field(default=False)
    otel_service_name: str = Field(default="askexpert")
    otel_exporter_otlp_endpoint: str | None = Field(default=None)
    otel_exporter_otlp_headers: str | None = Field(default=None)
    otel_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the application settings."""

    return Settings()
