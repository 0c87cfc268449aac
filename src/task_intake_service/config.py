"""Application configuration via environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    environment: str = "development"
    debug: bool = False
    service_name: str = "task-intake-service"
    log_level: str = "INFO"

    # CORS
    cors_origins: list[str] = ["*"]

    # Storage
    db_path: Path = Path("task_intake.db")

    # Trust boundary policy
    max_task_name_length: int = 250
    max_original_request_length: int = 2000
    max_input_length: int = 2000  # Characters accepted from a single request
    max_word_count: int = 300
    max_raw_input_length: int = 20000  # Larger requests are rejected outright
    sanitizer_sentinel: str = "[REMOVED]"
    delete_confirmation_timeout_seconds: float = 10.0

    # Completion tiers (a tier is active only when configured)
    requesty_api_key: str = ""
    requesty_base_url: str = "https://router.requesty.ai/v1"
    requesty_model: str = "openai/gpt-4o-mini"
    requesty_timeout_seconds: float = 5.0

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_timeout_seconds: float = 3.0

    # Bedrock - Claude Haiku 4.5 with cross-region inference
    bedrock_enabled: bool = False
    bedrock_model_id: str = "us.anthropic.claude-haiku-4-5-20251001-v1:0"
    bedrock_timeout_seconds: float = 5.0
    aws_region: str = "us-east-1"

    suggestion_timeout_seconds: float = 3.0

    # Email intake
    email_sentinel_enabled: bool = True

    class Config:
        env_prefix = "TASK_INTAKE_"
        case_sensitive = False


settings = Settings()
