from dataclasses import dataclass, field, replace
from datetime import date
import os

from dotenv import load_dotenv


load_dotenv()

DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-3-opus-20240229",
}

DEFAULT_COST_PER_IMAGE = {
    "openai": 0.01,
    "anthropic": 0.015,
}


@dataclass(frozen=True)
class Settings:
    app_name: str
    database_url: str
    log_level: str
    input_dir: str
    output_dir: str
    export_format: str
    ai_provider: str
    ai_model: str | None
    ai_api_key: str | None
    ai_endpoint: str | None
    request_interval_seconds: float
    max_request_retries: int
    retry_backoff_seconds: float
    week_epoch: date
    cost_per_image: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_COST_PER_IMAGE))

    @property
    def model(self) -> str:
        return self.ai_model or DEFAULT_MODELS.get(self.ai_provider, DEFAULT_MODELS["openai"])

    def with_overrides(self, **changes: object) -> "Settings":
        return replace(self, **{key: value for key, value in changes.items() if value is not None})


def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "rankflow"),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./rankflow.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        input_dir=os.getenv("INPUT_DIR", "./screenshots"),
        output_dir=os.getenv("OUTPUT_DIR", "./results"),
        export_format=os.getenv("EXPORT_FORMAT", "json"),
        ai_provider=os.getenv("AI_PROVIDER", "openai").lower(),
        ai_model=os.getenv("AI_MODEL") or None,
        ai_api_key=os.getenv("AI_API_KEY") or None,
        ai_endpoint=os.getenv("AI_ENDPOINT") or None,
        request_interval_seconds=float(os.getenv("REQUEST_INTERVAL_SECONDS", "1.0")),
        max_request_retries=int(os.getenv("MAX_REQUEST_RETRIES", "2")),
        retry_backoff_seconds=float(os.getenv("RETRY_BACKOFF_SECONDS", "1")),
        week_epoch=date.fromisoformat(os.getenv("WEEK_EPOCH", "2024-01-01")),
    )
