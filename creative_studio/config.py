from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load env values for components that read os.environ directly (e.g., the LLM client).
_project_root = Path(__file__).resolve().parents[1]
load_dotenv(_project_root / ".env", override=False)
# Optional local override (gitignored) used in dev to keep provider keys out of the tracked env example.
load_dotenv(_project_root / ".env.local", override=False)


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"

    # Comma-separated list of allowed browser origins.
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"

    GENERATION_SERVICE_BASE_URL: str | None = None
    GENERATION_SERVICE_API_KEY: str | None = None
    GENERATION_SERVICE_TIMEOUT_SECONDS: float = 30.0

    # Video renders take minutes; 30 polls x 5s covers the provider's typical turnaround.
    GENERATION_POLL_INTERVAL_SECONDS: float = 5.0
    GENERATION_POLL_MAX_ATTEMPTS: int = 30
    GENERATION_CANCEL_TIMEOUT_SECONDS: float = 5.0
    # Task creation retries transient failures with exponential backoff.
    GENERATION_SUBMIT_MAX_ATTEMPTS: int = 3
    GENERATION_SUBMIT_BACKOFF_SECONDS: float = 1.0

    VIDEO_DEFAULT_MODEL: str = "gen3a_turbo"

    REASONING_MODEL: str = "gpt-4o"
    REASONING_TEMPERATURE: float = 0.7
    REASONING_DEFAULT_MAX_STEPS: int = 5
    REASONING_MAX_STEPS_LIMIT: int = 10

    COPY_GENERATION_MODEL: str = "gpt-4o"
    COPY_GENERATION_TEMPERATURE: float = 0.8

    LANGFUSE_ENABLED: bool = False
    LANGFUSE_PUBLIC_KEY: str | None = None
    LANGFUSE_SECRET_KEY: str | None = None
    LANGFUSE_HOST: str = "https://cloud.langfuse.com"
    LANGFUSE_BASE_URL: str | None = None
    LANGFUSE_ENVIRONMENT: str | None = None
    LANGFUSE_RELEASE: str | None = None
    LANGFUSE_SAMPLE_RATE: float = 1.0
    LANGFUSE_DEBUG: bool = False
    LANGFUSE_REQUIRED: bool = False
    LANGFUSE_AUTH_CHECK: bool = True
    LANGFUSE_TIMEOUT_SECONDS: int = 20

    @field_validator(
        "GENERATION_POLL_MAX_ATTEMPTS",
        "GENERATION_SUBMIT_MAX_ATTEMPTS",
        "REASONING_DEFAULT_MAX_STEPS",
        "REASONING_MAX_STEPS_LIMIT",
    )
    @classmethod
    def require_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator(
        "GENERATION_POLL_INTERVAL_SECONDS",
        "GENERATION_CANCEL_TIMEOUT_SECONDS",
        "GENERATION_SUBMIT_BACKOFF_SECONDS",
    )
    @classmethod
    def require_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @property
    def cors_origins(self) -> list[str]:
        return sorted({origin.strip() for origin in self.BACKEND_CORS_ORIGINS.split(",") if origin.strip()})

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
