from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load env values for components that read os.environ directly.
_project_root = Path(__file__).resolve().parents[1]
load_dotenv(_project_root / ".env", override=False)


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"

    DATABASE_URL: str = "sqlite:///./campaign_engine.db"
    BACKEND_CORS_ORIGINS: str = ""

    META_GRAPH_API_VERSION: str = "v21.0"
    META_GRAPH_API_BASE_URL: str = "https://graph.facebook.com"
    # System user token takes precedence over the operator's own user token.
    META_SYSTEM_USER_TOKEN: str | None = None
    META_REQUEST_TIMEOUT_SECONDS: float = 30.0
    META_DEFAULT_CAMPAIGN_STATUS: str = "PAUSED"

    DEFAULT_PHONE_COUNTRY_CODE: str = "91"
    DEFAULT_CURRENCY: str = "INR"
    DEFAULT_TARGET_COUNTRY: str = "IN"

    ORGANIC_PUBLISH_POLL_ATTEMPTS: int = 10
    ORGANIC_PUBLISH_POLL_DELAY_SECONDS: float = 3.0
    IMAGE_URL_VALIDATION_TIMEOUT_SECONDS: float = 5.0

    OPENAI_API_KEY: str | None = None
    ANTHROPIC_API_KEY: str | None = None
    GEMINI_API_KEY: str | None = None
    CAPTION_MODEL: str = "gemini-1.5-flash"
    IMAGE_MODEL: str = "dall-e-3"
    IMAGE_SIZE: str = "1024x1024"
    LLM_REQUEST_TIMEOUT_SECONDS: int = 120

    CONTEXT_MIN_TEXT_LENGTH: int = 5

    @field_validator("DEFAULT_PHONE_COUNTRY_CODE", mode="before")
    @classmethod
    def strip_country_code(cls, value: str | int) -> str:
        digits = "".join(ch for ch in str(value) if ch.isdigit())
        if not digits:
            raise ValueError("DEFAULT_PHONE_COUNTRY_CODE must contain digits")
        return digits

    @property
    def cors_origins(self) -> list[str]:
        return sorted({origin.strip() for origin in self.BACKEND_CORS_ORIGINS.split(",") if origin.strip()})

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
