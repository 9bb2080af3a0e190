"""Application settings, CORS configuration and plan limits."""

import json
import os
from functools import lru_cache

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PlanLimits(BaseModel):
    """Resource ceilings for a single plan tier. ``None`` means unlimited."""

    api_calls: int | None
    pages: int | None
    pages_per_chapter: int | None


UNLIMITED_TIER = "unlimited"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "Airabook"
    ENVIRONMENT: str = "development"  # development | production | test

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    # CORS
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    ALLOW_CREDENTIALS: bool = True

    # AI / LLM provider configuration
    LLM_PROVIDER: str = "gemini"  # gemini | azure_openai
    GEMINI_API_KEY: str | None = None
    AZURE_OPENAI_ENDPOINT: str | None = None
    AZURE_OPENAI_API_KEY: str | None = None
    AZURE_OPENAI_API_VERSION: str | None = None
    CHAT_MODEL: str = "gemini-2.5-flash"
    TEXT_MODEL: str = "gemini-2.5-flash-lite"
    EMBEDDING_MODEL: str = "gemini-embedding-001"

    # Retrieval / reranking
    RAG_CANDIDATE_COUNT: int = 10
    RERANK_MIN_SCORE: float = 3.0
    CLASSIFIER_ANSWER_CHARS: int = 1600

    # Usage ledger
    API_CALL_WINDOW_DAYS: int = 30
    PLAN_FREE_API_CALLS: int = 50
    PLAN_FREE_PAGES: int = 150
    PLAN_FREE_PAGES_PER_CHAPTER: int = 25
    PLAN_EARLY_API_CALLS: int = 70
    PLAN_EARLY_PAGES: int = 200
    PLAN_EARLY_PAGES_PER_CHAPTER: int = 40
    # Accept CSV from env; user ids that bypass every counter
    UNLIMITED_USERS: list[str] | str = []

    @field_validator("CORS_ORIGINS", "UNLIMITED_USERS", mode="before")
    @classmethod
    def assemble_str_list(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for list settings."""
        if isinstance(v, list):
            return [str(i).strip() for i in v]
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        "Value must be a CSV list or JSON array string"
                    ) from e
                if not isinstance(parsed, list):
                    raise ValueError("JSON value must be a list")
                return [str(i).strip() for i in parsed]
            # CSV fallback
            return [i.strip() for i in s.split(",") if i.strip()]
        raise ValueError("Invalid list setting type; expected str or list[str]")

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Ensure wildcard origins are not used when credentials are allowed."""
        if isinstance(self.CORS_ORIGINS, str):
            self.CORS_ORIGINS = self.assemble_str_list(self.CORS_ORIGINS)
        if isinstance(self.UNLIMITED_USERS, str):
            self.UNLIMITED_USERS = self.assemble_str_list(self.UNLIMITED_USERS)
        if self.ALLOW_CREDENTIALS and any(
            o.strip() == "*" for o in (self.CORS_ORIGINS or [])
        ):
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but "
                "CORS_ORIGINS contains '*'. Use explicit origins when credentials "
                "are allowed."
            )
        return self

    def plan_limits(self, tier: str | None) -> PlanLimits:
        """Return the limits for ``tier``; unknown tiers fall back to free."""
        if tier == UNLIMITED_TIER:
            return PlanLimits(api_calls=None, pages=None, pages_per_chapter=None)
        if tier == "early":
            return PlanLimits(
                api_calls=self.PLAN_EARLY_API_CALLS,
                pages=self.PLAN_EARLY_PAGES,
                pages_per_chapter=self.PLAN_EARLY_PAGES_PER_CHAPTER,
            )
        return PlanLimits(
            api_calls=self.PLAN_FREE_API_CALLS,
            pages=self.PLAN_FREE_PAGES,
            pages_per_chapter=self.PLAN_FREE_PAGES_PER_CHAPTER,
        )


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""
    if env_file and not os.path.exists(env_file):  # pragma: no cover
        # Only provide a dev fallback in non-production environments
        if env == "development":
            os.environ.setdefault("SECRET_KEY", "dev-test-secret")
    if env == "production":
        sec = os.getenv("SECRET_KEY")
        if not sec or sec == "dev-test-secret":
            raise RuntimeError("SECRET_KEY must be set to a secure value in production")

    # `_env_file` is a runtime-only kwarg of pydantic-settings.
    return Settings(_env_file=env_file)  # type: ignore[call-arg]
