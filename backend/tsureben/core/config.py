from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    environment: Literal["development", "staging", "production"] = Field(
        default="development"
    )
    database_url: str = Field(default="sqlite:///./tsureben.db")
    jwt_secret_key: str = Field(...)
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60)
    refresh_token_expire_minutes: int = Field(default=60 * 24 * 14)
    # An expired access token may still identify the user on /pomodoro/finish
    # for this long, so the re-authentication and manual entry paths can run.
    reauth_grace_minutes: int = Field(default=60 * 12)

    timezone: str = Field(default="Asia/Tokyo")
    timer_tick_seconds: float = Field(default=0.2, gt=0)
    finish_lookup_attempts: int = Field(default=3, ge=1)
    min_session_minutes: int = Field(default=1, ge=1)
    max_session_minutes: int = Field(default=1000, ge=1)
    summary_score_tests: list[str] = Field(
        default=["5月河合記述模試", "4月河合塾全統共テ模試"]
    )

    log_level: str = Field(default="INFO")

    cors_origins: list[str] = Field(
        default=[
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
