from decimal import Decimal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings, read from SPLITSMART_* environment variables or .env."""

    model_config = SettingsConfigDict(
        env_prefix="SPLITSMART_",
        env_file=".env",
        extra="ignore",
    )

    anthropic_api_key: str | None = Field(
        None,
        validation_alias=AliasChoices(
            "SPLITSMART_ANTHROPIC_API_KEY", "ANTHROPIC_API_KEY"
        ),
    )
    model: str = "claude-haiku-4-5"
    max_tokens: int = Field(4096, gt=0)
    temperature: float = Field(0.0, ge=0.0, le=1.0)
    # seconds; applies to each extraction or interpretation call
    request_timeout: float = Field(60.0, gt=0)
    total_tolerance: Decimal = Field(Decimal("0.01"), ge=0)
    log_level: str = "WARNING"
    prompts_dir: str | None = None
