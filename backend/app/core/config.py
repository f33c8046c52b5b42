# Central place for all configurable settings. We use Pydantic's
# BaseSettings so values can be read from env vars or a .env file.
# This keeps deployment flexible without hardcoding secrets.

from typing import List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Mirrors PartnerTypeEnum; app.models imports this module through app.core.db.
PARTNER_TYPES = frozenset({"location", "referral", "channel", "relationship", "contractor"})


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core DB connection string, like sqlite:///./commissions.db or Postgres URL.
    # Needed by SQLAlchemy to connect to the persistence layer.
    DATABASE_URL: str = "sqlite:///./commissions.db"

    # Toggle SQLAlchemy echo logs. Useful for debugging queries locally.
    DB_ECHO: bool = False

    # Log level for the structured JSON loggers.
    LOG_LEVEL: str = "INFO"

    # Commission ids look like COMM-2025-001. The prefix is configurable
    # so separate deployments can't collide in a shared payout account.
    COMMISSION_ID_PREFIX: str = "COMM"
    COMMISSION_CURRENCY: str = "USD"

    # How often a ledger upsert re-reads and retries after losing an
    # insert race on (partner_id, commission_month).
    LEDGER_UPSERT_MAX_RETRIES: int = Field(default=3, ge=1)

    # When the payout processor rejects a payment the record moves to
    # failed; with auto retry on it goes straight back to pending.
    SETTLEMENT_AUTO_RETRY: bool = True

    # Payout processor wiring.
    # PAYOUT_PROCESSOR: "manual" (payments moved by hand) or "http".
    PAYOUT_PROCESSOR: str = "manual"
    PAYOUT_API_BASE_URL: Optional[str] = None
    PAYOUT_API_KEY: Optional[str] = None
    PAYOUT_PAYER_NAME: str = "Partners"
    PAYOUT_WEBHOOK_SECRET: Optional[str] = None
    PAYOUT_TIMEOUT_SECONDS: int = Field(default=10, gt=0)

    # Partner types swept by the scheduled batch. Empty means all of them.
    # Accepts a JSON list or a comma separated string ("location,referral").
    BATCH_PARTNER_TYPES: Union[List[str], str] = Field(default_factory=list)

    @field_validator("BATCH_PARTNER_TYPES", mode="before")
    @classmethod
    def _parse_list_values(cls, value):
        if isinstance(value, str):
            parts = [p.strip() for p in value.split(",") if p.strip()]
            return parts
        return value

    @field_validator("BATCH_PARTNER_TYPES")
    @classmethod
    def _check_partner_types(cls, value):
        values = [value] if isinstance(value, str) else list(value)
        unknown = [item for item in values if item not in PARTNER_TYPES]
        if unknown:
            raise ValueError(f"Unknown partner types: {', '.join(unknown)}")
        return values

    @field_validator("PAYOUT_PROCESSOR", mode="before")
    @classmethod
    def _normalize_processor(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


# Instantiate a single settings object for app-wide import.
# Any module can just `from app.core.config import settings`.
settings = Settings()
