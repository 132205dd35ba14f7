"""
Revenue cycle settings.

Everything here can be overridden from the environment or a ``.env`` file.
Services receive a :class:`RevenueCycleSettings` through their constructor;
``get_settings()`` is only used at the edges (API dependencies, Celery tasks).
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from revcycle.models.enums import DuplicateDenialPolicy


class RevenueCycleSettings(BaseSettings):
    """Billing, EDI and clearinghouse configuration."""

    environment: str = Field("development", alias="ENVIRONMENT")
    cors_origins: str = Field("http://localhost:3000", alias="CORS_ORIGINS")

    # Clearinghouse
    clearinghouse_base_url: str = Field("https://clearinghouse.local/api", alias="CLEARINGHOUSE_BASE_URL")
    clearinghouse_api_token: Optional[str] = Field(None, alias="CLEARINGHOUSE_API_TOKEN")
    clearinghouse_timeout_seconds: float = Field(30.0, alias="CLEARINGHOUSE_TIMEOUT_SECONDS")

    # 837P envelope
    edi_submitter_id: str = Field("REVCYCLE", alias="EDI_SUBMITTER_ID")
    edi_submitter_name: str = Field("REVENUE CYCLE ENGINE", alias="EDI_SUBMITTER_NAME")
    edi_submitter_contact: str = Field("BILLING OFFICE", alias="EDI_SUBMITTER_CONTACT")
    edi_submitter_phone: str = Field("5555550100", alias="EDI_SUBMITTER_PHONE")
    edi_receiver_id: str = Field("CLEARINGHOUSE", alias="EDI_RECEIVER_ID")
    edi_receiver_name: str = Field("CLEARINGHOUSE", alias="EDI_RECEIVER_NAME")
    edi_usage_indicator: str = Field("P", alias="EDI_USAGE_INDICATOR")

    # Claims
    claim_number_prefix: str = Field("CLM", alias="CLAIM_NUMBER_PREFIX")

    # Denials
    appeal_window_days: int = Field(90, alias="APPEAL_WINDOW_DAYS")
    duplicate_denial_policy: DuplicateDenialPolicy = Field(
        DuplicateDenialPolicy.IDEMPOTENT, alias="DUPLICATE_DENIAL_POLICY"
    )
    allow_direct_denial_resolution: bool = Field(False, alias="ALLOW_DIRECT_DENIAL_RESOLUTION")

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"
        populate_by_name = True

    @field_validator("edi_usage_indicator")
    @classmethod
    def _usage_indicator(cls, value: str) -> str:
        value = value.upper()
        if value not in ("P", "T"):
            raise ValueError("EDI_USAGE_INDICATOR must be P (production) or T (test)")
        return value

    @field_validator("appeal_window_days")
    @classmethod
    def _appeal_window(cls, value: int) -> int:
        if value < 1:
            raise ValueError("APPEAL_WINDOW_DAYS must be at least 1")
        return value

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> RevenueCycleSettings:
    return RevenueCycleSettings()
