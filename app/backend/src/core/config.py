"""Application configuration utilities."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings derived from environment variables."""

    database_url: str = Field(
        default="sqlite:///./fieldbill.db", alias="DATABASE_URL"
    )
    sqlite_busy_timeout_ms: int = Field(default=5000, alias="SQLITE_BUSY_TIMEOUT_MS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    auth0_domain: str | None = Field(default=None, alias="AUTH0_DOMAIN")
    auth0_audience: str | None = Field(default=None, alias="AUTH0_AUDIENCE")

    gps_accuracy_threshold_m: float = Field(
        default=50.0, alias="GPS_ACCURACY_THRESHOLD_M"
    )
    max_batch_units: int = Field(default=50, alias="MAX_BATCH_UNITS")
    claim_due_days: int = Field(default=30, alias="CLAIM_DUE_DAYS")

    operating_currency: str = Field(default="USD", alias="OPERATING_CURRENCY")
    erp_invoice_source: str = Field(default="FieldBill", alias="ERP_INVOICE_SOURCE")
    erp_business_unit: str = Field(default="UTILITY", alias="ERP_BUSINESS_UNIT")
    erp_payment_terms: str = Field(default="Net 30", alias="ERP_PAYMENT_TERMS")
    erp_default_expenditure_type: str = Field(
        default="Contract Labor", alias="ERP_DEFAULT_EXPENDITURE_TYPE"
    )

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @property
    def auth_configured(self) -> bool:
        """Return ``True`` when both Auth0 settings are present."""

        return bool(self.auth0_domain and self.auth0_audience)


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = ["Settings", "get_settings"]
