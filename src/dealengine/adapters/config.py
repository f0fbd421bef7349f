# src/dealengine/adapters/config.py
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    # App & logging
    ENV: str = Field(default="dev")
    LOG_LEVEL: str = Field(default="INFO")

    # benchmark store
    DB_URI: str = Field(default="sqlite:///dealengine.db")
    BENCHMARK_CACHE_TTL_SECONDS: float = Field(default=30 * 60)

    # -----------------------------
    # Canonical deal value
    # -----------------------------
    PIPELINE_MULTIPLE_LOW: float = Field(default=3.0)
    PIPELINE_MULTIPLE_HIGH: float = Field(default=5.0)

    # -----------------------------
    # Scenario valuation defaults
    # -----------------------------
    VALUATION_BASE_MULTIPLE_LOW: float = Field(default=3.0)
    VALUATION_BASE_MULTIPLE_HIGH: float = Field(default=5.0)

    # -----------------------------
    # Thesis earnings floors
    # -----------------------------
    MINIMUM_EBITDA: float = Field(default=600_000)
    MINIMUM_SDE: float = Field(default=600_000)

    # -----------------------------
    # Deal model defaults
    # -----------------------------
    DEAL_ENTRY_MULTIPLE: float = Field(default=4.0)
    DEAL_EXIT_MULTIPLE: float = Field(default=7.0)
    DEAL_OWNER_SALARY: float = Field(default=200_000)

    model_config = SettingsConfigDict(
        env_prefix="DEALENGINE_",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("MINIMUM_EBITDA", "MINIMUM_SDE", "DEAL_OWNER_SALARY", mode="before")
    @classmethod
    def _to_money(cls, v: Any) -> Any:
        if v is None:
            return v
        if isinstance(v, str):
            v = v.strip().replace("$", "").replace(",", "").replace("_", "")
        try:
            f = float(v)
        except Exception as err:
            raise ValueError("amount must be numeric or currency-like") from err
        if f < 0:
            raise ValueError("amount must be non-negative")
        return f

    @field_validator(
        "PIPELINE_MULTIPLE_LOW",
        "PIPELINE_MULTIPLE_HIGH",
        "VALUATION_BASE_MULTIPLE_LOW",
        "VALUATION_BASE_MULTIPLE_HIGH",
        "DEAL_ENTRY_MULTIPLE",
        "DEAL_EXIT_MULTIPLE",
        "BENCHMARK_CACHE_TTL_SECONDS",
        mode="before",
    )
    @classmethod
    def _positive(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().lower().rstrip("x")
        f = float(v)
        if f <= 0:
            raise ValueError("value must be > 0")
        return f

    @model_validator(mode="after")
    def _ranges_ordered(self) -> "AppConfig":
        if self.PIPELINE_MULTIPLE_LOW > self.PIPELINE_MULTIPLE_HIGH:
            raise ValueError("PIPELINE_MULTIPLE_LOW must not exceed PIPELINE_MULTIPLE_HIGH")
        if self.VALUATION_BASE_MULTIPLE_LOW > self.VALUATION_BASE_MULTIPLE_HIGH:
            raise ValueError(
                "VALUATION_BASE_MULTIPLE_LOW must not exceed VALUATION_BASE_MULTIPLE_HIGH"
            )
        return self


config = AppConfig()
