from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # App settings
    PROJECT_NAME: str = "Spendcast API"
    API_VERSION: str = "1.0.0"
    DEBUG: bool = Field(default=False)
    LOG_LEVEL: str = Field(default="INFO")
    CORS_ORIGINS: List[str] = Field(default=["*"])

    # Forecast windows (months)
    HISTORY_MONTHS: int = Field(default=6, ge=1)
    ANOMALY_MONTHS: int = Field(default=3, ge=1)
    FORECAST_MONTHS: int = Field(default=3, ge=1, le=12)

    # Transaction source
    TRANSACTIONS_CSV: Optional[str] = Field(default=None)
    FETCH_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)

    CURRENCY_SYMBOL: str = "₱"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SPENDCAST_",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
