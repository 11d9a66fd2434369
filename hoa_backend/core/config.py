from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Day of the billing month on which generated HOA charges fall due
    hoa_due_day: int = Field(10, alias="HOA_DUE_DAY", ge=1, le=31)

    # Shared secret the payment processor sends in X-Webhook-Secret; webhook disabled when unset
    payment_webhook_secret: Optional[str] = Field(None, alias="PAYMENT_WEBHOOK_SECRET")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(None, alias="LOG_FILE")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
