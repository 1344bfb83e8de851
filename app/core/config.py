from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True)


class LoggingConfig(BaseSettings):
    model_config = _ENV

    level: str = Field(default="INFO", alias="LOG_LEVEL")


class WhatsAppConfig(BaseSettings):
    """Evolution API instance used to deliver WhatsApp messages."""

    model_config = _ENV

    api_url: str = Field(default="", alias="WHATSAPP_API_URL")
    api_key: str = Field(default="", alias="WHATSAPP_API_KEY")
    instance_name: str = Field(default="", alias="WHATSAPP_INSTANCE_NAME")
    country_code: str = Field(default="55", alias="WHATSAPP_COUNTRY_CODE")
    # 0 disables the monthly cap
    monthly_limit: int = Field(default=0, alias="WHATSAPP_MONTHLY_LIMIT")
    timeout_seconds: float = Field(default=15.0, alias="WHATSAPP_TIMEOUT_SECONDS")

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.api_key and self.instance_name)


class AppConfig(BaseSettings):
    model_config = _ENV

    env: str = Field(default="development", alias="APP_ENV")
    host: str = Field(default="0.0.0.0", alias="APP_HOST")
    port: int = Field(default=8000, alias="APP_PORT")
    timezone: str = Field(default="America/Sao_Paulo", alias="PRIMARY_TIMEZONE")

    database_url: str = Field(default="sqlite:///./data/clinic.db", alias="DATABASE_URL")

    api_token: str | None = Field(default=None, alias="API_TOKEN")

    waiting_list_offer_ttl_hours: int = Field(default=24, alias="WAITING_LIST_OFFER_TTL_HOURS")
    waiting_list_expiry_interval_minutes: int = Field(default=30, alias="WAITING_LIST_EXPIRY_INTERVAL_MINUTES")
    scheduler_enabled: bool = Field(default=True, alias="SCHEDULER_ENABLED")

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    whatsapp: WhatsAppConfig = Field(default_factory=WhatsAppConfig)


@lru_cache
def get_settings() -> AppConfig:
    return AppConfig()
