from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    BUSINESS_NAME: str = "Salon"
    BUSINESS_TIMEZONE: str = "Asia/Jerusalem"
    OWNER_ID: str = "owner"

    STORE_PROVIDER: str = "memory"  # "memory" | "json"
    DATA_DIR: str = "./data"

    FALLBACK_SLOT_MINUTES: int = 60
    COMPLETION_GRACE_SECONDS: int = 60
    TRANSACTION_MAX_ATTEMPTS: int = 5
    MIN_PHONE_DIGITS: int = 9
    RECORD_REJECTIONS_IN_HISTORY: bool = False

    NOTIFICATIONS_ENABLED: bool = False
    EXPO_PUSH_URL: str = "https://exp.host/--/api/v2/push/send"
    EXPO_ACCESS_TOKEN: str | None = None


settings = Settings()
