from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DEBUG: bool = False
    APP_NAME: str = "Coaching Subscriptions"
    APP_DOMAIN: str = "example.com"
    APP_DATABASE_DSN: str = "sqlite:////tmp/database.db"
    REDIS_URL: str = "redis://localhost:6379"
    LOG_LEVEL: str = "INFO"

    # Managed auth provider (HS256 access tokens, user id in "sub")
    AUTH_JWT_SECRET: str = "change-me"
    AUTH_JWT_AUDIENCE: str = "authenticated"

    # Razorpay settings
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_webhook_secret: str = ""
    razorpay_base_url: str = "https://api.razorpay.com/v1"
    razorpay_currency: str = "INR"

    # Subscriptions left in CREATED longer than this are cancelled by the cleanup job
    ORPHAN_SUBSCRIPTION_TIMEOUT_MINUTES: int = 60
    CRON_SECRET: str = ""

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @property
    def version(self) -> str:
        return "0.1.0"


settings = Settings()
