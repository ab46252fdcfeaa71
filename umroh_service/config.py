from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str
    # Tokens are issued by the hosted identity service, we only VERIFY them
    SECRET_KEY: str
    ALGORITHM: str

    REDIS_URL: str

    # Timezone used to decide what "today" means for reminder dedup
    REMINDER_TIMEZONE: str = "UTC"

    # In-process reminder loop. Off by default, cron calls the endpoint instead.
    ENABLE_REMINDER_SCHEDULER: bool = False
    REMINDER_POLL_INTERVAL_SECONDS: int = 3600

    CORS_ALLOW_ORIGINS: list[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env")


settings = Settings()
