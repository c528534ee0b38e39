from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "dev"
    auth_mode: str = "dev"  # dev | forwardauth
    root_path: str = ""
    log_level: str = "INFO"
    log_json: bool = True

    postgres_db: str = "family_calendar"
    postgres_user: str = "calendar_user"
    postgres_password: str = "calendar_pass"
    postgres_host: str = "db"
    postgres_port: int = 5432
    redis_host: str = "redis"
    redis_port: int = 6379

    # Invite codes
    invite_code_length: int = 8
    invite_code_max_attempts: int = 5
    invite_code_ttl_days: int = 14  # 0 disables expiry

    # Invite email delivery
    email_delivery: str = "log"  # log | inline | celery
    email_provider: str = "resend"  # resend | sendgrid
    resend_api_key: str = ""
    sendgrid_api_key: str = ""
    email_from_address: str = "invites@example.com"
    email_timeout_seconds: float = 15.0
    app_base_url: str = "http://localhost:5000"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def celery_broker_url(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}/0"

    @property
    def celery_result_backend(self) -> str:
        return f"redis://{self.redis_host}:{self.redis_port}/1"


settings = Settings()
