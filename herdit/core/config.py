from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "herdit"
    env: str = "development"
    log_level: str = "INFO"

    jwt_secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60

    postgres_host: str = "postgres"
    postgres_db: str = "herdit"
    postgres_user: str = "herdit"
    postgres_password: str = "herdit"
    postgres_port: int = 5432
    database_url: str = ""

    redis_url: str = "redis://redis:6379/0"
    cors_allowed_origins: list[str] = ["http://localhost:3000"]

    cron_secret: str = ""
    storage_dir: str = "storage/files"
    uploads_dir: str = "public/uploads"
    file_token_ttl_minutes: int = 15
    temp_file_max_age_hours: int = 24
    max_upload_bytes: int = 10 * 1024 * 1024
    recent_requests_limit: int = 5

    @field_validator("cors_allowed_origins", mode="before")
    @classmethod
    def parse_cors_allowed_origins(cls, value):
        if isinstance(value, str):
            if value.strip() == "":
                return []
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @model_validator(mode="after")
    def validate_production_security(self):
        if self.env.strip().lower() in {"production", "prod"} and self.jwt_secret_key == "change-me":
            raise ValueError("JWT_SECRET_KEY must be set to a secure value in production")
        return self

    @property
    def postgres_dsn(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


settings = Settings()
