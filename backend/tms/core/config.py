from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    DATABASE_URL: str = "postgresql+asyncpg://tms:tms_secret@db:5432/teambabe"
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # Local timezone of the team; DTR dates and "today" are resolved in it
    TIMEZONE: str = "Asia/Manila"

    FUZZY_MATCH_THRESHOLD: int = 90

    IMPORT_MAX_ERRORS_LOGGED: int = 100

    RUN_MIGRATIONS_ON_STARTUP: bool = True
    MIGRATIONS_CWD: str = "/app"

    CORS_ORIGINS: list[str] = ["http://localhost:3000"]
    FRONTEND_URL: str = "http://localhost:3000"

    # Zoom OAuth (user-managed app)
    ZOOM_OAUTH_CLIENT_ID: str | None = None
    ZOOM_OAUTH_CLIENT_SECRET: str | None = None
    ZOOM_REDIRECT_URI: str | None = None
    ZOOM_OAUTH_BASE_URL: str = "https://zoom.us/oauth"
    ZOOM_API_BASE_URL: str = "https://api.zoom.us/v2"
    ZOOM_API_TIMEOUT_SEC: float = 10.0


settings = Settings()
