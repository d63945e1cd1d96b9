from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    # Shopify app proxy
    SHOPIFY_API_SECRET: str = ""
    APP_PROXY_PREFIX: str = "/apps/nuggetdepot"
    LOGIN_URL: str = "/account/login"

    # Session cookie
    SESSION_COOKIE_NAME: str = "nd_session"
    SESSION_TTL_DAYS: int = 7

    # Database; empty disables persistence
    DATABASE_URL: str = "sqlite+aiosqlite:///nuggetdepot.db"
    DATABASE_ECHO: bool = False

    # Pages and uploads
    TIMELINE_PAGE_SIZE: int = 10
    THREAD_PAGE_SIZE: int = 100
    AVATAR_MAX_BYTES: int = 2 * 1024 * 1024
    MEDIA_MAX_BYTES: int = 8 * 1024 * 1024
    MEDIA_MAX_FILES: int = 6

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @property
    def api_secret(self) -> str:
        return (self.SHOPIFY_API_SECRET or "").strip()

    @property
    def database_url(self) -> str:
        return (self.DATABASE_URL or "").strip()


settings = Settings()
