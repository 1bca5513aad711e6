from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'tabacaria_user'
    POSTGRES_PASSWORD: str = 'tabacaria_pass'
    POSTGRES_DB: str = 'tabacaria_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None  # Sobrescribe la URL construida (ej. sqlite:// en tests)

    # JWT settings
    APP_SECRET_STRING: str = 'your-super-secret-key-here-change-in-production-2024'
    ALGORITHM: str = 'HS256'
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 12 * 60

    # Contraseña única de la tienda
    SHOP_PASSWORD: str = 'change-me'
    SHOP_TIMEZONE: str = 'America/Sao_Paulo'

    # Ledger de fiado
    LEDGER_LOCK_TIMEOUT_MS: int = 5000

    # Cache del dashboard
    DASHBOARD_CACHE_TTL_SECONDS: int = 30

    # Pagination
    DEFAULT_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("LEDGER_LOCK_TIMEOUT_MS", "DASHBOARD_CACHE_TTL_SECONDS")
    @classmethod
    def non_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v

settings = Settings()
