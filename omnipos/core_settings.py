from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "omnipos"
    POSTGRES_USER: str = "omnipos"
    POSTGRES_PASSWORD: str = "omnipos"
    # Takes precedence over the POSTGRES_* parts when set
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10

    SERVICE_NAME: str = "omnipos-ledger"
    SERVICE_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    RUN_MIGRATIONS_ON_STARTUP: bool = True

    # Inventory policy
    STOCK_FLOOR: Decimal = Decimal("0")
    ALLOW_OVERSELL: bool = False
    # Loyalty policy
    REJECT_OVER_REDEMPTION: bool = False
    # Row lock wait before a commit is aborted as contention (PostgreSQL only)
    LOCK_TIMEOUT_MS: int = 5000

    class Config:
        env_file = ".env"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            url = self.DATABASE_URL
            # Hosted Postgres providers hand out plain postgresql:// URLs
            if url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql+psycopg2://", 1)
            elif url.startswith("postgresql://"):
                url = url.replace("postgresql://", "postgresql+psycopg2://", 1)
            return url
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

@lru_cache
def get_settings() -> Settings:
    return Settings()
