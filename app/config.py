from pydantic_settings import BaseSettings
from pydantic import field_validator
from decimal import Decimal
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes
    SQLITE_BUSY_TIMEOUT: int = 30  # Seconds a SQLite writer waits for the lock

    # JWT Settings
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # App Settings
    APP_NAME: str = "Freight Booking Core"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Tariff policy (percentages are 0-100)
    TAX_PERCENTAGE: Decimal = Decimal("18")  # GST on freight
    FUEL_SURCHARGE_PERCENTAGE: Decimal = Decimal("4")
    EXPRESS_SURCHARGE_PERCENTAGE: Decimal = Decimal("25")
    URGENT_SURCHARGE_PERCENTAGE: Decimal = Decimal("50")
    FRAGILE_SURCHARGE_PERCENTAGE: Decimal = Decimal("10")
    DEFAULT_LOADING_CHARGE_PER_UNIT: Decimal = Decimal("0")
    DEFAULT_UNLOADING_CHARGE_PER_UNIT: Decimal = Decimal("0")
    SPECIAL_HANDLING_MULTIPLIER: Decimal = Decimal("1.5")
    VOLUMETRIC_DIVISOR: int = 5000  # cm^3 per kg

    # Booking settings
    TOTAL_TOLERANCE: Decimal = Decimal("0.01")  # Max header vs lines drift
    LR_NUMBER_TEMPLATE: str = "{origin}-{yy}-{seq}"
    LR_SEQUENCE_PADDING: int = 3  # MUM-26-007

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        return list(self.CORS_ORIGINS)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
