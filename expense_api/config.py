from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

# Reference currencies the expenses table has amount columns for
KNOWN_REFERENCE_CURRENCIES = ("USD", "ARS")


class Settings(BaseSettings):
    APP_NAME: str = "Expense Tracker"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    PORT: int = 8000

    DATABASE_URL: str = "postgresql+asyncpg://localhost/expenses"
    DATABASE_SYNC_URL: str = ""
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 5
    DB_POOL_RECYCLE: int = 300

    # Tokens are issued by the identity provider and signed with a shared secret
    AUTH_JWT_SECRET: str = ""
    AUTH_JWT_ALGORITHM: str = "HS256"
    AUTH_JWT_AUDIENCE: Optional[str] = "authenticated"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    FX_CACHE_HOURS: int = 12
    FX_REFERENCE_CURRENCIES: str = "USD,ARS"
    FX_PROVIDER_BASE_URL: str = "https://v6.exchangerate-api.com/v6"
    FX_PROVIDER_API_KEY: Optional[str] = None
    FX_PROVIDER_SHAPE: str = "latest"  # "latest" or "pair"
    FX_PROVIDER_TIMEOUT_SECONDS: float = 5.0
    FX_PROVIDER_MAX_ATTEMPTS: int = 2

    CORS_ORIGINS: str = "http://localhost:5173"
    CORS_ORIGIN_REGEX: Optional[str] = None

    @field_validator("FX_REFERENCE_CURRENCIES")
    @classmethod
    def validate_reference_currencies(cls, v: str) -> str:
        codes = [c.strip().upper() for c in v.split(",") if c.strip()]
        if not codes or codes[0] != "USD":
            raise ValueError("FX_REFERENCE_CURRENCIES must start with USD")
        unknown = [c for c in codes if c not in KNOWN_REFERENCE_CURRENCIES]
        if unknown:
            raise ValueError(
                f"Unsupported reference currencies {unknown}. "
                f"Supported: {list(KNOWN_REFERENCE_CURRENCIES)}"
            )
        if len(set(codes)) != len(codes):
            raise ValueError("FX_REFERENCE_CURRENCIES contains duplicates")
        return ",".join(codes)

    @field_validator("FX_PROVIDER_SHAPE")
    @classmethod
    def validate_provider_shape(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("latest", "pair"):
            raise ValueError("FX_PROVIDER_SHAPE must be 'latest' or 'pair'")
        return v

    @model_validator(mode="after")
    def validate_provider_covers_references(self) -> "Settings":
        # The pair endpoint prices a single reference per call
        if self.FX_PROVIDER_SHAPE == "pair" and len(self.reference_currencies) > 1:
            raise ValueError(
                "FX_PROVIDER_SHAPE=pair supports a single reference currency; "
                "use latest or set FX_REFERENCE_CURRENCIES=USD"
            )
        return self

    @property
    def reference_currencies(self) -> tuple[str, ...]:
        return tuple(self.FX_REFERENCE_CURRENCIES.split(","))

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
