from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Database
    DATABASE_URL: Optional[str] = None
    PGHOST: str = "localhost"
    PGDATABASE: str = "bus_booking"
    PGUSER: str = "postgres"
    PGPASSWORD: str = ""
    PGSSLMODE: str = "prefer"

    # Security
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    CRON_SECRET: Optional[str] = None

    # Application
    PROJECT_NAME: str = "Bus Booking Platform"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Seat locks & bookings
    SEAT_LOCK_TTL_MINUTES: int = 15
    SEAT_LOCK_MAX_EXTENSION_MINUTES: int = 15
    BOOKING_PAYMENT_WINDOW_MINUTES: int = 15

    # Pricing
    CONVENIENCE_FEE_RATE: float = 0.05
    BANK_CHARGE_RATE: float = 0.02
    PRICE_ROUNDING_UNIT: int = 1000
    MIN_BOOKING_TOTAL: int = 50000
    CURRENCY: str = "VND"

    # Sweeper
    SWEEPER_ENABLED: bool = True
    SWEEPER_INTERVAL_MINUTES: int = 60
    REMINDER_LEAD_HOURS: int = 24
    REMINDER_SCAN_WINDOW_HOURS: int = 48

    # Email
    EMAIL_PROVIDER: str = "console"
    EMAIL_FROM: str = "no-reply@busbooking.local"
    EMAIL_TIMEOUT_SECONDS: float = 45.0
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    SENDGRID_API_KEY: Optional[str] = None

    @field_validator("CONVENIENCE_FEE_RATE", "BANK_CHARGE_RATE")
    @classmethod
    def validate_rate(cls, v):
        if not 0.0 <= v < 1.0:
            raise ValueError("fee rates must be between 0 and 1")
        return v

    @field_validator(
        "SEAT_LOCK_TTL_MINUTES", "SEAT_LOCK_MAX_EXTENSION_MINUTES",
        "BOOKING_PAYMENT_WINDOW_MINUTES", "PRICE_ROUNDING_UNIT",
        "SWEEPER_INTERVAL_MINUTES", "REMINDER_LEAD_HOURS", "REMINDER_SCAN_WINDOW_HOURS"
    )
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("must be a positive number")
        return v

    @field_validator("EMAIL_PROVIDER")
    @classmethod
    def validate_provider(cls, v):
        if v not in ("console", "smtp", "sendgrid"):
            raise ValueError("EMAIL_PROVIDER must be one of: console, smtp, sendgrid")
        return v

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.PGUSER}:{self.PGPASSWORD}@{self.PGHOST}/{self.PGDATABASE}?sslmode={self.PGSSLMODE}"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

settings = Settings()
