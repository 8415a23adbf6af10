"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./settlement.db"
    database_echo: bool = False
    database_lock_timeout: float = 5.0  # Seconds SQLite waits on a competing writer
    log_level: str = "INFO"
    commission_rate: float = 0.10  # Marketplace fee taken from each payout batch
    currency: str = "ETB"
    default_payment_method: str = "BANK_TRANSFER"
    payout_weekday: int = 4  # Monday=0 ... Friday=4
    payout_hour: int = 12  # UTC hour of the weekly payout slot
    default_page_size: int = 20

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
