from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./kiss_loyalty.db"
    database_echo: bool = False
    tracing_exporter_enabled: bool = True
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Internal / operator API security
    admin_api_key: str = ""

    # Ledger
    welcome_bonus_points: int = 100
    daily_login_points: int = 2
    order_delivery_points_divisor: int = 10
    ledger_page_size_max: int = 100

    # Monthly raffle
    raffle_ticket_price_points: int = 100
    raffle_max_tickets_per_purchase: int = 10
    raffle_winner_bonus_points: int = 1000
    raffle_prize_type: str = "seoul_trip"
    raffle_prize_description: str = "5-Day Seoul Adventure Trip - Complete Korean culture experience"

    # Reward fulfillment
    discount_code_validity_days: int = 30
    redemption_pending_timeout_minutes: int = 15


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
