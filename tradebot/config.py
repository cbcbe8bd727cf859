"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./database.sqlite"
    log_level: str = "INFO"

    # Ops API; empty disables the X-API-Key check
    api_key: str = ""

    # Telegram
    telegram_bot_token: str = ""
    moderator_ids: list[int] = []  # always allowed to close trades

    # Exchange credentials (public tickers work without them)
    binance_api_key: str = ""
    binance_api_secret: str = ""
    bitget_api_key: str = ""
    bitget_api_secret: str = ""
    bitget_api_password: str = ""
    bybit_api_key: str = ""
    bybit_api_secret: str = ""
    mexc_api_key: str = ""
    mexc_api_secret: str = ""

    # Trade tracking
    refresh_interval_seconds: int = 60
    quote_timeout_seconds: float = 5.0
    display_timezone: str = "America/New_York"

    model_config = {"env_prefix": "TB_", "env_file": ".env"}


settings = Settings()
