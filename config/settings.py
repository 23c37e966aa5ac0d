"""Global configuration settings."""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # CoinGecko API (free tier works without a key)
    COINGECKO_API_KEY: Optional[str] = None
    COINGECKO_BASE_URL: str = "https://api.coingecko.com/api/v3"
    PROVIDER_TIMEOUT_SECONDS: float = 10.0
    REFRESH_RETRY_DELAY_SECONDS: float = 10.0  # Single one-shot retry after a failed refresh

    # Telegram broadcast channel (disabled when unset)
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_CHAT_ID: Optional[str] = None
    TELEGRAM_WEBHOOK_SECRET: Optional[str] = None  # Checked against X-Telegram-Bot-Api-Secret-Token

    # Tracked assets
    TRACKED_ASSETS: list[str] = ["BTC", "ETH", "LINK", "MATIC", "UNI"]
    ASSET_FEED_KEYS: dict[str, str] = {
        "BTC": "bitcoin",
        "ETH": "ethereum",
        "LINK": "chainlink",
        "MATIC": "matic-network",
        "UNI": "uniswap",
        "AVAX": "avalanche-2",
        "SOL": "solana",
        "ADA": "cardano",
        "DOT": "polkadot",
    }
    ASSET_NAMES: dict[str, str] = {
        "BTC": "Bitcoin",
        "ETH": "Ethereum",
        "LINK": "Chainlink",
        "MATIC": "Polygon",
        "UNI": "Uniswap",
        "AVAX": "Avalanche",
        "SOL": "Solana",
        "ADA": "Cardano",
        "DOT": "Polkadot",
    }

    # Round Settings
    ROUND_DURATION_SECONDS: int = 300  # 5 minute rounds
    REWARD_PER_WIN: float = 0.02  # Flat symbolic reward per winning prediction
    ROUND_RETENTION_SECONDS: int = 3600  # Resolved rounds stay readable for 1 hour
    SNAPSHOT_MAX_AGE_SECONDS: int = 90  # Oldest snapshot a new round may open from
    PREDICTION_CUTOFF_SECONDS: int = 0  # Close predictions this long before round end

    # Scheduler Settings
    ENABLE_SCHEDULER: bool = True
    PRICE_REFRESH_INTERVAL_SECONDS: int = 30
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 5
    CREATION_SWEEP_INTERVAL_SECONDS: int = 60
    DIGEST_INTERVAL_SECONDS: int = 120

    # User registry backend: "memory" or "sql"
    USER_STORE: str = "sql"
    DATABASE_URL: str = "sqlite:///./data/arena.db"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # API Settings
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    DEBUG: bool = False  # Enable debug mode for detailed error messages

    # CORS Settings - add production domains here
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",  # Vite default dev server
        "http://localhost:3000",  # Common React dev server
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def assets(self) -> list:
        """
        Build the tracked Asset list.

        Symbols without a configured feed key fall back to the lowercased
        symbol, which matches CoinGecko ids for a few coins only.
        """
        from arena.engine.models import Asset

        return [
            Asset(
                symbol=symbol.upper(),
                feed_key=self.ASSET_FEED_KEYS.get(symbol.upper(), symbol.lower()),
                name=self.ASSET_NAMES.get(symbol.upper(), symbol.upper()),
            )
            for symbol in self.TRACKED_ASSETS
        ]


# Global settings instance
settings = Settings()
