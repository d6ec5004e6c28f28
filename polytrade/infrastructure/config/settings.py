"""
Polytrade Application Settings
Centralized configuration management using Pydantic
"""
from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables BEFORE instantiating the settings classes
load_dotenv('.env.local')  # Development env first
load_dotenv('.env', override=False)  # Fallback env (no override)


class RedisSettings(BaseSettings):
    """Redis configuration (trading session store)"""

    model_config = SettingsConfigDict(env_prefix="REDIS_", extra="ignore")

    url: str = "redis://localhost:6379"
    session_ttl: int = Field(7 * 24 * 3600, ge=0)  # 0 = no expiry
    enabled: bool = True


class PolymarketSettings(BaseSettings):
    """Exchange and companion API configuration"""

    model_config = SettingsConfigDict(env_prefix="POLYMARKET_", extra="ignore")

    clob_host: str = "https://clob.polymarket.com"
    data_api_host: str = "https://data-api.polymarket.com"
    relayer_url: str = "https://relayer-v2.polymarket.com"
    companion_api_url: str = "http://localhost:5000"
    chain_id: int = 137
    request_timeout: float = 10.0


class Web3Settings(BaseSettings):
    """Web3 and blockchain configuration"""

    model_config = SettingsConfigDict(env_prefix="WEB3_", extra="ignore")

    polygon_rpc_url: str = "https://polygon-rpc.com"
    # Fallback RPCs rotated through when the primary rate limits
    fallback_rpc_urls: list[str] = [
        "https://polygon-bor-rpc.publicnode.com",
        "https://polygon.llamarpc.com",
    ]
    rpc_max_attempts: int = 3
    rpc_backoff_seconds: float = 0.5
    receipt_timeout: int = 120


class TradingSettings(BaseSettings):
    """Trading session and order execution configuration"""

    model_config = SettingsConfigDict(env_prefix="TRADING_", extra="ignore")

    signing_warning_seconds: float = 5.0
    min_price: float = 0.01
    max_price: float = 0.99
    limit_price_improvement: float = 0.01  # 1 cent more aggressive than best quote
    gtd_min_lifetime_seconds: int = 60
    allowance_threshold_units: int = 1_000_000  # 1 USDC (6 decimals)
    deposit_low_balance: float = 1.0

    @field_validator("max_price")
    @classmethod
    def validate_price_bounds(cls, v):
        """Prices are fractions of one dollar"""
        if not 0 < v < 1:
            raise ValueError("max_price must be within (0, 1)")
        return v


class FeeSettings(BaseSettings):
    """Platform fee configuration"""

    model_config = SettingsConfigDict(env_prefix="FEES_", extra="ignore")

    config_ttl_seconds: int = 30
    min_collectable_amount: float = 0.01
    reconcile_interval_seconds: int = 60
    pending_ttl_seconds: int = 604800


class RefreshSettings(BaseSettings):
    """Background refresh intervals for read-only views"""

    model_config = SettingsConfigDict(env_prefix="REFRESH_", extra="ignore")

    orderbook_interval: int = 5
    positions_interval: int = 30
    opportunities_interval: int = 60


class LoggingSettings(BaseSettings):
    """Logging configuration"""

    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dedup_window_seconds: int = 60
    dedup_max_count: int = 3


class AppSettings(BaseSettings):
    """Main application settings"""

    model_config = SettingsConfigDict(
        env_file=".env.local",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    debug: bool = False
    testing: bool = False
    environment: str = "development"

    # Application
    name: str = "Polytrade"
    version: str = "0.1.0"

    # Sub-settings
    redis: RedisSettings = RedisSettings()
    polymarket: PolymarketSettings = PolymarketSettings()
    web3: Web3Settings = Web3Settings()
    trading: TradingSettings = TradingSettings()
    fees: FeeSettings = FeeSettings()
    refresh: RefreshSettings = RefreshSettings()
    logging: LoggingSettings = LoggingSettings()

    @property
    def is_production(self) -> bool:
        """Check if running in production mode"""
        return self.environment.lower() == "production"


# Global settings instance
settings = AppSettings()
