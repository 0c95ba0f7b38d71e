"""Application settings and configuration.

This module defines all configuration options for the Market Chat service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Market Chat", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./market_chat.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Moderation privileges: comma separated wallet addresses
    admin_addresses_raw: str = Field(default="", alias="ADMIN_ADDRESSES")

    # Networks a room may live on: comma separated
    allowed_networks_raw: str = Field(
        default="bnb-testnet,bnb-mainnet",
        alias="ALLOWED_NETWORKS",
    )

    # Chat admission and abuse controls
    chat_rate_limit_seconds: int = Field(default=60, alias="CHAT_RATE_LIMIT_SECONDS")
    chat_max_message_length: int = Field(default=500, alias="CHAT_MAX_MESSAGE_LENGTH")
    chat_max_raw_message_length: int = Field(default=550, alias="CHAT_MAX_RAW_MESSAGE_LENGTH")
    chat_history_limit: int = Field(default=100, alias="CHAT_HISTORY_LIMIT")
    chat_duplicate_similarity: float = Field(default=0.9, alias="CHAT_DUPLICATE_SIMILARITY")
    content_filter_path: str | None = Field(default=None, alias="CONTENT_FILTER_PATH")

    # Sign-In-With-Ethereum assertions
    siwe_clock_skew_seconds: int = Field(default=60, alias="SIWE_CLOCK_SKEW_SECONDS")
    siwe_session_minutes: int = Field(default=60 * 24, alias="SIWE_SESSION_MINUTES")
    siwe_statement: str = Field(
        default="Sign in to use market chat features.",
        alias="SIWE_STATEMENT",
    )

    # Holder / creator eligibility (0.001 shares expressed in wei)
    min_shares_to_chat: int = Field(default=10**15, alias="MIN_SHARES_TO_CHAT")
    subgraph_url_testnet: str | None = Field(default=None, alias="SUBGRAPH_URL_TESTNET")
    subgraph_url_mainnet: str | None = Field(default=None, alias="SUBGRAPH_URL_MAINNET")
    subgraph_timeout_seconds: float = Field(default=10.0, alias="SUBGRAPH_TIMEOUT_SECONDS")

    # Realtime fan-out
    realtime_backend: str = Field(default="memory", alias="REALTIME_BACKEND")
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def admin_addresses(self) -> frozenset[str]:
        """Return the moderation allowlist, lowercase-normalized."""
        return frozenset(
            part.strip().lower()
            for part in self.admin_addresses_raw.split(",")
            if part.strip()
        )

    @property
    def allowed_networks(self) -> list[str]:
        """Return the networks rooms may live on, in configured order."""
        return [part.strip() for part in self.allowed_networks_raw.split(",") if part.strip()]

    @property
    def subgraph_urls(self) -> dict[str, str]:
        """Return configured subgraph endpoints keyed by network."""
        urls = {
            "bnb-testnet": self.subgraph_url_testnet,
            "bnb-mainnet": self.subgraph_url_mainnet,
        }
        return {network: url for network, url in urls.items() if url}


settings = Settings()
