"""Application settings and configuration.

This module defines all configuration options for the Memo Ledger service.
Settings are loaded from environment variables with sensible defaults.
Only the web layer reads the module-level ``settings`` instance; services
receive their network, key and endpoint configuration explicitly.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

TESTNET_PASSPHRASE = "Test SDF Network ; September 2015"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Memo Ledger", alias="APP_NAME")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Ledger query endpoint
    horizon_url: str = Field(
        default="https://horizon-testnet.stellar.org",
        alias="HORIZON_URL",
    )
    network_passphrase: str = Field(default=TESTNET_PASSPHRASE, alias="NETWORK_PASSPHRASE")
    horizon_http_timeout_seconds: float = Field(
        default=30.0,
        alias="HORIZON_HTTP_TIMEOUT_SECONDS",
    )

    # Challenge (web auth) settings
    server_secret_seed: str | None = Field(default=None, alias="SERVER_SECRET_SEED")
    home_domain: str = Field(default="memo-ledger", alias="HOME_DOMAIN")
    challenge_timeout_seconds: int = Field(default=300, alias="CHALLENGE_TIMEOUT_SECONDS")

    # JWT issued after a verified challenge
    secret_key: str = Field(alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Memo ledger
    memo_page_size: int = Field(default=50, gt=0, alias="MEMO_PAGE_SIZE")
    memo_payment_amount: str = Field(default="0.0000001", alias="MEMO_PAYMENT_AMOUNT")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def auth_enabled(self) -> bool:
        """Return True when a server signing key is configured."""
        return bool(self.server_secret_seed)


settings = Settings()
