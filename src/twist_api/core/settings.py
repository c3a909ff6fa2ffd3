"""Application settings and configuration.

This module defines all configuration options for the Twist API service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Secrets used by the request-admission pipeline have no defaults and must
    be provided via the environment or an `.env` file.
    """

    # Application metadata
    app_name: str = Field(default="Twist API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./twist.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Shared TTL store for rate limiting, violations and blocks
    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    # Request handshake (randomKey/fusedKey)
    public_key_salt: str = Field(alias="PUBLIC_KEY_SALT")
    server_secret_key: str = Field(alias="SERVER_SECRET_KEY")
    proof_freshness_seconds: int = Field(default=300, alias="PROOF_FRESHNESS_SECONDS")

    # Encrypted payload envelope
    payload_encryption_key: str = Field(alias="PAYLOAD_ENCRYPTION_KEY")
    payload_salt_secret: str = Field(alias="PAYLOAD_SALT_SECRET")
    payload_kdf_iterations: int = Field(default=100_000, alias="PAYLOAD_KDF_ITERATIONS")
    payload_freshness_seconds: int = Field(default=300, alias="PAYLOAD_FRESHNESS_SECONDS")
    envelope_nonce_ttl_seconds: int = Field(default=600, alias="ENVELOPE_NONCE_TTL_SECONDS")
    fingerprint_max_requests: int = Field(default=5, alias="FINGERPRINT_MAX_REQUESTS")
    fingerprint_window_seconds: int = Field(default=3_600, alias="FINGERPRINT_WINDOW_SECONDS")

    # Origin gate
    canonical_origin: str = Field(
        default="https://monado-twist.vercel.app",
        alias="CANONICAL_ORIGIN",
    )

    # Rate limiting and block escalation
    rate_limit_requests: int = Field(default=5, alias="RATE_LIMIT_REQUESTS")
    rate_limit_window_seconds: int = Field(default=60, alias="RATE_LIMIT_WINDOW_SECONDS")
    violation_threshold: int = Field(default=2, alias="VIOLATION_THRESHOLD")
    violation_window_seconds: int = Field(default=600, alias="VIOLATION_WINDOW_SECONDS")
    block_duration_seconds: int = Field(default=86_400, alias="BLOCK_DURATION_SECONDS")

    # Spin allowance and single-use spin tokens
    spins_per_day: int = Field(default=2, alias="SPINS_PER_DAY")
    spin_token_ttl_seconds: int = Field(default=120, alias="SPIN_TOKEN_TTL_SECONDS")
    follow_target_fid: int = Field(default=249702, alias="FOLLOW_TARGET_FID")
    spin_price_wei: int = Field(default=10**18, alias="SPIN_PRICE_WEI")

    # Reward table override (JSON file); defaults live in core.rewards
    reward_table_file: str | None = Field(default=None, alias="REWARD_TABLE_FILE")
    reward_token_addresses: dict[str, str] = Field(
        default_factory=dict,
        alias="REWARD_TOKEN_ADDRESSES",
    )

    # External identity provider (Neynar)
    identity_api_base_url: str = Field(
        default="https://api.neynar.com",
        alias="IDENTITY_API_BASE_URL",
    )
    identity_api_key: str | None = Field(default=None, alias="IDENTITY_API_KEY")
    identity_http_timeout_seconds: float = Field(
        default=5.0,
        alias="IDENTITY_HTTP_TIMEOUT_SECONDS",
    )
    wallet_cache_ttl_seconds: int = Field(default=86_400, alias="WALLET_CACHE_TTL_SECONDS")

    # Blockchain RPC and signing
    rpc_url: str | None = Field(default=None, alias="RPC_URL")
    chain_timeout_seconds: float = Field(default=60.0, alias="CHAIN_TIMEOUT_SECONDS")
    winner_vault_address: str | None = Field(default=None, alias="WINNER_VAULT_ADDRESS")
    payout_private_keys: list[str] = Field(default_factory=list, alias="PAYOUT_PRIVATE_KEYS")
    signer_private_key: str | None = Field(default=None, alias="SIGNER_PRIVATE_KEY")
    envelope_private_key: str | None = Field(default=None, alias="ENVELOPE_PRIVATE_KEY")

    # Push-event broadcaster
    push_webhook_url: str | None = Field(default=None, alias="PUSH_WEBHOOK_URL")
    push_channel: str = Field(default="monado-spin", alias="PUSH_CHANNEL")
    push_timeout_seconds: float = Field(default=3.0, alias="PUSH_TIMEOUT_SECONDS")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["https://monado-twist.vercel.app"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["Content-Type", "Authorization"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def proof_freshness_ms(self) -> int:
        return self.proof_freshness_seconds * 1000

    @property
    def payload_freshness_ms(self) -> int:
        return self.payload_freshness_seconds * 1000


settings = Settings()  # type: ignore[call-arg]
