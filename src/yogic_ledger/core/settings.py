"""Application settings and configuration.

This module defines all configuration options for the Yogic Ledger service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Yogic Ledger", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Security and authentication
    secret_key: str = Field(default="change-me", alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")
    internal_api_key: str | None = Field(default=None, alias="INTERNAL_API_KEY")

    # Database configuration
    database_url: str = Field(default="sqlite:///./yogic_ledger.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Redis is optional; without it cooldowns live in process memory
    redis_url: str | None = Field(default=None, alias="REDIS_URL")

    # JWT authentication settings
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 30,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Ledger behaviour
    ledger_timezone: str = Field(default="Asia/Kolkata", alias="LEDGER_TIMEZONE")
    ledger_max_retries: int = Field(default=3, alias="LEDGER_MAX_RETRIES")
    ledger_retry_backoff_seconds: float = Field(default=0.02, alias="LEDGER_RETRY_BACKOFF_SECONDS")
    steps_per_coin: int = Field(default=25, alias="STEPS_PER_COIN")

    # Activity plausibility ceilings
    max_walking_speed_kmh: float = Field(default=12.0, alias="MAX_WALKING_SPEED_KMH")
    max_steps_per_hour: int = Field(default=8000, alias="MAX_STEPS_PER_HOUR")
    max_steps_per_day: int = Field(default=50_000, alias="MAX_STEPS_PER_DAY")

    # OTP lifecycle
    otp_length: int = Field(default=6, alias="OTP_LENGTH")
    otp_expiry_seconds: int = Field(default=180, alias="OTP_EXPIRY_SECONDS")
    otp_resend_interval_seconds: int = Field(default=30, alias="OTP_RESEND_INTERVAL_SECONDS")
    otp_generation_threshold: int = Field(default=3, alias="OTP_GENERATION_THRESHOLD")
    otp_generation_window_seconds: int = Field(
        default=15 * 60, alias="OTP_GENERATION_WINDOW_SECONDS"
    )
    otp_generation_block_seconds: int = Field(
        default=60 * 60, alias="OTP_GENERATION_BLOCK_SECONDS"
    )
    otp_daily_ceiling: int = Field(default=10, alias="OTP_DAILY_CEILING")
    otp_verification_threshold: int = Field(default=5, alias="OTP_VERIFICATION_THRESHOLD")

    # Generic rate limiting
    rate_limit_window_seconds: int = Field(default=60 * 60, alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_block_seconds: int = Field(default=60 * 60, alias="RATE_LIMIT_BLOCK_SECONDS")
    rate_limit_permanent_after_blocks: int = Field(
        default=5, alias="RATE_LIMIT_PERMANENT_AFTER_BLOCKS"
    )

    # Referral programme
    referral_step_threshold: int = Field(default=1000, alias="REFERRAL_STEP_THRESHOLD")
    referral_referrer_bonus: int = Field(default=200, alias="REFERRAL_REFERRER_BONUS")
    referral_referee_bonus: int = Field(default=100, alias="REFERRAL_REFEREE_BONUS")

    # Twilio WhatsApp transport
    twilio_account_sid: str | None = Field(default=None, alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: str | None = Field(default=None, alias="TWILIO_AUTH_TOKEN")
    twilio_whatsapp_number: str | None = Field(default=None, alias="TWILIO_WHATSAPP_NUMBER")
    twilio_base_url: str = Field(default="https://api.twilio.com", alias="TWILIO_BASE_URL")
    messaging_timeout_seconds: float = Field(default=10.0, alias="MESSAGING_TIMEOUT_SECONDS")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling such as Alembic."""
        url = self.database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def twilio_configured(self) -> bool:
        """Return True when every Twilio credential is present."""
        return bool(
            self.twilio_account_sid and self.twilio_auth_token and self.twilio_whatsapp_number
        )


settings = Settings()
