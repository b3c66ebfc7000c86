"""Application configuration loaded from environment variables.

Settings for the database pool, password hashing, change tokens, and session
tokens. Uses pydantic-settings for validation and .env file support.
"""

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "account_dev_password"  # nosec B105

# Minimum length for SESSION_TOKEN_SECRET in production (256 bits = 32 bytes)
_MIN_SESSION_SECRET_LENGTH = 32

# bcrypt accepts cost factors 4..31
_MIN_BCRYPT_ROUNDS = 4
_MAX_BCRYPT_ROUNDS = 31


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    # DATABASE_URL_OVERRIDE wins over the individual parts (e.g. sqlite+aiosqlite)
    database_url_override: str = ""
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "accounts"
    database_user: str = "account_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD
    database_pool_size: int = 10
    database_max_overflow: int = 0
    database_echo: bool = False

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Passwords
    bcrypt_rounds: int = 12

    # Account changes (email / password); verification never expires
    change_ttl_days: int = 14

    # Session tokens
    session_token_secret: SecretStr = SecretStr("")
    session_token_issuer: str = "account-service"
    session_token_ttl_minutes: int = 60

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate configuration invariants.

        Checks:
        - Pool size must be positive (all environments)
        - bcrypt rounds must be within bcrypt's accepted range (all environments)
        - Change and session TTLs must be positive (all environments)
        - Database password must not be the default in production
        - SESSION_TOKEN_SECRET must be set and >= 32 chars in production
        """
        if self.database_pool_size <= 0:
            msg = f"DATABASE_POOL_SIZE must be positive. Got: {self.database_pool_size}"
            raise ValueError(msg)

        if not _MIN_BCRYPT_ROUNDS <= self.bcrypt_rounds <= _MAX_BCRYPT_ROUNDS:
            msg = (
                f"BCRYPT_ROUNDS must be between {_MIN_BCRYPT_ROUNDS} and "
                f"{_MAX_BCRYPT_ROUNDS}. Got: {self.bcrypt_rounds}"
            )
            raise ValueError(msg)

        if self.change_ttl_days <= 0:
            msg = f"CHANGE_TTL_DAYS must be positive. Got: {self.change_ttl_days}"
            raise ValueError(msg)

        if self.session_token_ttl_minutes <= 0:
            msg = (
                "SESSION_TOKEN_TTL_MINUTES must be positive. "
                f"Got: {self.session_token_ttl_minutes}"
            )
            raise ValueError(msg)

        if self.environment == "production":
            if (
                not self.database_url_override
                and self.database_password == _INSECURE_DEFAULT_PASSWORD
            ):
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.session_token_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "SESSION_TOKEN_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_SESSION_SECRET_LENGTH:
                msg = (
                    f"SESSION_TOKEN_SECRET must be at least "
                    f"{_MIN_SESSION_SECRET_LENGTH} characters for adequate security."
                )
                raise ValueError(msg)

        return self


settings = Settings()
