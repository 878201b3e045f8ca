import logging
import warnings

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Environment
    environment: str = "development"  # development | test | production

    # Server
    farmlink_host: str = "0.0.0.0"
    farmlink_port: int = 8000

    # Database (sqlite for local dev, postgresql+asyncpg for production)
    database_url: str = "sqlite+aiosqlite:///./data/farmlink.db"
    database_echo: bool = False
    database_pool_size: int = 5  # ignored for sqlite
    database_max_overflow: int = 10

    # Auth (identity is issued upstream; we only verify)
    jwt_secret_key: str = "dev-secret-change-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24 * 7  # 7 days

    # Escrow
    escrow_provider: str = "mock"  # mock | stripe
    escrow_timeout_seconds: float = 10.0
    escrow_currency: str = "UGX"
    stripe_secret_key: str = ""

    # Notifications
    notification_timeout_seconds: float = 2.0
    ws_max_connections: int = 1000

    # Matching
    default_search_radius_km: float = 50.0

    # NFC
    nfc_ndef_prefix: str = "fty:driver:"

    # Checkpoint codes (inclusive range)
    checkpoint_code_min: int = 1000
    checkpoint_code_max: int = 9999

    # CORS
    cors_origins: str = "http://localhost:5173,http://localhost:3000"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()

_logger = logging.getLogger("farmlink.config")
_INSECURE_SECRETS = {
    "dev-secret-change-in-production",
    "change-me-to-a-random-string",
}


def validate_security_posture(cfg: Settings) -> None:
    is_prod = cfg.environment.lower() in {"production", "prod"}

    if cfg.jwt_secret_key in _INSECURE_SECRETS:
        if is_prod:
            raise RuntimeError(
                "FATAL: JWT_SECRET_KEY is set to an insecure default. "
                "Set a strong random secret via the JWT_SECRET_KEY environment variable before deploying to production."
            )
        warnings.warn(
            "JWT_SECRET_KEY is set to the default insecure value. "
            "Set a strong random secret via the JWT_SECRET_KEY environment variable for production.",
            stacklevel=1,
        )

    if cfg.cors_origins == "*":
        if is_prod:
            raise RuntimeError(
                "FATAL: CORS_ORIGINS cannot be '*' in production. "
                "Set explicit trusted origins via the CORS_ORIGINS environment variable."
            )
        _logger.warning(
            "CORS_ORIGINS is set to '*' (allow all). "
            "Configure specific origins for production via the CORS_ORIGINS environment variable."
        )

    if is_prod and cfg.escrow_provider == "mock":
        _logger.warning("ESCROW_PROVIDER is 'mock' in production; funds are never actually held")

    if cfg.checkpoint_code_min > cfg.checkpoint_code_max:
        raise RuntimeError("CHECKPOINT_CODE_MIN must not exceed CHECKPOINT_CODE_MAX")


validate_security_posture(settings)
