"""Dynaconf settings configuration"""

from pathlib import Path
from dynaconf import Dynaconf, Validator

PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"

settings = Dynaconf(
    envvar_prefix="APP",
    settings_files=[
        str(CONFIG_DIR / "settings.toml"),
        str(CONFIG_DIR / "settings.local.toml"),
        str(CONFIG_DIR / ".secrets.toml"),
    ],
    environments=True,
    env_switcher="APP_ENV",
)

settings.validators.register(
    Validator("DATABASE_URL", must_exist=True),
    Validator("JWT_SECRET", must_exist=True, min_len=32),
    Validator("CRON_SECRET", must_exist=True, min_len=16),
    Validator("LOG_FORMAT", is_in=["pretty", "json"]),
    # Negotiation
    Validator("OFFER_TTL_HOURS", must_exist=True, gt=0),
    Validator("MAX_EXPIRING_WINDOW_HOURS", must_exist=True, gte=1),
    Validator("REQUEST_TIMEOUT_SECONDS", must_exist=True, gt=0),
    Validator("MAX_PAGE_SIZE", must_exist=True, gt=0),
    Validator("DEFAULT_PAGE_SIZE", must_exist=True, gt=0),
    # Expiration sweeper
    Validator("SWEEP_INTERVAL_SECONDS", must_exist=True, gt=0),
    Validator("SWEEP_BATCH_SIZE", must_exist=True, gt=0),
)


def validate_settings():
    """Validate all settings on startup. Raises dynaconf ValidationError."""
    settings.validators.validate()
