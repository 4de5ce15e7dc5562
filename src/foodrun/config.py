"""Runtime configuration for foodrun.

Every setting can be overridden with a FOODRUN_* environment variable.
"""

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Mapping

from .errors import ConfigError
from .pricing import PricingRules

ENV_PREFIX = "FOODRUN_"

# Local data directory within the foodrun project
_default_data_dir = Path(__file__).parent.parent.parent / "data"

DEFAULT_TOKEN_SECRET = "foodrun-dev-secret-change-me"


def _decimal(env: Mapping[str, str], name: str, default: str) -> Decimal:
    raw = env.get(ENV_PREFIX + name, default)
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ConfigError(ENV_PREFIX + name, raw, "not a number") from None
    if not value.is_finite():
        raise ConfigError(ENV_PREFIX + name, raw, "not a finite number")
    if value < 0:
        raise ConfigError(ENV_PREFIX + name, raw, "must not be negative")
    return value


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(ENV_PREFIX + name, raw, "not an integer") from None
    if value <= 0:
        raise ConfigError(ENV_PREFIX + name, raw, "must be positive")
    return value


@dataclass(frozen=True)
class Settings:
    """Process-wide settings."""

    data_dir: Path = _default_data_dir
    delivery_fee: Decimal = Decimal("40")
    free_delivery_threshold: Decimal = Decimal("500")
    tax_rate: Decimal = Decimal("0.05")
    token_secret: str = DEFAULT_TOKEN_SECRET
    token_ttl_seconds: int = 12 * 60 * 60
    admin_username: str = "admin"
    admin_password_hash: str | None = None  # bcrypt hash; admin login disabled when unset
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """
        Build settings from environment variables.

        Raises:
            ConfigError: If a numeric setting cannot be parsed.
        """
        env = os.environ if env is None else env
        tax_rate = _decimal(env, "TAX_RATE", "0.05")
        if tax_rate > 1:
            raise ConfigError(ENV_PREFIX + "TAX_RATE", str(tax_rate), "must be a fraction")
        return cls(
            data_dir=Path(env.get(ENV_PREFIX + "DATA_DIR", str(_default_data_dir))),
            delivery_fee=_decimal(env, "DELIVERY_FEE", "40"),
            free_delivery_threshold=_decimal(env, "FREE_DELIVERY_THRESHOLD", "500"),
            tax_rate=tax_rate,
            token_secret=env.get(ENV_PREFIX + "TOKEN_SECRET", DEFAULT_TOKEN_SECRET),
            token_ttl_seconds=_int(env, "TOKEN_TTL_SECONDS", 12 * 60 * 60),
            admin_username=env.get(ENV_PREFIX + "ADMIN_USERNAME", "admin"),
            admin_password_hash=env.get(ENV_PREFIX + "ADMIN_PASSWORD_HASH") or None,
            log_level=env.get(ENV_PREFIX + "LOG_LEVEL", "WARNING").upper(),
        )

    def pricing_rules(self) -> PricingRules:
        return PricingRules(
            delivery_fee=self.delivery_fee,
            free_delivery_threshold=self.free_delivery_threshold,
            tax_rate=self.tax_rate,
        )
