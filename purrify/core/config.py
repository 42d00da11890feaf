"""
Application Configuration

Environment variable validation and typed access to settings.
Integrations (Stripe, Resend, NetParcel) are optional; their credentials are
validated and reported but the required core variables must be present.
"""

import os
from dataclasses import dataclass
from typing import Optional, List


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing."""


REQUIRED_ENV_VARS = (
    'DATABASE_URL',
    'FLASK_SECRET_KEY',
    'APP_URL',
)

STRIPE_ENV_VARS = (
    'STRIPE_SECRET_KEY',
    'STRIPE_PUBLISHABLE_KEY',
    'STRIPE_WEBHOOK_SECRET',
)

RESEND_ENV_VARS = (
    'RESEND_API_KEY',
    'RESEND_WEBHOOK_SECRET',
)

NETPARCEL_ENV_VARS = (
    'NETPARCEL_API_KEY',
    'NETPARCEL_ACCOUNT_ID',
)

INTEGRATIONS = {
    'stripe': STRIPE_ENV_VARS,
    'resend': RESEND_ENV_VARS,
    'netparcel': NETPARCEL_ENV_VARS,
}


def missing_env_vars(names) -> List[str]:
    """Return the names from `names` that are unset or empty."""
    return [name for name in names if not os.environ.get(name)]


def validate_required_env() -> None:
    """Raise ConfigurationError listing every missing required variable."""
    missing = missing_env_vars(REQUIRED_ENV_VARS)
    if missing:
        listing = '\n'.join(f'  - {name}' for name in missing)
        raise ConfigurationError(
            f'Missing required environment variables:\n{listing}\n\n'
            'Copy .env.example to .env and fill in the required values.'
        )


def validate_stripe_env() -> bool:
    return not missing_env_vars(STRIPE_ENV_VARS)


def validate_resend_env() -> bool:
    return not missing_env_vars(RESEND_ENV_VARS)


def validate_netparcel_env() -> bool:
    return not missing_env_vars(NETPARCEL_ENV_VARS)


def _require(integration: str) -> None:
    names = INTEGRATIONS[integration]
    if missing_env_vars(names):
        raise ConfigurationError(
            f'{integration.capitalize()} is not configured. '
            f'Please set {", ".join(names)} in your environment.'
        )


def require_stripe() -> None:
    _require('stripe')


def require_resend() -> None:
    _require('resend')


def require_netparcel() -> None:
    _require('netparcel')


def integration_status() -> dict:
    """Configured/not-configured flag per optional integration."""
    return {name: not missing_env_vars(names) for name, names in INTEGRATIONS.items()}


@dataclass
class AppConfig:
    """Snapshot of runtime settings read from the environment."""

    # App
    APP_URL: str = 'http://localhost:5000'
    APP_VERSION: str = '1.0.0'
    ENVIRONMENT: str = 'development'
    REGION: str = 'local'
    DEBUG: bool = False
    TESTING: bool = False

    # Build info (set by CI)
    BUILD_COMMIT: str = 'unknown'
    BUILD_BRANCH: str = 'unknown'
    BUILD_DATE: Optional[str] = None

    # Database pool
    DB_POOL_MIN_CONN: int = 2
    DB_POOL_MAX_CONN: int = 8
    DB_POOL_TIMEOUT: int = 10

    # Health thresholds
    HEALTH_DEGRADED_MS: int = 1000
    HEALTH_UNHEALTHY_MS: int = 2000
    MEMORY_LIMIT_MB: Optional[int] = None  # None = use system total

    # NetParcel
    NETPARCEL_API_URL: str = 'https://api.netparcel.com/v1'

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """Load configuration from environment variables."""
        memory_limit = os.environ.get('MEMORY_LIMIT_MB')
        return cls(
            APP_URL=os.environ.get('APP_URL', 'http://localhost:5000'),
            APP_VERSION=os.environ.get('APP_VERSION', '1.0.0'),
            ENVIRONMENT=os.environ.get('APP_ENV', 'development'),
            REGION=os.environ.get('APP_REGION', 'local'),
            DEBUG=os.environ.get('FLASK_DEBUG', 'false').lower() == 'true',
            TESTING=bool(os.environ.get('TESTING')),
            BUILD_COMMIT=os.environ.get('GIT_COMMIT_SHA', 'unknown'),
            BUILD_BRANCH=os.environ.get('GIT_COMMIT_REF', 'unknown'),
            BUILD_DATE=os.environ.get('BUILD_DATE'),
            DB_POOL_MIN_CONN=int(os.environ.get('DB_POOL_MIN_CONN', '2')),
            DB_POOL_MAX_CONN=int(os.environ.get('DB_POOL_MAX_CONN', '8')),
            DB_POOL_TIMEOUT=int(os.environ.get('DB_POOL_TIMEOUT', '10')),
            HEALTH_DEGRADED_MS=int(os.environ.get('HEALTH_DEGRADED_MS', '1000')),
            HEALTH_UNHEALTHY_MS=int(os.environ.get('HEALTH_UNHEALTHY_MS', '2000')),
            MEMORY_LIMIT_MB=int(memory_limit) if memory_limit else None,
            NETPARCEL_API_URL=os.environ.get('NETPARCEL_API_URL', 'https://api.netparcel.com/v1'),
        )
