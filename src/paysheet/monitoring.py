from typing import Optional

import sentry_sdk

from .config import Settings, get_settings
from .exceptions import ConfigurationError


def configure_error_monitoring(settings: Optional[Settings] = None) -> bool:
    settings = settings or get_settings()
    if not settings.sentry_dsn:
        return False
    sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.env, traces_sample_rate=0.2)
    return True


def report_configuration_error(error: ConfigurationError) -> None:
    """Send a schedule problem to Sentry with its context; no-op when Sentry is not initialised."""
    sentry_sdk.capture_exception(error, extras={key: str(value) for key, value in error.context.items()})
