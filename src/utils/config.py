"""
Configuration for the Gig Orders engine.

Where the database lives and which settlement rate new orders use.

Environment variables:
    GIG_ORDERS_ENV           production (default) or development
    GIG_ORDERS_DATABASE_URL  any SQLAlchemy URL; replaces the SQLite file
"""

import logging
import os
from decimal import Decimal
from pathlib import Path
from typing import Optional

from .constants import DATABASE_FILENAME, PLATFORM_FEE_RATE

ENV_VAR_ENVIRONMENT = "GIG_ORDERS_ENV"
ENV_VAR_DATABASE_URL = "GIG_ORDERS_DATABASE_URL"


class Config:
    """
    Settings for one process.

    Production keeps the SQLite file in ``~/.gig_orders/``; development keeps
    it in the project's ``data/`` directory so test data stays out of the
    user's home.
    """

    def __init__(self, environment: str = "production", database_url: Optional[str] = None):
        self.environment = environment
        self._database_url_override = database_url

        if environment == "development":
            self._database_dir = Path(__file__).parent.parent.parent / "data"
        else:
            self._database_dir = Path.home() / ".gig_orders"
        self._database_path = self._database_dir / DATABASE_FILENAME

    def ensure_directories(self) -> None:
        """Create the database directory if it doesn't exist."""
        self._database_dir.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._database_path

    @property
    def database_url(self) -> str:
        """The explicit URL when one was configured, else a SQLite URL for database_path."""
        if self._database_url_override:
            return self._database_url_override
        return "sqlite:///" + str(self._database_path).replace("\\", "/")

    @property
    def platform_fee_rate(self) -> Decimal:
        """Commission taken from each order total."""
        return PLATFORM_FEE_RATE

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def database_exists(self) -> bool:
        """Whether the SQLite file exists; always True for an explicit URL."""
        if self._database_url_override:
            return True
        return self._database_path.exists()

    def __repr__(self) -> str:
        return f"Config(environment='{self.environment}', database_url='{self.database_url}')"


_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Process-wide Config, created on first call.

    The environment is fixed once the instance exists; asking for a
    different one logs a warning and returns the existing config so the
    database never switches under a running process.

    Args:
        environment: Environment for the first call. Defaults to
            GIG_ORDERS_ENV, then "production".
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get(ENV_VAR_ENVIRONMENT, "production")
        _config_instance = Config(environment, database_url=os.environ.get(ENV_VAR_DATABASE_URL))
    elif environment is not None and environment != _config_instance.environment:
        logging.getLogger(__name__).warning(
            f"get_config() called with environment='{environment}' but config "
            f"already exists with environment='{_config_instance.environment}'; "
            f"keeping the existing database"
        )

    return _config_instance


def reset_config():
    """Forget the process-wide Config (tests)."""
    global _config_instance
    _config_instance = None
