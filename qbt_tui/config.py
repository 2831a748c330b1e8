import os
import re
from datetime import datetime

import dotenv

from .layout import COLUMN_KEYS, DEFAULT_VISIBLE_COLUMNS
from .terminal import validate_template


dotenv.load_dotenv()


# Defaults
SERVER_URL = ""
SERVER_USERNAME = ""
SERVER_PASSWORD = ""
REFRESH_INTERVAL = 3
REQUEST_TIMEOUT = 10.0
COLUMNS = ",".join(DEFAULT_VISIBLE_COLUMNS)
DEFAULT_SORT_COLUMN = "name"
DEFAULT_SORT_DIRECTION = "asc"
TERMINAL_TITLE_ENABLED = False
TERMINAL_TITLE_TEMPLATE = "qbt-tui [{active_torrents}/{total_torrents}] ↓{dl_speed} ↑{up_speed}"

DEBUG_ENABLED = False
DEBUG_LOG_FILE = ""  # auto-generated under STATE_DIR when empty
LOG_LEVEL = "DEBUG"
LOG_ROTATION = "1 week"
LOG_RETENTION = "1 month"
STATE_DIR = os.path.join(os.path.expanduser("~"), ".local", "state", "qbt-tui")


class ConfigError(ValueError):
    """Raised when a configuration value is missing or invalid."""


def _split_list(value):
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    SERVER_URL = os.getenv("QBT_SERVER_URL", SERVER_URL)
    SERVER_USERNAME = os.getenv("QBT_SERVER_USERNAME", SERVER_USERNAME)
    SERVER_PASSWORD = os.getenv("QBT_SERVER_PASSWORD", SERVER_PASSWORD)

    REFRESH_INTERVAL = int(os.getenv("QBT_UI_REFRESH_INTERVAL", REFRESH_INTERVAL))
    REQUEST_TIMEOUT = float(os.getenv("QBT_REQUEST_TIMEOUT", REQUEST_TIMEOUT))

    # Table preferences
    COLUMNS = _split_list(os.getenv("QBT_UI_COLUMNS", COLUMNS))
    DEFAULT_SORT_COLUMN = os.getenv("QBT_UI_DEFAULT_SORT_COLUMN", DEFAULT_SORT_COLUMN)
    DEFAULT_SORT_DIRECTION = os.getenv("QBT_UI_DEFAULT_SORT_DIRECTION", DEFAULT_SORT_DIRECTION).lower()

    # Terminal title
    TERMINAL_TITLE_ENABLED = os.getenv(
        "QBT_UI_TERMINAL_TITLE_ENABLED", str(TERMINAL_TITLE_ENABLED)
    ).lower() == "true"
    TERMINAL_TITLE_TEMPLATE = os.getenv("QBT_UI_TERMINAL_TITLE_TEMPLATE", TERMINAL_TITLE_TEMPLATE)

    # Logging
    DEBUG_ENABLED = os.getenv("QBT_DEBUG_ENABLED", str(DEBUG_ENABLED)).lower() == "true"
    DEBUG_LOG_FILE = os.getenv("QBT_DEBUG_LOG_FILE", DEBUG_LOG_FILE)
    LOG_LEVEL = os.getenv("QBT_LOG_LEVEL", LOG_LEVEL)
    LOG_ROTATION = os.getenv("QBT_LOG_ROTATION", LOG_ROTATION)
    LOG_RETENTION = os.getenv("QBT_LOG_RETENTION", LOG_RETENTION)
    STATE_DIR = os.getenv("QBT_STATE_DIR", STATE_DIR)

    @property
    def log_path(self):
        """Resolve the debug log path, generating a timestamped one if unset."""
        if self.DEBUG_LOG_FILE:
            return self.DEBUG_LOG_FILE
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        return os.path.join(self.STATE_DIR, f"debug-{stamp}.log")

    def preferences(self):
        """Table preferences as the plain key/value pairs the table consumes."""
        return {
            "columns": ",".join(self.COLUMNS),
            "sort_column": self.DEFAULT_SORT_COLUMN,
            "sort_direction": self.DEFAULT_SORT_DIRECTION,
        }

    def validate(self):
        if not self.SERVER_URL:
            raise ConfigError("server url is required (set QBT_SERVER_URL or pass --url)")
        if not re.match(r"^https?://", self.SERVER_URL):
            raise ConfigError(f"server url must start with http:// or https://: {self.SERVER_URL}")

        if self.REFRESH_INTERVAL < 1:
            raise ConfigError("refresh interval must be at least 1 second")
        if self.REQUEST_TIMEOUT <= 0:
            raise ConfigError("request timeout must be positive")

        unknown = [key for key in self.COLUMNS if key not in COLUMN_KEYS]
        if unknown:
            raise ConfigError(
                f"unknown column(s) {', '.join(unknown)}; valid columns: {', '.join(COLUMN_KEYS)}"
            )

        if self.DEFAULT_SORT_COLUMN and self.DEFAULT_SORT_COLUMN not in COLUMN_KEYS:
            raise ConfigError(f"default sort column must be one of: {', '.join(COLUMN_KEYS)}")
        if self.DEFAULT_SORT_DIRECTION not in ("asc", "desc"):
            raise ConfigError("default sort direction must be either 'asc' or 'desc'")

        try:
            validate_template(self.TERMINAL_TITLE_TEMPLATE)
        except ValueError as e:
            raise ConfigError(f"terminal title template is invalid: {e}") from e

        return self
