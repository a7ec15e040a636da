from __future__ import annotations

import logging

LOGGER = logging.getLogger("rowt.console")
APP_VERSION = "0.1.0"

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_PAGE_LIMIT = 50
DEFAULT_PROJECT_WINDOW_DAYS = 7
DEFAULT_TIMEZONE = "UTC"

LOGIN_PATH = "/auth/login"
LOGOUT_PATH = "/auth/logout"
REFRESH_PATH = "/auth/refresh"
