from __future__ import annotations

from auth.models import TokenPair
from auth.session import RefreshCoordinator
from auth.token_store import FileTokenStore, MemoryTokenStore, TokenStore
from rowt.constants import APP_VERSION, LOGGER
from rowt.console import RowtConsole, create_console
from rowt.env import load_env, setup_logging, validate_env
from rowt.errors import (
    APIError,
    RefreshFailedError,
    RowtError,
    UnauthenticatedError,
    ValidationError,
)
from rowt.http import SessionPipeline, raise_for_status
from rowt.models import (
    AnalyticsBreakdownRequest,
    AnalyticsFilters,
    CreateLinkRequest,
    CreateProjectRequest,
    GetProjectOptions,
    LoginCredentials,
    ObservabilityEventsRequest,
    UpdatePasswordRequest,
    UpdateProjectRequest,
)

__all__ = [
    "APP_VERSION",
    "LOGGER",
    "APIError",
    "AnalyticsBreakdownRequest",
    "AnalyticsFilters",
    "CreateLinkRequest",
    "CreateProjectRequest",
    "FileTokenStore",
    "GetProjectOptions",
    "LoginCredentials",
    "MemoryTokenStore",
    "ObservabilityEventsRequest",
    "RefreshCoordinator",
    "RefreshFailedError",
    "RowtConsole",
    "RowtError",
    "SessionPipeline",
    "TokenPair",
    "TokenStore",
    "UnauthenticatedError",
    "UpdatePasswordRequest",
    "UpdateProjectRequest",
    "ValidationError",
    "create_console",
    "load_env",
    "raise_for_status",
    "setup_logging",
    "validate_env",
]
