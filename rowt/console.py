from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
from pydantic import AnyHttpUrl

from auth import token_api
from auth.session import RefreshCoordinator
from auth.token_store import FileTokenStore, MemoryTokenStore, TokenStore

from .constants import (
    DEFAULT_PAGE_LIMIT,
    DEFAULT_PROJECT_WINDOW_DAYS,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_TIMEZONE,
    LOGGER,
)
from .env import (
    get_refresh_timeout,
    get_timeout,
    get_token_store_path,
    load_env,
    setup_logging,
    validate_env,
)
from .errors import RefreshFailedError, RowtError, ValidationError
from .http import SessionPipeline, build_log_hooks
from .models import (
    AnalyticsBreakdownRequest,
    AnalyticsBreakdownResponse,
    AnalyticsFilters,
    AnalyticsResponse,
    CreateLinkRequest,
    CreateProjectRequest,
    GetProjectOptions,
    LoginCredentials,
    ObservabilityEventsRequest,
    ObservabilityEventsResponse,
    RowtProject,
    RowtUser,
    TierStats,
    UpdatePasswordRequest,
    UpdateProjectRequest,
    UsageStats,
    to_iso,
)


def _require(value: Any, name: str) -> None:
    if not value:
        raise ValidationError(f"Missing {name}")


def _body(response: httpx.Response) -> Any:
    if "json" in response.headers.get("content-type", ""):
        return response.json()
    return response.text


class RowtConsole:
    """Async client for the Rowt console API.

    Calls that come back 401 are refreshed and retried once transparently;
    callers always await a single result.
    """

    def __init__(
        self,
        base_url: str,
        *,
        debug: bool = False,
        token_store: TokenStore | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        refresh_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.debug_enabled = debug
        self._logger = logger or LOGGER
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
            event_hooks=build_log_hooks(self._logger) if debug else None,
        )
        self.session = RefreshCoordinator(
            token_store or MemoryTokenStore(),
            self._exchange_refresh_token,
            refresh_timeout=refresh_timeout,
            logger=self._logger,
        )
        self._pipeline = SessionPipeline(self._client, self.session, logger=self._logger)

    async def __aenter__(self) -> "RowtConsole":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _exchange_refresh_token(self, refresh_token: str):
        return await token_api.refresh_tokens(self._client, refresh_token)

    async def _get(self, path: str, *, params: Any = None) -> Any:
        response = await self._pipeline.request("GET", path, params=params)
        return _body(response)

    async def _post(self, path: str, payload: Any = None, *, authenticated: bool = True) -> Any:
        response = await self._pipeline.request(
            "POST", path, json=payload, authenticated=authenticated
        )
        return _body(response)

    # -- auth ------------------------------------------------------------------

    async def login(self, credentials: LoginCredentials) -> RowtUser:
        pair, user = await token_api.exchange_credentials(
            self._client, credentials.email, credentials.password
        )
        await self.session.establish(pair)
        return RowtUser.from_payload(user)

    async def logout(self) -> str:
        try:
            await token_api.revoke_tokens(self._client, await self.session.tokens())
        except (RowtError, httpx.HTTPError) as error:
            self._logger.warning("Remote logout failed, clearing local session anyway: %s", error)
        finally:
            await self.session.clear()
        return "Logout successful"

    async def validate_user(self, credentials: LoginCredentials) -> bool:
        data = await self._post(
            "/auth/validate", credentials.to_payload(), authenticated=False
        )
        if not isinstance(data, dict):
            raise RowtError("Invalid validate response.")
        is_valid = bool(data.get("isValid", False))
        self._logger.debug("User validation result: %s", is_valid)
        return is_valid

    async def validate_tokens(self) -> bool:
        try:
            await self.get_profile()
        except (RowtError, httpx.HTTPError):
            return False
        return True

    async def manual_refresh_token(self) -> bool:
        try:
            await self.session.refresh()
        except RefreshFailedError:
            return False
        return True

    # -- users -----------------------------------------------------------------

    async def create_user(self, email: str, password: str) -> RowtUser:
        data = await self._post(
            "/users/create",
            {"email": email, "password": password},
            authenticated=False,
        )
        return RowtUser.from_payload(data)

    async def get_profile(self) -> RowtUser:
        return RowtUser.from_payload(await self._get("/auth/profile"))

    async def get_current_user(self) -> RowtUser:
        return RowtUser.from_payload(await self._get("/users/currentUser"))

    async def update_password(self, request: UpdatePasswordRequest) -> RowtUser:
        data = await self._post("/auth/updatepassword", request.to_payload())
        return RowtUser.from_payload(data)

    async def get_user_usage(self, user_id: str) -> UsageStats:
        _require(user_id, "userId")
        return UsageStats.from_payload(await self._post("/users/usage", {"userId": user_id}))

    async def get_user_tier(self, user_id: str) -> TierStats:
        _require(user_id, "userId")
        return TierStats.from_payload(await self._post("/users/tier", {"userId": user_id}))

    # -- projects --------------------------------------------------------------

    async def get_project_by_id(
        self,
        project_id: str,
        options: GetProjectOptions | None = None,
    ) -> RowtProject:
        _require(project_id, "projectId")

        now = datetime.now(timezone.utc)
        merged = GetProjectOptions(
            include_links=False,
            include_interactions=False,
            start_date=now - timedelta(days=DEFAULT_PROJECT_WINDOW_DAYS),
            end_date=now,
        ).to_payload()
        if options is not None:
            merged.update(options.to_payload())

        data = await self._post("/projects/getById", {"id": project_id, "options": merged})
        return RowtProject.from_payload(data)

    async def get_user_projects(self) -> list[RowtProject]:
        data = await self._post("/projects/getUserProjects")
        return [RowtProject.from_payload(project) for project in data]

    async def create_project(self, request: CreateProjectRequest) -> RowtProject:
        data = await self._post("/projects/create", request.to_payload())
        return RowtProject.from_payload(data)

    async def update_project(self, request: UpdateProjectRequest) -> RowtProject:
        self._logger.debug("Updating project %s", request.id)
        data = await self._post("/projects/update", request.to_payload())
        return RowtProject.from_payload(data)

    async def regenerate_api_key(self, project_id: str) -> str:
        _require(project_id, "projectId")
        data = await self._post("/projects/generateApiKey", {"projectId": project_id})
        api_key = data.get("apiKey") if isinstance(data, dict) else None
        if not isinstance(api_key, str) or not api_key:
            raise RowtError("Invalid API key response.")
        return api_key

    # -- links -----------------------------------------------------------------

    async def get_links_by_project_id(
        self,
        project_id: str,
        include_interactions: bool = False,
    ) -> Any:
        _require(project_id, "projectId")
        return await self._post(
            "/link/byProjectId",
            {"projectId": project_id, "includeInteractions": include_interactions},
        )

    async def create_link(self, request: CreateLinkRequest) -> str:
        _require(request.project_id, "projectId")
        return await self._post("/link", request.to_payload())

    # -- analytics -------------------------------------------------------------

    async def get_analytics(
        self,
        project_id: str,
        start_date: datetime,
        end_date: datetime,
        filters: AnalyticsFilters | None = None,
    ) -> AnalyticsResponse:
        _require(project_id, "projectId")

        params = {
            "projectId": project_id,
            "startDate": to_iso(start_date),
            "endDate": to_iso(end_date),
        }
        if filters is not None:
            params.update(filters.to_query_params())

        return AnalyticsResponse.from_payload(await self._get("/analytics", params=params))

    async def get_analytics_breakdown(
        self,
        request: AnalyticsBreakdownRequest,
    ) -> AnalyticsBreakdownResponse:
        _require(request.project_id, "projectId")
        _require(request.dimension, "dimension")
        if not request.start_date or not request.end_date:
            raise ValidationError("Missing startDate or endDate")

        payload = {
            "projectId": request.project_id,
            "dimension": request.dimension,
            "startDate": to_iso(request.start_date),
            "endDate": to_iso(request.end_date),
            "timezone": request.timezone or DEFAULT_TIMEZONE,
            "limit": request.limit or DEFAULT_PAGE_LIMIT,
            "offset": request.offset or 0,
            "filters": request.filters.to_payload() if request.filters else {},
        }
        data = await self._post("/analytics/breakdown", payload)
        return AnalyticsBreakdownResponse.from_payload(data)

    # -- observability ---------------------------------------------------------

    async def get_observability_events(
        self,
        request: ObservabilityEventsRequest | None = None,
    ) -> ObservabilityEventsResponse:
        request = request or ObservabilityEventsRequest()
        payload = {
            "projectId": request.project_id,
            "startDate": to_iso(request.start_date) if request.start_date else None,
            "endDate": to_iso(request.end_date) if request.end_date else None,
            "eventTypes": request.event_types,
            "search": request.search,
            "linkId": request.link_id,
            "limit": request.limit or DEFAULT_PAGE_LIMIT,
            "offset": request.offset or 0,
            "sortDirection": request.sort_direction or "DESC",
        }
        payload = {key: value for key, value in payload.items() if value is not None}

        data = await self._post("/observability/events", payload)
        return ObservabilityEventsResponse.from_payload(data)


def create_console(*, transport: httpx.AsyncBaseTransport | None = None) -> RowtConsole:
    load_env()
    debug_enabled = setup_logging()
    validate_env()

    base_url = AnyHttpUrl(os.getenv("ROWT_BASE_URL", "").strip())
    store_path = get_token_store_path()
    token_store: TokenStore = FileTokenStore(store_path) if store_path else MemoryTokenStore()

    return RowtConsole(
        str(base_url),
        debug=debug_enabled,
        token_store=token_store,
        timeout=get_timeout(),
        refresh_timeout=get_refresh_timeout(),
        transport=transport,
    )
