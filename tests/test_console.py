import asyncio
import logging
from datetime import datetime, timezone

import httpx
import pytest

from auth.models import TokenPair
from auth.token_store import FileTokenStore, MemoryTokenStore
from rowt.console import RowtConsole
from rowt.errors import RefreshFailedError, RowtError, UnauthenticatedError, ValidationError
from rowt.models import (
    AnalyticsBreakdownRequest,
    AnalyticsFilters,
    CreateLinkRequest,
    GetProjectOptions,
    LoginCredentials,
    ObservabilityEventsRequest,
)
from tests.rowt_helpers import BASE_URL, USER_PAYLOAD, build_console, wait_until

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
END = datetime(2024, 1, 8, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_login_then_accepted_call_never_refreshes(fake_server) -> None:
    fake_server.routes[("POST", "/auth/login")] = (
        200,
        {"tokens": {"access_token": "at1", "refresh_token": "rt1"}, "user": USER_PAYLOAD},
    )
    fake_server.valid_access_tokens.add("at1")
    console, store = build_console(fake_server)

    user = await console.login(LoginCredentials("dev@rowt.app", "hunter2"))
    profile = await console.get_profile()

    assert user.id == "user-1"
    assert user.email_verified is True
    assert profile.email == "dev@rowt.app"
    assert await store.get() == TokenPair("at1", "rt1")
    assert fake_server.authorizations("/auth/profile") == ["Bearer at1"]
    assert fake_server.refresh_calls == 0
    await console.aclose()


@pytest.mark.asyncio
async def test_concurrent_auth_failures_share_one_refresh(fake_server, stale_pair) -> None:
    fake_server.refresh_gate = asyncio.Event()
    console, store = build_console(fake_server, stale_pair)

    call_a = asyncio.create_task(console.get_profile())
    call_b = asyncio.create_task(console.get_current_user())
    await wait_until(lambda: console.session.pending_count == 2)
    fake_server.refresh_gate.set()
    user_a, user_b = await asyncio.gather(call_a, call_b)

    assert user_a.id == user_b.id == "user-1"
    assert fake_server.refresh_calls == 1
    assert fake_server.refresh_bodies == [{"refresh_token": "rt0"}]
    assert fake_server.authorizations("/auth/profile") == ["Bearer at0", "Bearer T2"]
    assert fake_server.authorizations("/users/currentUser") == ["Bearer at0", "Bearer T2"]
    assert await store.get() == TokenPair("T2", "R2")
    await console.aclose()


@pytest.mark.asyncio
async def test_many_concurrent_calls_settle(fake_server, stale_pair) -> None:
    fake_server.refresh_gate = asyncio.Event()
    console, _ = build_console(fake_server, stale_pair)

    calls = [asyncio.create_task(console.get_profile()) for _ in range(10)]
    await wait_until(lambda: console.session.pending_count == 10)
    fake_server.refresh_gate.set()
    results = await asyncio.gather(*calls)

    assert len(results) == 10
    assert fake_server.refresh_calls == 1
    await console.aclose()


@pytest.mark.asyncio
async def test_absent_refresh_token_fails_all_callers(fake_server) -> None:
    console, store = build_console(fake_server)

    results = await asyncio.gather(
        console.get_profile(),
        console.get_current_user(),
        return_exceptions=True,
    )

    assert all(isinstance(result, RefreshFailedError) for result in results)
    assert fake_server.refresh_calls == 0
    assert await store.get() is None
    await console.aclose()


@pytest.mark.asyncio
async def test_rejected_refresh_clears_session(fake_server, stale_pair) -> None:
    fake_server.refresh_response = (401, {"message": "refresh token revoked"})
    console, store = build_console(fake_server, stale_pair)

    with pytest.raises(RefreshFailedError):
        await console.get_profile()

    assert await store.get() is None
    await console.aclose()


@pytest.mark.asyncio
async def test_call_rejected_after_refresh_is_not_retried_again(fake_server, stale_pair) -> None:
    fake_server.always_reject = True
    console, _ = build_console(fake_server, stale_pair)

    with pytest.raises(UnauthenticatedError) as excinfo:
        await console.get_profile()

    assert not isinstance(excinfo.value, RefreshFailedError)
    assert fake_server.refresh_calls == 1
    assert len(fake_server.authorizations("/auth/profile")) == 2
    await console.aclose()


@pytest.mark.asyncio
async def test_logout_clears_session_even_when_remote_fails(fake_server) -> None:
    fake_server.routes[("POST", "/auth/logout")] = (500, {"message": "down"})
    console, store = build_console(fake_server, TokenPair("at1", "rt1"))

    assert await console.logout() == "Logout successful"

    assert fake_server.last_json("/auth/logout") == {
        "access_token": "at1",
        "refresh_token": "rt1",
    }
    assert "authorization" not in fake_server.requests[-1].headers
    assert await store.get() is None
    await console.aclose()


@pytest.mark.asyncio
async def test_logout_when_logged_out_is_idempotent(fake_server) -> None:
    console, store = build_console(fake_server)

    assert await console.logout() == "Logout successful"
    assert await console.logout() == "Logout successful"

    assert await store.get() is None
    await console.aclose()


@pytest.mark.asyncio
async def test_logout_survives_network_error() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    store = MemoryTokenStore(TokenPair("at1", "rt1"))
    console = RowtConsole(BASE_URL, token_store=store, transport=httpx.MockTransport(handler))

    assert await console.logout() == "Logout successful"
    assert await store.get() is None
    await console.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["[1, 2]", "{not json"])
async def test_logout_over_corrupt_token_file(fake_server, tmp_path, content) -> None:
    path = tmp_path / "tokens.json"
    path.write_text(content, encoding="utf-8")
    console = RowtConsole(
        BASE_URL,
        token_store=FileTokenStore(path),
        transport=httpx.MockTransport(fake_server),
    )

    assert await console.logout() == "Logout successful"

    assert fake_server.last_json("/auth/logout") == {
        "access_token": None,
        "refresh_token": None,
    }
    assert not path.exists()
    await console.aclose()


@pytest.mark.asyncio
async def test_corrupt_token_file_sends_call_unsigned(fake_server, tmp_path) -> None:
    path = tmp_path / "tokens.json"
    path.write_text("{not json", encoding="utf-8")
    console = RowtConsole(
        BASE_URL,
        token_store=FileTokenStore(path),
        transport=httpx.MockTransport(fake_server),
    )

    with pytest.raises(RefreshFailedError, match="No refresh token available"):
        await console.get_profile()

    assert fake_server.authorizations("/auth/profile") == [None]
    await console.aclose()


@pytest.mark.asyncio
async def test_validate_tokens(fake_server) -> None:
    fake_server.valid_access_tokens.add("at1")
    console, _ = build_console(fake_server, TokenPair("at1", "rt1"))

    assert await console.validate_tokens() is True

    await console.session.clear()
    assert await console.validate_tokens() is False
    await console.aclose()


@pytest.mark.asyncio
async def test_manual_refresh_token(fake_server, stale_pair) -> None:
    console, store = build_console(fake_server, stale_pair)

    assert await console.manual_refresh_token() is True
    assert await store.get() == TokenPair("T2", "R2")

    fake_server.refresh_response = (400, {"message": "invalid"})
    assert await console.manual_refresh_token() is False
    assert await store.get() is None
    await console.aclose()


@pytest.mark.asyncio
async def test_validation_fails_before_any_request(fake_server) -> None:
    console, _ = build_console(fake_server, TokenPair("at1", "rt1"))

    with pytest.raises(ValidationError, match="Missing projectId"):
        await console.get_project_by_id("")
    with pytest.raises(ValidationError, match="Missing projectId"):
        await console.get_links_by_project_id("")
    with pytest.raises(ValidationError, match="Missing projectId"):
        await console.get_analytics("", START, END)
    with pytest.raises(ValidationError, match="Missing projectId"):
        await console.regenerate_api_key("")
    with pytest.raises(ValidationError, match="Missing dimension"):
        await console.get_analytics_breakdown(
            AnalyticsBreakdownRequest("project-1", "", START, END)
        )
    with pytest.raises(ValidationError, match="Missing startDate or endDate"):
        await console.get_analytics_breakdown(
            AnalyticsBreakdownRequest("project-1", "country", START, None)
        )
    with pytest.raises(ValidationError, match="Missing userId"):
        await console.get_user_usage("")

    assert fake_server.requests == []
    await console.aclose()


@pytest.mark.asyncio
async def test_get_project_by_id_merges_default_options(fake_server) -> None:
    fake_server.valid_access_tokens.add("at1")
    fake_server.routes[("POST", "/projects/getById")] = (
        200,
        {
            "id": "project-1",
            "apiKey": "key",
            "userId": "user-1",
            "name": "Launch",
            "baseUrl": "https://rowt.app",
            "fallbackUrl": "https://rowt.app/fallback",
            "links": [
                {
                    "id": "link-1",
                    "url": "https://rowt.app/a",
                    "lifetimeClicks": 12,
                    "properties": {},
                    "createdAt": "2024-01-02T10:00:00.000Z",
                }
            ],
        },
    )
    console, _ = build_console(fake_server, TokenPair("at1", "rt1"))

    project = await console.get_project_by_id(
        "project-1", GetProjectOptions(include_links=True)
    )

    payload = fake_server.last_json("/projects/getById")
    assert payload["id"] == "project-1"
    assert payload["options"]["includeLinks"] is True
    assert payload["options"]["includeInteractions"] is False
    start = datetime.fromisoformat(payload["options"]["startDate"].replace("Z", "+00:00"))
    end = datetime.fromisoformat(payload["options"]["endDate"].replace("Z", "+00:00"))
    assert (end - start).days == 7
    assert project.links[0].lifetime_clicks == 12
    assert project.links[0].created_at == datetime(2024, 1, 2, 10, tzinfo=timezone.utc)
    await console.aclose()


@pytest.mark.asyncio
async def test_get_analytics_sends_filters_as_query(fake_server) -> None:
    fake_server.valid_access_tokens.add("at1")
    fake_server.routes[("GET", "/analytics")] = (
        200,
        {
            "query": {
                "projectId": "project-1",
                "startDate": "2024-01-01T00:00:00.000Z",
                "endDate": "2024-01-08T00:00:00.000Z",
                "executedAt": "2024-01-08T00:00:01.000Z",
            },
            "summary": {"totalInteractions": 3, "uniqueVisitors": 2, "timeRange": "7d"},
            "timeSeries": {
                "granularity": "day",
                "data": [
                    {"timestamp": "2024-01-01T00:00:00.000Z", "count": 3, "label": "Jan 1"}
                ],
            },
            "aggregations": {"topCountries": {"items": [], "hasMore": False}},
        },
    )
    console, _ = build_console(fake_server, TokenPair("at1", "rt1"))

    analytics = await console.get_analytics(
        "project-1", START, END, AnalyticsFilters(country="NL", top_n=5)
    )

    params = fake_server.requests[-1].url.params
    assert params["projectId"] == "project-1"
    assert params["startDate"] == "2024-01-01T00:00:00.000Z"
    assert params["endDate"] == "2024-01-08T00:00:00.000Z"
    assert params["country"] == "NL"
    assert params["topN"] == "5"
    assert "city" not in params
    assert analytics.summary["totalInteractions"] == 3
    assert analytics.time_series.data[0].timestamp == START
    assert analytics.query.executed_at.second == 1
    await console.aclose()


@pytest.mark.asyncio
async def test_get_analytics_breakdown_defaults(fake_server) -> None:
    fake_server.valid_access_tokens.add("at1")
    fake_server.routes[("POST", "/analytics/breakdown")] = (
        200,
        {
            "query": {"projectId": "project-1", "dimension": "country"},
            "dimension": "country",
            "items": [{"value": "NL", "count": 4, "percentage": 80.0}],
            "pagination": {"limit": 50, "offset": 0, "total": 1, "hasMore": False},
        },
    )
    console, _ = build_console(fake_server, TokenPair("at1", "rt1"))

    breakdown = await console.get_analytics_breakdown(
        AnalyticsBreakdownRequest("project-1", "country", START, END)
    )

    assert fake_server.last_json("/analytics/breakdown") == {
        "projectId": "project-1",
        "dimension": "country",
        "startDate": "2024-01-01T00:00:00.000Z",
        "endDate": "2024-01-08T00:00:00.000Z",
        "timezone": "UTC",
        "limit": 50,
        "offset": 0,
        "filters": {},
    }
    assert breakdown.items[0].value == "NL"
    assert breakdown.pagination.total == 1
    await console.aclose()


@pytest.mark.asyncio
async def test_get_observability_events_defaults(fake_server) -> None:
    fake_server.valid_access_tokens.add("at1")
    fake_server.routes[("POST", "/observability/events")] = (
        200,
        {
            "events": [
                {
                    "id": "evt-1",
                    "type": "link.created",
                    "timestamp": "2024-01-03T12:00:00.000Z",
                    "actor": {"type": "user", "id": "user-1"},
                    "resource": {"type": "link", "id": "link-1", "attributes": {}},
                    "metadata": {},
                }
            ],
            "pagination": {"limit": 50, "offset": 0, "total": 1, "hasMore": False},
        },
    )
    console, _ = build_console(fake_server, TokenPair("at1", "rt1"))

    events = await console.get_observability_events(
        ObservabilityEventsRequest(project_id="project-1")
    )

    assert fake_server.last_json("/observability/events") == {
        "projectId": "project-1",
        "limit": 50,
        "offset": 0,
        "sortDirection": "DESC",
    }
    assert events.events[0].timestamp == datetime(2024, 1, 3, 12, tzinfo=timezone.utc)
    assert events.pagination.has_more is False
    await console.aclose()


@pytest.mark.asyncio
async def test_create_link_returns_short_url(fake_server) -> None:
    fake_server.valid_access_tokens.add("at1")
    fake_server.routes[("POST", "/link")] = (200, "https://rowt.link/abc123")
    console, _ = build_console(fake_server, TokenPair("at1", "rt1"))

    short_url = await console.create_link(
        CreateLinkRequest(
            project_id="project-1",
            api_key="key",
            url="https://rowt.app/launch",
            custom_shortcode="abc123",
        )
    )

    assert short_url == "https://rowt.link/abc123"
    assert fake_server.last_json("/link") == {
        "projectId": "project-1",
        "apiKey": "key",
        "url": "https://rowt.app/launch",
        "customShortcode": "abc123",
    }
    await console.aclose()


@pytest.mark.asyncio
async def test_regenerate_api_key_after_refresh(fake_server, stale_pair) -> None:
    fake_server.routes[("POST", "/projects/generateApiKey")] = (200, {"apiKey": "new-key"})
    console, _ = build_console(fake_server, stale_pair)

    assert await console.regenerate_api_key("project-1") == "new-key"
    assert fake_server.authorizations("/projects/generateApiKey") == [
        "Bearer at0",
        "Bearer T2",
    ]
    assert fake_server.last_json("/projects/generateApiKey") == {"projectId": "project-1"}
    await console.aclose()


@pytest.mark.asyncio
async def test_validate_user_and_create_user_are_unsigned(fake_server) -> None:
    fake_server.routes[("POST", "/auth/validate")] = (200, {"isValid": True})
    fake_server.routes[("POST", "/users/create")] = (200, USER_PAYLOAD)
    console, _ = build_console(fake_server, TokenPair("at1", "rt1"))

    assert await console.validate_user(LoginCredentials("dev@rowt.app", "hunter2")) is True
    user = await console.create_user("dev@rowt.app", "hunter2")

    assert user.customer_id == "cus_1"
    assert fake_server.authorizations("/auth/validate") == [None]
    assert fake_server.authorizations("/users/create") == [None]
    await console.aclose()


@pytest.mark.asyncio
async def test_validate_user_rejects_non_object_body(fake_server) -> None:
    fake_server.routes[("POST", "/auth/validate")] = (200, "ok")
    console, _ = build_console(fake_server)

    with pytest.raises(RowtError, match="Invalid validate response"):
        await console.validate_user(LoginCredentials("dev@rowt.app", "hunter2"))
    await console.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{}, {"apiKey": ""}, {"apiKey": 42}, "new-key"])
async def test_regenerate_api_key_rejects_malformed_body(fake_server, payload) -> None:
    fake_server.valid_access_tokens.add("at1")
    fake_server.routes[("POST", "/projects/generateApiKey")] = (200, payload)
    console, _ = build_console(fake_server, TokenPair("at1", "rt1"))

    with pytest.raises(RowtError, match="Invalid API key response"):
        await console.regenerate_api_key("project-1")
    assert fake_server.refresh_calls == 0
    await console.aclose()


@pytest.mark.asyncio
async def test_debug_logging_hooks(fake_server, caplog) -> None:
    fake_server.valid_access_tokens.add("at1")
    console, _ = build_console(fake_server, TokenPair("at1", "rt1"), debug=True)

    with caplog.at_level(logging.INFO, logger="rowt.console"):
        await console.get_profile()

    messages = [record.getMessage() for record in caplog.records]
    assert any("Rowt API request GET" in message for message in messages)
    assert any("-> 200" in message for message in messages)
    assert not any("at1" in message for message in messages)
    await console.aclose()
