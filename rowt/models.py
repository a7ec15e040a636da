from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any


def to_iso(value: datetime) -> str:
    """Serialise like ``Date.toISOString()``: UTC, milliseconds, ``Z`` suffix."""
    utc = value.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _wire_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso(value)
    if hasattr(value, "to_payload"):
        return value.to_payload()
    return value


class _Payload:
    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for item in fields(self):  # type: ignore[arg-type]
            value = getattr(self, item.name)
            if value is None:
                continue
            payload[_camel(item.name)] = _wire_value(value)
        return payload


# -- requests -----------------------------------------------------------------


@dataclass
class LoginCredentials(_Payload):
    email: str
    password: str


@dataclass
class UpdatePasswordRequest(_Payload):
    email: str
    password: str


@dataclass
class GetProjectOptions(_Payload):
    include_links: bool | None = None
    include_interactions: bool | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    get_previous_period: bool | None = None


@dataclass
class CreateProjectRequest(_Payload):
    user_id: str
    name: str
    base_url: str
    fallback_url: str


@dataclass
class UpdateProjectRequest(_Payload):
    id: str
    api_key: str
    user_id: str
    name: str
    base_url: str
    fallback_url: str
    appstore_id: str | None = None
    playstore_id: str | None = None
    ios_scheme: str | None = None
    android_scheme: str | None = None


@dataclass
class CreateLinkRequest(_Payload):
    project_id: str
    api_key: str
    url: str
    custom_shortcode: str | None = None
    expiration: datetime | None = None
    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    fallback_url_override: str | None = None
    additional_metadata: dict[str, Any] | None = None
    properties: dict[str, Any] | None = None


@dataclass
class AnalyticsFilters(_Payload):
    link_id: str | None = None
    country: str | None = None
    city: str | None = None
    device: str | None = None
    os: str | None = None
    browser: str | None = None
    referer: str | None = None
    utm_source: str | None = None
    utm_medium: str | None = None
    utm_campaign: str | None = None
    utm_term: str | None = None
    utm_content: str | None = None
    resolved_url: str | None = None
    top_n: int | None = None
    timezone: str | None = None

    def to_query_params(self) -> dict[str, str]:
        return {key: str(value) for key, value in self.to_payload().items()}


@dataclass
class AnalyticsBreakdownRequest:
    project_id: str
    dimension: str
    start_date: datetime
    end_date: datetime
    timezone: str | None = None
    limit: int | None = None
    offset: int | None = None
    filters: AnalyticsFilters | None = None


@dataclass
class ObservabilityEventsRequest:
    project_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    event_types: list[str] | None = None
    search: str | None = None
    link_id: str | None = None
    limit: int | None = None
    offset: int | None = None
    sort_direction: str | None = None


# -- responses ----------------------------------------------------------------


@dataclass
class RowtUser:
    id: str
    email: str
    role: str | None = None
    email_verified: bool = False
    customer_id: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "RowtUser":
        return cls(
            id=payload.get("id", ""),
            email=payload.get("email", ""),
            role=payload.get("role"),
            email_verified=bool(payload.get("emailVerified", False)),
            customer_id=payload.get("customerId"),
        )


@dataclass
class RowtLink:
    id: str
    url: str
    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    fallback_url_override: str | None = None
    additional_metadata: dict[str, Any] | None = None
    properties: dict[str, Any] = field(default_factory=dict)
    lifetime_clicks: int = 0
    interactions: list[dict] | None = None
    created_at: datetime | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "RowtLink":
        return cls(
            id=payload.get("id", ""),
            url=payload.get("url", ""),
            title=payload.get("title"),
            description=payload.get("description"),
            image_url=payload.get("imageUrl"),
            fallback_url_override=payload.get("fallbackUrlOverride"),
            additional_metadata=payload.get("additionalMetadata"),
            properties=payload.get("properties") or {},
            lifetime_clicks=payload.get("lifetimeClicks", 0),
            interactions=payload.get("interactions"),
            created_at=parse_datetime(payload.get("createdAt")),
        )


@dataclass
class RowtProject:
    id: str
    api_key: str
    user_id: str
    name: str
    base_url: str
    fallback_url: str
    appstore_id: str | None = None
    playstore_id: str | None = None
    ios_scheme: str | None = None
    android_scheme: str | None = None
    links: list[RowtLink] | None = None
    previous_period_interaction_count: int | None = None
    interactions: list[dict] | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "RowtProject":
        links = payload.get("links")
        return cls(
            id=payload.get("id", ""),
            api_key=payload.get("apiKey", ""),
            user_id=payload.get("userId", ""),
            name=payload.get("name", ""),
            base_url=payload.get("baseUrl", ""),
            fallback_url=payload.get("fallbackUrl", ""),
            appstore_id=payload.get("appstoreId"),
            playstore_id=payload.get("playstoreId"),
            ios_scheme=payload.get("iosScheme"),
            android_scheme=payload.get("androidScheme"),
            links=[RowtLink.from_payload(link) for link in links] if links is not None else None,
            previous_period_interaction_count=payload.get("previousPeriodInteractionCount"),
            interactions=payload.get("interactions"),
        )


@dataclass
class UsageStats:
    links: int
    interactions: int
    period_start: datetime | None = None
    period_end: datetime | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "UsageStats":
        period = payload.get("period") or {}
        return cls(
            links=payload.get("links", 0),
            interactions=payload.get("interactions", 0),
            period_start=parse_datetime(period.get("start")),
            period_end=parse_datetime(period.get("end")),
        )


@dataclass
class TierStats:
    tier: int
    allowances: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict) -> "TierStats":
        return cls(tier=payload.get("tier", 0), allowances=payload.get("allowances") or {})


@dataclass
class AnalyticsQuery:
    project_id: str
    start_date: datetime | None
    end_date: datetime | None
    executed_at: datetime | None
    applied_filters: dict[str, Any] | None = None
    dimension: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "AnalyticsQuery":
        return cls(
            project_id=payload.get("projectId", ""),
            start_date=parse_datetime(payload.get("startDate")),
            end_date=parse_datetime(payload.get("endDate")),
            executed_at=parse_datetime(payload.get("executedAt")),
            applied_filters=payload.get("appliedFilters"),
            dimension=payload.get("dimension"),
        )


@dataclass
class TimeSeriesPoint:
    timestamp: datetime | None
    count: int
    label: str

    @classmethod
    def from_payload(cls, payload: dict) -> "TimeSeriesPoint":
        return cls(
            timestamp=parse_datetime(payload.get("timestamp")),
            count=payload.get("count", 0),
            label=payload.get("label", ""),
        )


@dataclass
class TimeSeries:
    granularity: str
    data: list[TimeSeriesPoint]

    @classmethod
    def from_payload(cls, payload: dict) -> "TimeSeries":
        return cls(
            granularity=payload.get("granularity", "day"),
            data=[TimeSeriesPoint.from_payload(point) for point in payload.get("data", [])],
        )


@dataclass
class AggregationItem:
    value: str
    count: int
    percentage: float
    link_title: str | None = None
    link_url: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "AggregationItem":
        return cls(
            value=payload.get("value", ""),
            count=payload.get("count", 0),
            percentage=payload.get("percentage", 0.0),
            link_title=payload.get("linkTitle"),
            link_url=payload.get("linkUrl"),
        )


@dataclass
class AnalyticsResponse:
    query: AnalyticsQuery
    summary: dict[str, Any]
    time_series: TimeSeries
    # Keyed by the service's aggregation names (topCountries, topLinks, ...).
    aggregations: dict[str, Any]

    @classmethod
    def from_payload(cls, payload: dict) -> "AnalyticsResponse":
        return cls(
            query=AnalyticsQuery.from_payload(payload.get("query") or {}),
            summary=payload.get("summary") or {},
            time_series=TimeSeries.from_payload(payload.get("timeSeries") or {}),
            aggregations=payload.get("aggregations") or {},
        )


@dataclass
class Pagination:
    limit: int
    offset: int
    total: int
    has_more: bool

    @classmethod
    def from_payload(cls, payload: dict) -> "Pagination":
        return cls(
            limit=payload.get("limit", 0),
            offset=payload.get("offset", 0),
            total=payload.get("total", 0),
            has_more=bool(payload.get("hasMore", False)),
        )


@dataclass
class AnalyticsBreakdownResponse:
    query: AnalyticsQuery
    dimension: str
    items: list[AggregationItem]
    pagination: Pagination

    @classmethod
    def from_payload(cls, payload: dict) -> "AnalyticsBreakdownResponse":
        return cls(
            query=AnalyticsQuery.from_payload(payload.get("query") or {}),
            dimension=payload.get("dimension", ""),
            items=[AggregationItem.from_payload(item) for item in payload.get("items", [])],
            pagination=Pagination.from_payload(payload.get("pagination") or {}),
        )


@dataclass
class ObservabilityEvent:
    id: str
    type: str
    timestamp: datetime | None
    actor: dict[str, Any]
    resource: dict[str, Any]
    metadata: dict[str, Any]

    @classmethod
    def from_payload(cls, payload: dict) -> "ObservabilityEvent":
        return cls(
            id=payload.get("id", ""),
            type=payload.get("type", ""),
            timestamp=parse_datetime(payload.get("timestamp")),
            actor=payload.get("actor") or {},
            resource=payload.get("resource") or {},
            metadata=payload.get("metadata") or {},
        )


@dataclass
class ObservabilityEventsResponse:
    events: list[ObservabilityEvent]
    pagination: Pagination

    @classmethod
    def from_payload(cls, payload: dict) -> "ObservabilityEventsResponse":
        return cls(
            events=[ObservabilityEvent.from_payload(event) for event in payload.get("events", [])],
            pagination=Pagination.from_payload(payload.get("pagination") or {}),
        )
