"""
Typed payloads for the listing-analysis job types.

The queue treats ``JobRecord.data`` as opaque. These dataclasses give the
HTTP layer and the registered handlers one shared shape per job type, keyed
by ``JobType``. Payloads arriving as JSON (webhooks, cron routes) use
camelCase keys; ``decode_payload`` accepts either camelCase or snake_case
and validates the result against the JSON schema for its type.
"""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from jsonschema import Draft202012Validator
from jsonschema.exceptions import best_match

from ..errors import InvalidJobTypeError, InvalidPayloadError

ScrapeSource = Literal["manual", "api", "webhook", "scheduled"]

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class JobType(str, Enum):
    """Job types known to the application."""
    SCRAPE = "scrape"
    ANALYZE = "analyze"
    ALERT = "alert"


# =============================================================================
# Schemas
# =============================================================================

_NULLABLE_STRING = {"type": ["string", "null"]}

SCRAPE_OPTIONS_SCHEMA = {
    "type": "object",
    "properties": {
        "max_pages": {"type": "integer", "minimum": 1},
        "items_per_page": {"type": ["integer", "null"], "minimum": 1},
        "min_price": {"type": ["number", "null"], "minimum": 0},
        "max_price": {"type": ["number", "null"], "minimum": 0},
        "categories": {"type": ["array", "null"], "items": {"type": "string"}},
        "only_active": {"type": "boolean"},
        "only_verified": {"type": "boolean"},
        "exclude_auctions": {"type": "boolean"},
        "include_description": {"type": "boolean"},
        "include_screenshots": {"type": "boolean"},
        "include_raw_html": {"type": "boolean"},
    },
}

SCRAPE_SCHEMA = {
    "type": "object",
    "properties": {
        "source": {"type": "string", "enum": ["manual", "api", "webhook", "scheduled"]},
        "options": SCRAPE_OPTIONS_SCHEMA,
        "user_id": _NULLABLE_STRING,
        "notify_on_complete": {"type": "boolean"},
    },
}

ANALYZE_SCHEMA = {
    "type": "object",
    "properties": {
        "listing_id": {"type": "string", "minLength": 1},
        "listing_url": _NULLABLE_STRING,
        "listing_data": _NULLABLE_STRING,
        "notify_on_complete": {"type": "boolean"},
    },
    "required": ["listing_id"],
}

ALERT_SCHEMA = {
    "type": "object",
    "properties": {
        "user_id": {"type": "string", "minLength": 1},
        "alert_id": {"type": "string", "minLength": 1},
        "listings": {"type": "array"},
        "min_score": {"type": ["number", "null"]},
    },
    "required": ["user_id", "alert_id"],
}

PAYLOAD_SCHEMAS: dict[JobType, dict[str, Any]] = {
    JobType.SCRAPE: SCRAPE_SCHEMA,
    JobType.ANALYZE: ANALYZE_SCHEMA,
    JobType.ALERT: ALERT_SCHEMA,
}

_VALIDATORS = {kind: Draft202012Validator(schema) for kind, schema in PAYLOAD_SCHEMAS.items()}


def _snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _normalize(value: Any, schema: dict[str, Any]) -> Any:
    """snake_case the keys of ``value`` and of nested objects the schema describes."""
    if not isinstance(value, dict):
        return value
    properties = schema.get("properties", {})
    normalized = {}
    for key, item in value.items():
        name = _snake_case(key)
        normalized[name] = _normalize(item, properties[name]) if name in properties else item
    return normalized


def _error_field(error) -> str | None:
    path = [str(p) for p in error.absolute_path]
    if error.validator == "required" and isinstance(error.instance, dict):
        missing = [name for name in error.validator_value if name not in error.instance]
        if missing:
            path.append(missing[0])
    return ".".join(path) or None


def _validate(kind: JobType, values: Any) -> None:
    error = best_match(_VALIDATORS[kind].iter_errors(values))
    if error is not None:
        raise InvalidPayloadError(
            f"Invalid {kind.value} payload: {error.message}",
            field=_error_field(error),
        )


def _from_values(cls: type, values: dict[str, Any]) -> Any:
    """Instantiate a payload dataclass, ignoring unknown keys."""
    names = {f.name for f in dataclasses.fields(cls)}
    return cls(**{k: v for k, v in values.items() if k in names})


# =============================================================================
# Payloads
# =============================================================================


@dataclass
class ScrapeOptions:
    """Marketplace scrape settings."""
    max_pages: int = 3
    items_per_page: int | None = None
    min_price: float | None = None
    max_price: float | None = None
    categories: list[str] | None = None
    only_active: bool = True
    only_verified: bool = False
    exclude_auctions: bool = False
    include_description: bool = True
    include_screenshots: bool = False
    include_raw_html: bool = False

    def __post_init__(self):
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise InvalidPayloadError("min_price cannot exceed max_price", field="options.min_price")


@dataclass
class ScrapeJobData:
    """Payload for ``scrape`` jobs."""
    source: ScrapeSource = "manual"
    options: ScrapeOptions = field(default_factory=ScrapeOptions)
    user_id: str | None = None
    notify_on_complete: bool = False

    def __post_init__(self):
        if isinstance(self.options, dict):
            self.options = _from_values(
                ScrapeOptions, _normalize(self.options, SCRAPE_OPTIONS_SCHEMA)
            )

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass
class AnalyzeJobData:
    """Payload for ``analyze`` jobs."""
    listing_id: str
    listing_url: str | None = None
    listing_data: str | None = None  # JSON-encoded listing snapshot
    notify_on_complete: bool = False

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass
class AlertJobData:
    """Payload for ``alert`` jobs."""
    user_id: str
    alert_id: str
    listings: list[Any] = field(default_factory=list)
    min_score: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


PAYLOAD_TYPES: dict[JobType, type] = {
    JobType.SCRAPE: ScrapeJobData,
    JobType.ANALYZE: AnalyzeJobData,
    JobType.ALERT: AlertJobData,
}

JobPayload = ScrapeJobData | AnalyzeJobData | AlertJobData


def decode_payload(job_type: str | JobType, raw: Any) -> JobPayload:
    """Decode a raw payload into the dataclass for ``job_type``.

    Keys are normalized to snake_case, then the payload is validated
    against ``PAYLOAD_SCHEMAS[job_type]``. Unknown keys are ignored.
    Payloads that are already the right dataclass are returned unchanged.

    Raises:
        InvalidJobTypeError: If ``job_type`` is not a known JobType
        InvalidPayloadError: If the payload does not match its schema
    """
    try:
        kind = JobType(job_type)
    except ValueError as exc:
        raise InvalidJobTypeError(f"Unknown job type: {job_type}", field="type") from exc

    cls = PAYLOAD_TYPES[kind]
    if isinstance(raw, cls):
        return raw

    values = _normalize(raw, PAYLOAD_SCHEMAS[kind])
    _validate(kind, values)
    return _from_values(cls, values)


__all__ = [
    "JobType",
    "ScrapeSource",
    "ScrapeOptions",
    "ScrapeJobData",
    "AnalyzeJobData",
    "AlertJobData",
    "JobPayload",
    "PAYLOAD_TYPES",
    "PAYLOAD_SCHEMAS",
    "decode_payload",
]
