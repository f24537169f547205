"""Scrape jobs, their parameters and the repository interface that stores them."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from .errors import ValidationError


class JobStatus(str, Enum):
    """Lifecycle state of a job."""

    PENDING = "pending"
    WORKING = "working"
    OK = "ok"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


@dataclass
class SelectParams:
    """Filter for listing jobs; empty status and zero limit mean no filter."""

    status: str = ""
    limit: int = 0


def _duration_to_ns(value: timedelta) -> int:
    return (value // timedelta(microseconds=1)) * 1000


def _ns_to_duration(nanoseconds: int) -> timedelta:
    return timedelta(microseconds=int(nanoseconds) // 1000)


_TIME_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})?$"
)


def _format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.astimezone()
    text = value.isoformat()
    if value.utcoffset() == timedelta(0) and text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _parse_time(text: str) -> datetime:
    match = _TIME_RE.match(text)
    if match is None:
        raise ValidationError(f"invalid time {text!r}")
    base, fraction, zone = match.groups()
    fraction = ((fraction or "") + "000000")[:6]
    if zone in (None, "Z"):
        zone = "+00:00"
    return datetime.fromisoformat(f"{base}.{fraction}{zone}")


def _status_text(status: str) -> str:
    return status.value if isinstance(status, JobStatus) else str(status)


@dataclass
class JobData:
    """Parameters of a scrape."""

    keywords: list[str] = field(default_factory=list)
    lang: str = ""
    zoom: int = 0
    lat: str = ""
    lon: str = ""
    fast_mode: bool = False
    radius: int = 0
    depth: int = 0
    email: bool = False
    max_time: timedelta = field(default_factory=timedelta)
    proxies: list[str] = field(default_factory=list)
    existing_cids: list[str] = field(default_factory=list)
    review_limit: int = 0

    def validate(self) -> None:
        """Raise ValidationError if the parameters are incomplete."""
        if not self.keywords:
            raise ValidationError("missing keywords")
        if not self.lang:
            raise ValidationError("missing lang")
        if len(self.lang.encode("utf-8")) != 2:
            raise ValidationError("invalid lang")
        if self.depth == 0:
            raise ValidationError("missing depth")
        if self.max_time == timedelta(0):
            raise ValidationError("missing max time")
        if self.fast_mode and (not self.lat or not self.lon):
            raise ValidationError("missing geo coordinates")

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form; max_time is given in nanoseconds."""
        result: dict[str, Any] = {
            "keywords": list(self.keywords),
            "lang": self.lang,
            "zoom": self.zoom,
            "lat": self.lat,
            "lon": self.lon,
            "fast_mode": self.fast_mode,
            "radius": self.radius,
            "depth": self.depth,
            "email": self.email,
            "max_time": _duration_to_ns(self.max_time),
            "proxies": list(self.proxies),
        }
        if self.existing_cids:
            result["existing_cids"] = list(self.existing_cids)
        result["review_limit"] = self.review_limit
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobData:
        """Build from the JSON form; missing or null fields take their defaults."""
        return cls(
            keywords=list(data.get("keywords") or []),
            lang=data.get("lang") or "",
            zoom=int(data.get("zoom") or 0),
            lat=data.get("lat") or "",
            lon=data.get("lon") or "",
            fast_mode=bool(data.get("fast_mode") or False),
            radius=int(data.get("radius") or 0),
            depth=int(data.get("depth") or 0),
            email=bool(data.get("email") or False),
            max_time=_ns_to_duration(data.get("max_time") or 0),
            proxies=list(data.get("proxies") or []),
            existing_cids=list(data.get("existing_cids") or []),
            review_limit=int(data.get("review_limit") or 0),
        )


@dataclass
class Job:
    """A stored scrape request."""

    id: str = ""
    name: str = ""
    date: datetime | None = None
    status: str = ""
    data: JobData = field(default_factory=JobData)

    def validate(self) -> None:
        """Raise ValidationError if the job or its data is incomplete."""
        if not self.id:
            raise ValidationError("missing id")
        if not self.name:
            raise ValidationError("missing name")
        if not self.status:
            raise ValidationError("missing status")
        if self.date is None:
            raise ValidationError("missing date")
        self.data.validate()

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON form used by the API."""
        return {
            "ID": self.id,
            "Name": self.name,
            "Date": _format_time(self.date) if self.date is not None else None,
            "Status": _status_text(self.status),
            "Data": self.data.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Job:
        """Build a job from its JSON form."""
        date_text = data.get("Date")
        return cls(
            id=data.get("ID") or "",
            name=data.get("Name") or "",
            date=_parse_time(date_text) if date_text else None,
            status=data.get("Status") or "",
            data=JobData.from_dict(data.get("Data") or {}),
        )


@runtime_checkable
class JobRepository(Protocol):
    """Storage for jobs."""

    def get(self, job_id: str) -> Job:
        """Return the job, raising NotFoundError if absent."""
        ...

    def create(self, job: Job) -> None:
        """Store a new job."""
        ...

    def delete(self, job_id: str) -> None:
        """Remove a job."""
        ...

    def select(self, params: SelectParams) -> list[Job]:
        """List jobs matching the parameters, newest first."""
        ...

    def update(self, job: Job) -> None:
        """Replace a stored job."""
        ...