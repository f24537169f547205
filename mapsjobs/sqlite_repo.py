"""Job repository backed by an SQLite database."""

from __future__ import annotations

import json
import math
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .errors import AlreadyExistsError, NotFoundError, ValidationError
from .job import Job, JobData, JobStatus, SelectParams

_PRAGMAS = (
    "PRAGMA busy_timeout = 5000",
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA cache_size=1000",
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    status TEXT NOT NULL,
    data TEXT NOT NULL,
    created_at INT NOT NULL,
    updated_at INT NOT NULL
)
"""

_COLUMNS = "id, name, status, data, created_at, updated_at"


def _unix(value: datetime) -> int:
    return math.floor(value.timestamp())


def _now_unix() -> int:
    return _unix(datetime.now(timezone.utc))


def _status_text(status: Any) -> str:
    return status.value if isinstance(status, JobStatus) else str(status)


def _encode_data(job: Job) -> str:
    return json.dumps(job.data.to_dict(), separators=(",", ":"))


def _row_to_job(row: tuple) -> Job:
    job_id, name, status, data, created_at, _updated_at = row
    return Job(
        id=job_id,
        name=name,
        status=status,
        date=datetime.fromtimestamp(created_at, tz=timezone.utc),
        data=JobData.from_dict(json.loads(data)),
    )


class SqliteJobRepository:
    """Store jobs in an SQLite file, one row per job with its data as JSON."""

    def __init__(self, path: str | Path) -> None:
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(path), check_same_thread=False, isolation_level=None)
        try:
            for pragma in _PRAGMAS:
                self._conn.execute(pragma)
            self._conn.execute(_SCHEMA)
        except sqlite3.Error:
            self._conn.close()
            raise

    def __enter__(self) -> SqliteJobRepository:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def get(self, job_id: str) -> Job:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM jobs WHERE id = ?", (job_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError()
        return _row_to_job(row)

    def create(self, job: Job) -> None:
        if job.date is None:
            raise ValidationError("missing date")
        values = (
            job.id,
            job.name,
            _status_text(job.status),
            _encode_data(job),
            _unix(job.date),
            _now_unix(),
        )
        try:
            with self._lock:
                self._conn.execute(
                    "INSERT INTO jobs (id, name, status, data, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    values,
                )
        except sqlite3.IntegrityError as exc:
            raise AlreadyExistsError() from exc

    def delete(self, job_id: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM jobs WHERE id = ?", (job_id,))

    def select(self, params: SelectParams) -> list[Job]:
        query = f"SELECT {_COLUMNS} FROM jobs"
        args: list[Any] = []
        if params.status:
            query += " WHERE status = ?"
            args.append(_status_text(params.status))
        query += " ORDER BY created_at DESC"
        if params.limit > 0:
            query += " LIMIT ?"
            args.append(params.limit)
        with self._lock:
            rows = self._conn.execute(query, args).fetchall()
        return [_row_to_job(row) for row in rows]

    def update(self, job: Job) -> None:
        with self._lock:
            self._conn.execute(
                "UPDATE jobs SET name = ?, status = ?, data = ?, updated_at = ? WHERE id = ?",
                (job.name, _status_text(job.status), _encode_data(job), _now_unix(), job.id),
            )