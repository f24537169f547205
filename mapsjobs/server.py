"""WSGI application serving the job form, job list, downloads and the JSON API."""

from __future__ import annotations

import argparse
import html
import json
import logging
import queue
import re
import sys
import uuid
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from socketserver import ThreadingMixIn
from typing import Any, Callable, Iterable
from urllib.parse import parse_qs
from wsgiref.simple_server import WSGIServer, make_server

from .errors import ValidationError
from .job import Job, JobData, JobStatus
from .service import Service
from .streaming import StreamEvent, StreamHub, format_sse_event

log = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 30.0

SECURITY_HEADERS = [
    ("X-Content-Type-Options", "nosniff"),
    ("X-Frame-Options", "DENY"),
    ("X-XSS-Protection", "1; mode=block"),
    (
        "Content-Security-Policy",
        "default-src 'self'; "
        "script-src 'self' cdn.redoc.ly cdnjs.cloudflare.com 'unsafe-inline' 'unsafe-eval'; "
        "worker-src 'self' blob:; "
        "style-src 'self' 'unsafe-inline' fonts.googleapis.com; "
        "img-src 'self' data: cdn.redoc.ly; "
        "font-src 'self' fonts.gstatic.com; "
        "connect-src 'self'",
    ),
]

_UNITS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
}
_PART_RE = re.compile(r"(\d*\.?\d*)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as "10m" or "1h30m"; raise ValueError if malformed."""
    rest = text
    sign = 1
    if rest[:1] in "+-" and rest:
        sign = -1 if rest[0] == "-" else 1
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ValueError(f"invalid duration {text!r}")
    total = 0.0
    pos = 0
    while pos < len(rest):
        match = _PART_RE.match(rest, pos)
        if match is None or match.group(1) in ("", "."):
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    return timedelta(microseconds=sign * int(total) // 1000)


def _first(form: dict[str, list[str]], key: str) -> str:
    values = form.get(key)
    return values[0] if values else ""


def _atoi(text: str, what: str) -> int:
    try:
        return int(text.strip() if text != text.strip() else text)
    except ValueError:
        raise ValidationError(f"invalid {what}") from None


def _lines(text: str) -> list[str]:
    return [line.strip() for line in text.split("\n") if line.strip()]


def _new_job(name: str, data: JobData) -> Job:
    return Job(
        id=str(uuid.uuid4()),
        name=name,
        date=datetime.now(timezone.utc),
        status=JobStatus.PENDING.value,
        data=data,
    )


def job_from_form(form: dict[str, list[str]]) -> Job:
    """Build and validate a pending job from submitted form fields."""
    try:
        max_time = parse_duration(_first(form, "maxtime"))
    except ValueError:
        raise ValidationError("invalid max time") from None
    if max_time < timedelta(minutes=3):
        raise ValidationError("max time must be more than 3m")
    if "keywords" not in form:
        raise ValidationError("missing keywords")
    data = JobData(
        keywords=_lines(form["keywords"][0]),
        lang=_first(form, "lang"),
        max_time=max_time,
    )
    data.zoom = _atoi(_first(form, "zoom"), "zoom")
    data.fast_mode = _first(form, "fastmode") == "on"
    data.radius = _atoi(_first(form, "radius"), "radius")
    data.lat = _first(form, "latitude")
    data.lon = _first(form, "longitude")
    data.depth = _atoi(_first(form, "depth"), "depth")
    data.email = _first(form, "email") == "on"
    data.proxies = _lines(_first(form, "proxies"))
    job = _new_job(_first(form, "name"), data)
    job.validate()
    return job


def job_from_api_request(payload: Any) -> Job:
    """Build and validate a pending job from an API request; max_time is in seconds."""
    if not isinstance(payload, dict):
        raise ValidationError("invalid request body")
    fields = {str(key).lower(): value for key, value in payload.items()}
    name = fields.pop("name", "") or ""
    if not isinstance(name, str):
        raise ValidationError("invalid name")
    seconds = fields.get("max_time") or 0
    try:
        fields["max_time"] = int(seconds) * 1_000_000_000
        data = JobData.from_dict(fields)
    except (TypeError, ValueError) as exc:
        raise ValidationError(str(exc)) from None
    job = _new_job(name, data)
    job.validate()
    return job


def _parse_id(text: str) -> str | None:
    try:
        return str(uuid.UUID(text))
    except ValueError:
        return None


Response = tuple[int, list[tuple[str, str]], Iterable[bytes]]


def _text(code: int, message: str) -> Response:
    return code, [("Content-Type", "text/plain; charset=utf-8")], [(message + "\n").encode()]


def _html(body: str) -> Response:
    return 200, [("Content-Type", "text/html; charset=utf-8")], [body.encode()]


def _json(code: int, data: Any) -> Response:
    return code, [("Content-Type", "application/json")], [(json.dumps(data) + "\n").encode()]


def _api_error(code: int, message: str) -> Response:
    return _json(code, {"code": code, "message": message})


def _job_row(job: Job) -> str:
    date = job.date.strftime("%Y-%m-%d %H:%M:%S") if job.date else ""
    return (
        f'<tr id="job-{html.escape(job.id)}"><td>{html.escape(job.name)}</td>'
        f"<td>{date}</td><td>{html.escape(str(job.status))}</td>"
        f'<td><a href="/download?id={html.escape(job.id)}">download</a></td></tr>'
    )


class Server:
    """The web application; call it as a WSGI app or run it with serve()."""

    def __init__(self, service: Service, addr: str, api_key: str) -> None:
        self.service = service
        self.addr = addr
        self.api_key = api_key
        self.hub = StreamHub()

    def broadcast_event(self, job_id: str, event: StreamEvent) -> None:
        self.hub.broadcast(job_id, event)

    def __call__(self, environ: dict, start_response: Callable) -> Iterable[bytes]:
        code, headers, body = self._route(environ)
        start_response(
            f"{code} {HTTPStatus(code).phrase}", list(SECURITY_HEADERS) + headers
        )
        return body

    def _route(self, environ: dict) -> Response:
        method = environ.get("REQUEST_METHOD", "GET")
        path = environ.get("PATH_INFO", "/") or "/"
        query = parse_qs(environ.get("QUERY_STRING", ""))
        if path.startswith("/api/v1/"):
            return self._api(environ, method, path[len("/api/v1"):], query)
        if path == "/api/docs":
            return _html(
                "<!DOCTYPE html><html><head><title>API</title></head>"
                '<body><redoc spec-url="/static/spec.yaml"></redoc></body></html>'
            )
        if path.startswith("/static/"):
            return _text(404, "404 page not found")
        job_id = _parse_id(_first(query, "id"))
        if path == "/scrape":
            return self._scrape(environ, method)
        if path == "/download":
            return self._download(method, job_id)
        if path == "/delete":
            return self._delete(method, job_id)
        if path == "/jobs":
            return self._jobs(method)
        return self._index(method)

    def _index(self, method: str) -> Response:
        if method != "GET":
            return _text(405, "Method not allowed")
        return _html(
            "<!DOCTYPE html><html><body>"
            '<form method="post" action="/scrape">'
            '<input name="name" value="">'
            '<textarea name="keywords"></textarea>'
            '<input name="lang" value="en"><input name="zoom" value="15">'
            '<input name="latitude" value="0"><input name="longitude" value="0">'
            '<input name="radius" value="10000"><input name="depth" value="10">'
            '<input name="maxtime" value="10m">'
            '<input type="checkbox" name="fastmode"><input type="checkbox" name="email">'
            '<textarea name="proxies"></textarea>'
            '<button type="submit">Start</button></form>'
            '<table id="jobs"></table></body></html>'
        )

    def _scrape(self, environ: dict, method: str) -> Response:
        if method != "POST":
            return _text(405, "Method not allowed")
        form = parse_qs(_read_body(environ).decode("utf-8", "replace"), keep_blank_values=True)
        try:
            job = job_from_form(form)
        except ValidationError as exc:
            return _text(422, str(exc))
        try:
            self.service.create(job)
        except Exception as exc:  # storage failures become a server error
            return _text(500, str(exc))
        return _html(_job_row(job))

    def _jobs(self, method: str) -> Response:
        if method != "GET":
            return _text(405, "Method not allowed")
        try:
            jobs = self.service.all()
        except Exception as exc:
            return _text(500, str(exc))
        return _html("".join(_job_row(job) for job in jobs))

    def _download(self, method: str, job_id: str | None) -> Response:
        if method != "GET":
            return _text(405, "Method not allowed")
        if job_id is None:
            return _text(422, "Invalid ID")
        try:
            path = self.service.get_csv(job_id)
        except Exception as exc:
            return _text(404, str(exc))
        try:
            content = path.read_bytes()
        except OSError:
            return _text(500, "Failed to open file")
        headers = [
            ("Content-Disposition", f"attachment; filename={path.name}"),
            ("Content-Type", "text/csv"),
        ]
        return 200, headers, [content]

    def _delete(self, method: str, job_id: str | None) -> Response:
        if method != "DELETE":
            return _text(405, "Method not allowed")
        if job_id is None:
            return _text(422, "Invalid ID")
        try:
            self.service.delete(job_id)
        except Exception as exc:
            return _text(500, str(exc))
        return 200, [], [b""]

    def _api(self, environ: dict, method: str, path: str, query: dict) -> Response:
        if self.api_key and environ.get("HTTP_AUTHORIZATION", "") != f"Bearer {self.api_key}":
            return _api_error(401, "Unauthorized")
        if path == "/jobs":
            if method == "POST":
                return self._api_scrape(environ)
            if method == "GET":
                try:
                    return _json(200, [job.to_dict() for job in self.service.all()])
                except Exception as exc:
                    return _api_error(500, str(exc))
            return _api_error(405, "Method not allowed")
        match = re.fullmatch(r"/jobs/([^/]+)(/download|/stream)?", path)
        if match is None:
            return _text(404, "404 page not found")
        job_id = _parse_id(match.group(1)) or _parse_id(_first(query, "id"))
        action = match.group(2)
        if action == "/download":
            if method != "GET":
                return _api_error(405, "Method not allowed")
            return self._download(method, job_id)
        if action == "/stream":
            if method != "GET":
                return _api_error(405, "Method not allowed")
            return self._stream(job_id)
        if method == "GET":
            if job_id is None:
                return _api_error(422, "Invalid ID")
            try:
                return _json(200, self.service.get(job_id).to_dict())
            except Exception:
                return _api_error(404, HTTPStatus.NOT_FOUND.phrase)
        if method == "DELETE":
            if job_id is None:
                return _api_error(422, "Invalid ID")
            try:
                self.service.delete(job_id)
            except Exception as exc:
                return _api_error(500, str(exc))
            return 200, [], [b""]
        return _api_error(405, "Method not allowed")

    def _api_scrape(self, environ: dict) -> Response:
        try:
            payload = json.loads(_read_body(environ) or b"null")
            job = job_from_api_request(payload)
        except (json.JSONDecodeError, ValidationError) as exc:
            return _api_error(422, str(exc))
        try:
            self.service.create(job)
        except Exception as exc:
            return _api_error(500, str(exc))
        return _json(201, {"id": job.id})

    def _stream(self, job_id: str | None) -> Response:
        if job_id is None:
            return _api_error(422, "Invalid ID")
        try:
            job = self.service.get(job_id)
        except Exception:
            return _api_error(404, "Job not found")
        headers = [
            ("Content-Type", "text/event-stream"),
            ("Cache-Control", "no-cache"),
            ("X-Accel-Buffering", "no"),
        ]
        return 200, headers, self._event_stream(job.id)

    def _event_stream(self, job_id: str) -> Iterable[bytes]:
        client = self.hub.register(job_id)
        try:
            yield b": initial heartbeat\n\n"
            while True:
                try:
                    event = client.get(timeout=HEARTBEAT_INTERVAL)
                except queue.Empty:
                    event = StreamEvent(
                        type="HEARTBEAT", job_id=job_id, data={"message": "keepalive"}
                    )
                yield format_sse_event(event).encode()
        finally:
            self.hub.unregister(job_id, client)

    def serve(self) -> None:
        """Serve until interrupted."""
        host, _, port = self.addr.rpartition(":")
        with make_server(host, int(port or 8080), self, server_class=_ThreadingServer) as httpd:
            print(f"visit http://localhost{self.addr}", file=sys.stderr)
            try:
                httpd.serve_forever()
            except KeyboardInterrupt:
                log.info("server stopped")


class _ThreadingServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


def _read_body(environ: dict) -> bytes:
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        length = 0
    return environ["wsgi.input"].read(length) if length > 0 else b""


def main(argv: list[str] | None = None) -> int:
    from .sqlite_repo import SqliteJobRepository

    parser = argparse.ArgumentParser(description="Serve the scrape job web interface.")
    parser.add_argument("--addr", default=":8080")
    parser.add_argument("--data-folder", default="webdata")
    parser.add_argument("--db", default="webdata/jobs.db")
    parser.add_argument("--api-key", default="")
    args = parser.parse_args(argv)
    from pathlib import Path

    Path(args.data_folder).mkdir(parents=True, exist_ok=True)
    with SqliteJobRepository(args.db) as repo:
        Server(Service(repo, args.data_folder), args.addr, args.api_key).serve()
    return 0