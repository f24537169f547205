# mapsjobs

A small, dependency-free package for queueing and tracking map scraping jobs.
It provides:

- `mapsjobs.job`: the job model (`Job`, `JobData`, `JobStatus`, `SelectParams`)
  with validation and JSON round-tripping, and the `JobRepository` protocol;
- `mapsjobs.sqlite_repo`: `SqliteJobRepository`, a job store in an SQLite file;
- `mapsjobs.service`: `Service`, which ties a repository to a folder of CSV
  result files;
- `mapsjobs.streaming`: `StreamEvent`, `StreamHub` and `format_sse_event` for
  Server-Sent Events of job progress;
- `mapsjobs.server`: `Server`, a WSGI application with an HTML form interface
  and a JSON API, plus the `mapsjobs-server` command;
- `mapsjobs.errors`: `NotFoundError`, `AlreadyExistsError`, `ValidationError`
  and `InvalidFileNameError`.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Running the server

```
mapsjobs-server --help
```

Options:

| Option          | Default            | Meaning                                   |
|-----------------|--------------------|-------------------------------------------|
| `--addr`        | `:8080`            | address to listen on, `host:port`         |
| `--data-folder` | `webdata`          | folder holding `<job id>.csv` result files |
| `--db`          | `webdata/jobs.db`  | SQLite database file for jobs             |
| `--api-key`     | empty              | bearer token required by `/api/v1/` routes |

The data folder is created if missing. The server runs until interrupted.

### HTML routes

| Method | Path              | Purpose                                        |
|--------|-------------------|------------------------------------------------|
| GET    | `/`               | job submission form                            |
| POST   | `/scrape`         | create a job from the form, returns a table row |
| GET    | `/jobs`           | all jobs as HTML table rows                    |
| GET    | `/download?id=…`  | download the job's CSV                         |
| DELETE | `/delete?id=…`    | delete a job and its CSV file                  |

In the form, `maxtime` is a duration such as `10m` or `1h30m` and must be at
least three minutes; keywords and proxies are given one per line.

### JSON API

When the server has an API key, the routes under `/api/v1/` require a header
`Authorization: Bearer token` carrying that key, and answer 401 otherwise.

| Method | Path                          | Purpose                               |
|--------|-------------------------------|---------------------------------------|
| POST   | `/api/v1/jobs`                | create a job, returns `{"id": ...}`   |
| GET    | `/api/v1/jobs`                | list all jobs                         |
| GET    | `/api/v1/jobs/{id}`           | fetch one job                         |
| DELETE | `/api/v1/jobs/{id}`           | delete a job and its CSV file         |
| GET    | `/api/v1/jobs/{id}/download`  | download the job's CSV                |
| GET    | `/api/v1/jobs/{id}/stream`    | Server-Sent Events for the job        |

When creating a job through the API, `max_time` is given in seconds.
A job needs at least one keyword, a two-letter language code, a non-zero
depth and a maximum run time; fast mode also needs latitude and longitude.
Errors come back as JSON, for example
`{"code": 422, "message": "missing keywords"}`.

Every response carries `X-Content-Type-Options`, `X-Frame-Options`,
`X-XSS-Protection` and `Content-Security-Policy` headers.

### Event stream

Events passed to `Server.broadcast_event` (or `StreamHub.broadcast`) reach
every client connected to that job's stream. The last 50 events of a job are
kept and replayed to clients that connect late; the history is dropped when
the job's last client disconnects. A client whose queue of 100 events is full
misses new events. The stream opens with a `: initial heartbeat` comment, and
each event is sent as:

```
id: <job id>
event: <event type>
data: <event as JSON>
```

A `HEARTBEAT` event is sent after 30 seconds without other events.

## Using the library

```python
from datetime import datetime, timedelta, timezone

from mapsjobs.job import Job, JobData, JobStatus
from mapsjobs.service import Service
from mapsjobs.sqlite_repo import SqliteJobRepository

with SqliteJobRepository("jobs.db") as repo:
    service = Service(repo, "webdata")
    job = Job(
        id="3f0c1e9a-0000-4000-8000-000000000001",
        name="cafes",
        date=datetime.now(timezone.utc),
        status=JobStatus.PENDING.value,
        data=JobData(keywords=["cafe"], lang="en", depth=1,
                     max_time=timedelta(minutes=5)),
    )
    job.validate()
    service.create(job)

    for stored in service.all():          # newest first
        print(stored.id, stored.name, stored.status)

    pending = service.select_pending()    # at most one job
```

`Service.get` raises `NotFoundError` when the job does not exist, creating a
job whose id is already stored raises `AlreadyExistsError`, and `validate`
raises `ValidationError`. `Service.get_csv` raises `NotFoundError` when the
CSV file is missing; it and `Service.delete` raise `InvalidFileNameError` for
identifiers that contain `/`, `\` or `..`.

## What this package does not do

- It does not run scrapes. Jobs are stored and listed, but nothing here picks
  up pending jobs, writes the CSV result files or produces stream events; some
  other process must do that and call `Service.update` and
  `Server.broadcast_event`.
- It serves no static assets: `/static/…` answers 404, and the `/api/docs`
  page refers to an API specification that is not served.