from datetime import datetime, timedelta, timezone

import pytest

from mapsjobs.errors import AlreadyExistsError, NotFoundError
from mapsjobs.job import Job, JobData, JobRepository, JobStatus, SelectParams
from mapsjobs.sqlite_repo import SqliteJobRepository


@pytest.fixture
def repo(tmp_path):
    with SqliteJobRepository(tmp_path / "jobs.db") as store:
        yield store


def _job(job_id, offset_seconds=0, status=JobStatus.PENDING):
    return Job(
        id=job_id,
        name=f"name-{job_id}",
        date=datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc) + timedelta(seconds=offset_seconds),
        status=status,
        data=JobData(
            keywords=["coffee"],
            lang="en",
            depth=1,
            max_time=timedelta(minutes=5),
            existing_cids=["1651958294010292922"],
            review_limit=5,
        ),
    )


def test_usable_through_protocol(repo):
    store: JobRepository = repo
    assert isinstance(store, JobRepository)
    store.create(_job("job-a"))
    assert [j.id for j in store.select(SelectParams())] == ["job-a"]


def test_create_and_get_round_trip(repo):
    job = _job("job-a")
    repo.create(job)
    assert repo.get("job-a") == job


def test_date_truncated_to_seconds(repo):
    job = _job("job-a")
    job.date = job.date + timedelta(microseconds=123456)
    repo.create(job)
    assert repo.get("job-a").date == job.date.replace(microsecond=0)


def test_get_missing_raises(repo):
    with pytest.raises(NotFoundError):
        repo.get("missing")


def test_duplicate_create_raises(repo):
    repo.create(_job("job-a"))
    with pytest.raises(AlreadyExistsError):
        repo.create(_job("job-a"))


def test_select_orders_newest_first(repo):
    for job_id, offset in [("old", 0), ("new", 20), ("mid", 10)]:
        repo.create(_job(job_id, offset))
    assert [j.id for j in repo.select(SelectParams())] == ["new", "mid", "old"]


def test_select_filters_status_and_limit(repo):
    repo.create(_job("p1", 0))
    repo.create(_job("p2", 10))
    repo.create(_job("done", 20, JobStatus.OK))
    pending = repo.select(SelectParams(status="pending"))
    assert [j.id for j in pending] == ["p2", "p1"]
    limited = repo.select(SelectParams(status=JobStatus.PENDING, limit=1))
    assert [j.id for j in limited] == ["p2"]


def test_select_empty(repo):
    assert repo.select(SelectParams()) == []


def test_update_changes_status_and_data(repo):
    job = _job("job-a")
    repo.create(job)
    job.status = JobStatus.FAILED
    job.data.review_limit = 25
    repo.update(job)
    stored = repo.get("job-a")
    assert stored.status == JobStatus.FAILED
    assert stored.data.review_limit == 25


def test_delete(repo):
    repo.create(_job("job-a"))
    repo.delete("job-a")
    with pytest.raises(NotFoundError):
        repo.get("job-a")


def test_data_persists_across_connections(tmp_path):
    path = tmp_path / "jobs.db"
    job = _job("job-a")
    with SqliteJobRepository(path) as first:
        first.create(job)
    with SqliteJobRepository(path) as second:
        assert second.get("job-a") == job