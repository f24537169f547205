"""Job service: job storage plus the CSV result files kept beside it."""

from __future__ import annotations

from pathlib import Path

from .errors import InvalidFileNameError, NotFoundError
from .job import Job, JobRepository, JobStatus, SelectParams


def _check_file_name(job_id: str) -> None:
    if "/" in job_id or "\\" in job_id or ".." in job_id:
        raise InvalidFileNameError()


class Service:
    """Manage jobs and their result files."""

    def __init__(self, repo: JobRepository, data_folder: str | Path) -> None:
        self.repo = repo
        self.data_folder = Path(data_folder)

    def _csv_path(self, job_id: str) -> Path:
        _check_file_name(job_id)
        return self.data_folder / f"{job_id}.csv"

    def create(self, job: Job) -> None:
        self.repo.create(job)

    def all(self) -> list[Job]:
        return self.repo.select(SelectParams())

    def get(self, job_id: str) -> Job:
        return self.repo.get(job_id)

    def delete(self, job_id: str) -> None:
        """Remove the job's CSV file, if any, then the job itself."""
        path = self._csv_path(job_id)
        path.unlink(missing_ok=True)
        self.repo.delete(job_id)

    def update(self, job: Job) -> None:
        self.repo.update(job)

    def select_pending(self) -> list[Job]:
        """Return at most one pending job, newest first."""
        return self.repo.select(SelectParams(status=JobStatus.PENDING.value, limit=1))

    def get_csv(self, job_id: str) -> Path:
        """Return the path of the job's CSV file, raising NotFoundError if absent."""
        path = self._csv_path(job_id)
        if not path.exists():
            raise NotFoundError(f"csv file not found for job {job_id}")
        return path