import asyncio

from docsync.database.models import JobRecord, JobStatus
from docsync.database.repositories.base import BaseJobRepository
from docsync.exceptions import ConfigurationError, JobTimeoutError
from docsync.logging.logger import Log
from docsync.processor.base import BaseJobProcessor


class JobRunner:
    """Run one job, catch exceptions, and apply retry logic."""

    def __init__(
        self,
        processor: BaseJobProcessor,
        job_repo: BaseJobRepository,
        timeout_seconds: float | None = None,
    ) -> None:
        self._processor = processor
        self._job_repo = job_repo
        self._timeout_seconds = timeout_seconds

    async def run(self, job: JobRecord) -> JobStatus | None:
        """Execute a single claimed job and return its resulting status.

        Returns None when the job's lease expired and the outcome was not
        recorded; the job then belongs to whoever claimed it next.
        """
        Log.info(f"Running {job.kind} job {job.id} (attempt {job.attempts + 1})")
        try:
            await self._process(job)
            completed = await self._job_repo.complete(job)
        except Exception as exc:
            return await self._handle_failure(job, exc)
        if not completed:
            return None
        Log.info(f"Job {job.id} completed successfully")
        return JobStatus.DONE

    async def _process(self, job: JobRecord) -> None:
        if self._timeout_seconds is None:
            await self._processor.process(job)
            return
        try:
            async with asyncio.timeout(self._timeout_seconds) as scope:
                await self._processor.process(job)
        except TimeoutError as exc:
            if scope.expired():
                raise JobTimeoutError(
                    f"Processing timeout after {self._timeout_seconds}s"
                ) from exc
            raise

    async def _handle_failure(self, job: JobRecord, exc: Exception) -> JobStatus | None:
        """Record the attempt; the repository decides between pending and failed."""
        permanent = isinstance(exc, ConfigurationError)

        Log.error(f"Job {job.id} failed: {exc}", kind=job.kind, attempts=job.attempts + 1)
        status = await self._job_repo.fail(job, str(exc), permanent=permanent)
        if status is None:
            # Another worker owns the job now; its outcome decides the hook.
            return None
        will_retry = status == JobStatus.PENDING
        if will_retry:
            Log.warning(f"Job {job.id} will be retried (attempt {job.attempts + 1})")
        else:
            Log.error(f"Job {job.id} permanently failed after {job.attempts + 1} attempts")

        try:
            await self._processor.on_failure(job, exc, will_retry)
        except Exception as hook_exc:
            Log.warning(f"Failure hook for job {job.id} raised: {hook_exc}")
        return status
