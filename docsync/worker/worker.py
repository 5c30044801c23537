import asyncio
from dataclasses import dataclass

from docsync.database.models import JobKind, JobRecord
from docsync.database.repositories.base import BaseJobRepository
from docsync.logging.logger import Log
from docsync.worker.job_runner import JobRunner


@dataclass(frozen=True)
class QueueConfig:
    """How one job kind is driven: tick interval, jobs per tick, per-job budget."""

    kind: JobKind
    interval_seconds: float
    batch_size: int = 1
    timeout_seconds: float | None = None


class Worker:
    """Poll loops, one per job kind: sleep -> claim -> dispatch."""

    def __init__(
        self,
        job_repo: BaseJobRepository,
        runners: dict[JobKind, JobRunner],
        queues: list[QueueConfig],
        lease_seconds: int,
    ) -> None:
        self._job_repo = job_repo
        self._runners = runners
        self._queues = queues
        self._lease_seconds = lease_seconds

    @property
    def queues(self) -> list[QueueConfig]:
        return list(self._queues)

    async def tick(self, queue: QueueConfig) -> int:
        """Claim and run up to ``batch_size`` jobs sequentially.

        Stops at the first empty claim. Returns the number of jobs run.
        """
        await self._release_stale(queue.kind)
        runner = self._runners[queue.kind]
        processed = 0
        while processed < queue.batch_size:
            job = await self._try_claim_job(queue.kind)
            if job is None:
                break
            await runner.run(job)
            processed += 1
        if processed:
            Log.info(f"Processed {processed} {queue.kind} job(s)")
        return processed

    async def run_queue(self, queue: QueueConfig, max_ticks: int | None = None) -> None:
        """Tick forever at the queue's interval.

        If max_ticks is set, stop after that many ticks (for testing).
        """
        Log.info(
            f"Worker started for {queue.kind} jobs",
            interval=queue.interval_seconds,
            batch_size=queue.batch_size,
        )
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            try:
                await self.tick(queue)
            except Exception as exc:
                Log.exception(f"Error in {queue.kind} job loop: {exc}")
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break
            await asyncio.sleep(queue.interval_seconds)

    async def run(self) -> None:
        """Run every queue's loop on the current event loop until cancelled."""
        try:
            await asyncio.gather(*(self.run_queue(queue) for queue in self._queues))
        except asyncio.CancelledError:
            Log.info("Worker shutting down gracefully")
            raise

    async def _try_claim_job(self, kind: JobKind) -> JobRecord | None:
        """Attempt to claim the next pending job. Gracefully handle DB errors."""
        try:
            return await self._job_repo.claim_next(kind)
        except Exception as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return None

    async def _release_stale(self, kind: JobKind) -> None:
        try:
            released = await self._job_repo.release_stale(kind, self._lease_seconds)
        except Exception as exc:
            Log.warning(f"Database error while releasing stale {kind} jobs: {exc}")
            return
        if released:
            Log.warning(f"Released {released} stale {kind} job(s) whose lease expired")
