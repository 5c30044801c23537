from typing import Any
from uuid import UUID

from psycopg.rows import dict_row

from docsync.database.connection import get_connection
from docsync.database.models import (
    JobKind,
    JobRecord,
    JobStatus,
    StorageProvider,
    truncate_error,
)
from docsync.database.repositories.base import BaseJobRepository
from docsync.exceptions import DocSyncError
from docsync.logging.logger import Log

_ENQUEUE_RETRIES = 3

_JOB_COLUMNS = """
    id, client_id, subject_id, kind, provider, status, attempts,
    last_error, locked_at, created_at, updated_at
"""


def _to_record(row: dict[str, Any]) -> JobRecord:
    provider = row["provider"]
    return JobRecord(
        id=row["id"],
        client_id=row["client_id"],
        subject_id=row["subject_id"],
        kind=JobKind(row["kind"]),
        provider=StorageProvider(provider) if provider else None,
        status=JobStatus(row["status"]),
        attempts=row["attempts"],
        last_error=row["last_error"],
        locked_at=row["locked_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class JobRepository(BaseJobRepository):
    """Database operations for the jobs table."""

    def __init__(self, max_attempts: int) -> None:
        self._max_attempts = max_attempts

    async def enqueue(
        self,
        kind: JobKind,
        client_id: UUID,
        subject_id: UUID,
        provider: StorageProvider | None = None,
    ) -> JobRecord:
        """Insert a pending job unless one is already open for the subject.

        The partial unique index ``uq_jobs_open_subject`` makes the insert a
        no-op under concurrent enqueues; the open job is then read back.
        """
        for _ in range(_ENQUEUE_RETRIES):
            async with get_connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        f"""
                        INSERT INTO jobs (client_id, subject_id, kind, provider, status, attempts)
                        VALUES (%s, %s, %s, %s, 'pending', 0)
                        ON CONFLICT (kind, subject_id)
                            WHERE status IN ('pending', 'processing')
                            DO NOTHING
                        RETURNING {_JOB_COLUMNS}
                        """,
                        (client_id, subject_id, kind.value, provider.value if provider else None),
                    )
                    row = await cur.fetchone()
                    if row is None:
                        await cur.execute(
                            f"""
                            SELECT {_JOB_COLUMNS}
                            FROM jobs
                            WHERE kind = %s
                              AND subject_id = %s
                              AND status IN ('pending', 'processing')
                            """,
                            (kind.value, subject_id),
                        )
                        row = await cur.fetchone()
                await conn.commit()
            if row is not None:
                return _to_record(row)
            # The conflicting job closed between the insert and the read.
        raise DocSyncError(f"Could not enqueue {kind} job for subject {subject_id}")

    async def claim_next(self, kind: JobKind) -> JobRecord | None:
        """Claim the oldest pending job with a conditional UPDATE.

        The UPDATE only matches while the row is still pending, so concurrent
        claimants racing for the same row cannot both succeed.
        """
        async with get_connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    SELECT id
                    FROM jobs
                    WHERE kind = %s
                      AND status = 'pending'
                      AND attempts < %s
                      AND locked_at IS NULL
                    ORDER BY created_at
                    LIMIT 1
                    """,
                    (kind.value, self._max_attempts),
                )
                candidate = await cur.fetchone()
                if candidate is None:
                    await conn.commit()
                    return None

                await cur.execute(
                    f"""
                    UPDATE jobs
                    SET status = 'processing', locked_at = NOW(), updated_at = NOW()
                    WHERE id = %s AND status = 'pending'
                    RETURNING {_JOB_COLUMNS}
                    """,
                    (candidate["id"],),
                )
                row = await cur.fetchone()
            await conn.commit()

        if row is None:
            return None
        return _to_record(row)

    async def complete(self, job: JobRecord) -> bool:
        async with get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE jobs
                    SET status = 'done', locked_at = NULL, updated_at = NOW()
                    WHERE id = %s AND status = 'processing' AND locked_at = %s
                    """,
                    (job.id, job.locked_at),
                )
                completed = cur.rowcount > 0
            await conn.commit()
        if not completed:
            Log.warning(f"Lease on job {job.id} was lost, completion not recorded")
        return completed

    async def fail(
        self, job: JobRecord, error: str, permanent: bool = False
    ) -> JobStatus | None:
        """Count a failed attempt against the row the caller still holds.

        ``attempts`` is incremented in SQL so the stored count is never
        overwritten from a stale in-memory copy.
        """
        async with get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE jobs
                    SET attempts = attempts + 1,
                        status = CASE WHEN %s OR attempts + 1 >= %s
                                      THEN 'failed' ELSE 'pending' END,
                        last_error = %s,
                        locked_at = NULL,
                        updated_at = NOW()
                    WHERE id = %s AND status = 'processing' AND locked_at = %s
                    RETURNING status
                    """,
                    (
                        permanent,
                        self._max_attempts,
                        truncate_error(error),
                        job.id,
                        job.locked_at,
                    ),
                )
                row = await cur.fetchone()
            await conn.commit()
        if row is None:
            Log.warning(f"Lease on job {job.id} was lost, failure not recorded")
            return None
        return JobStatus(row[0])

    async def release_stale(self, kind: JobKind, lease_seconds: int) -> int:
        async with get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    UPDATE jobs
                    SET attempts = attempts + 1,
                        status = CASE WHEN attempts + 1 >= %s THEN 'failed' ELSE 'pending' END,
                        last_error = %s,
                        locked_at = NULL,
                        updated_at = NOW()
                    WHERE kind = %s
                      AND status = 'processing'
                      AND locked_at < NOW() - %s * INTERVAL '1 second'
                    """,
                    (
                        self._max_attempts,
                        "Worker lease expired before the job finished",
                        kind.value,
                        lease_seconds,
                    ),
                )
                released = cur.rowcount
            await conn.commit()
        return released

    async def find_by_id(self, job_id: UUID) -> JobRecord | None:
        async with get_connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    f"SELECT {_JOB_COLUMNS} FROM jobs WHERE id = %s",
                    (job_id,),
                )
                row = await cur.fetchone()

        if row is None:
            return None
        return _to_record(row)
