from abc import ABC, abstractmethod
from typing import ClassVar

from docsync.database.models import JobKind, JobRecord


class BaseJobProcessor(ABC):
    """Does the work of one job kind. Raising marks the attempt as failed."""

    kind: ClassVar[JobKind]

    @abstractmethod
    async def process(self, job: JobRecord) -> None:
        raise NotImplementedError

    async def on_failure(self, job: JobRecord, error: Exception, will_retry: bool) -> None:
        """Called after a failed attempt has been recorded on the job row."""
