from dataclasses import dataclass
from uuid import UUID

from docsync.database.models import JobKind, JobRecord, StorageProvider
from docsync.exceptions import ValidationError


@dataclass(frozen=True)
class PreviewPayload:
    document_id: UUID


@dataclass(frozen=True)
class ExportPayload:
    export_id: UUID


@dataclass(frozen=True)
class UploadPayload:
    document_id: UUID
    provider: StorageProvider


JobPayload = PreviewPayload | ExportPayload | UploadPayload


def payload_for(job: JobRecord) -> JobPayload:
    """Decode the kind-specific payload carried by a job row."""
    match job.kind:
        case JobKind.PREVIEW:
            return PreviewPayload(document_id=job.subject_id)
        case JobKind.EXPORT:
            return ExportPayload(export_id=job.subject_id)
        case JobKind.UPLOAD:
            if job.provider is None:
                raise ValidationError(f"Upload job {job.id} has no provider")
            return UploadPayload(document_id=job.subject_id, provider=job.provider)
    raise ValidationError(f"Unknown job kind: {job.kind}")
