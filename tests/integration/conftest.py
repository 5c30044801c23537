import os
import uuid
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from docsync.config.settings import Settings
from docsync.database.connection import close_pool, get_connection, init_pool
from docsync.database.models import DocumentRecord, JobKind, JobRecord, StorageProvider
from docsync.database.repositories.job_repository import JobRepository

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "sql" / "schema.sql"
TABLES = "jobs, documents, document_exports, external_storage_connections"


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "docsync_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture
async def integration_pool(test_settings: Settings) -> AsyncGenerator[None, None]:
    """Open the pool, apply the schema and start from empty tables.

    The integration database is dedicated to tests, so every table is
    truncated before each test.
    """
    try:
        await init_pool(test_settings)
    except Exception as e:
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a disposable database"
        )
    try:
        async with get_connection() as conn:
            await conn.execute(SCHEMA_PATH.read_text())
            await conn.execute(f"TRUNCATE {TABLES}")
            await conn.commit()
        yield
    finally:
        await close_pool()


@pytest.fixture
def job_repository(integration_pool: None) -> JobRepository:
    return JobRepository(max_attempts=3)


@pytest.fixture
async def seed_job(job_repository: JobRepository) -> JobRecord:
    return await job_repository.enqueue(JobKind.PREVIEW, uuid.uuid4(), uuid.uuid4())


@pytest.fixture
async def seed_upload_job(job_repository: JobRepository) -> JobRecord:
    return await job_repository.enqueue(
        JobKind.UPLOAD, uuid.uuid4(), uuid.uuid4(), StorageProvider.GOOGLE_DRIVE
    )


@pytest.fixture
async def seed_document(integration_pool: None) -> DocumentRecord:
    client_id = uuid.uuid4()
    async with get_connection() as conn:
        cur = await conn.execute(
            """
            INSERT INTO documents (client_id, name, mime_type, storage_path)
            VALUES (%s, %s, %s, %s)
            RETURNING id
            """,
            (client_id, "report.pdf", "application/pdf", f"clients/{client_id}/report.pdf"),
        )
        row = await cur.fetchone()
        await conn.commit()
    assert row is not None
    return DocumentRecord(
        id=row[0],
        client_id=client_id,
        name="report.pdf",
        mime_type="application/pdf",
        storage_path=f"clients/{client_id}/report.pdf",
    )
