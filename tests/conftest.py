import io
import uuid
from datetime import UTC, datetime, timedelta

import pytest
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from docsync.database.models import ConnectionRecord, ConnectionStatus, StorageProvider
from docsync.security.token_cipher import TokenCipher
from tests.fakes import (
    InMemoryConnectionRepository,
    InMemoryDocumentRepository,
    InMemoryDocumentStore,
    InMemoryJobRepository,
)

TEST_ENCRYPTION_KEY = "0123456789abcdef" * 4


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Generate a minimal single-page PDF with known text content."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Hello PDF World")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def multi_page_pdf_bytes() -> bytes:
    """Generate a two-page PDF with known text on each page."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Page one content")
    c.showPage()
    c.drawString(72, 720, "Page two content")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def cipher() -> TokenCipher:
    return TokenCipher(TEST_ENCRYPTION_KEY)


@pytest.fixture()
def job_repo() -> InMemoryJobRepository:
    return InMemoryJobRepository(max_attempts=3)


@pytest.fixture()
def connection_repo() -> InMemoryConnectionRepository:
    return InMemoryConnectionRepository()


@pytest.fixture()
def doc_repo() -> InMemoryDocumentRepository:
    return InMemoryDocumentRepository()


@pytest.fixture()
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture()
def client_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture()
def stored_connection(
    cipher: TokenCipher,
    connection_repo: InMemoryConnectionRepository,
    client_id: uuid.UUID,
) -> ConnectionRecord:
    """A connected Google Drive row with an hour of token validity left."""
    return connection_repo.add(
        ConnectionRecord(
            id=uuid.uuid4(),
            client_id=client_id,
            provider=StorageProvider.GOOGLE_DRIVE,
            status=ConnectionStatus.CONNECTED,
            access_token=cipher.encrypt("access-1"),
            refresh_token=cipher.encrypt("refresh-1"),
            expires_at=datetime.now(UTC) + timedelta(hours=1),
        )
    )
