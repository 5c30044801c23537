from abc import ABC, abstractmethod


def preview_key(client_id: object, document_id: object) -> str:
    return f"clients/{client_id}/documents/{document_id}/preview.webp"


def export_key(client_id: object, export_id: object) -> str:
    return f"clients/{client_id}/exports/{export_id}/export.zip"


class BaseDocumentStore(ABC):
    """Contract for the object store holding client documents and derived files.

    Implementations never delete objects.
    """

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Read an object's bytes.

        Raises:
            DocumentStoreError: if the object is missing or cannot be read.
        """

    @abstractmethod
    async def upload(self, path: str, data: bytes, content_type: str) -> None:
        """Write an object, replacing any existing one at ``path``."""
