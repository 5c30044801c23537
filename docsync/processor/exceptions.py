class ProcessorError(Exception):
    """Base exception for all job processor errors."""


class DocumentNotFoundError(ProcessorError):
    """Raised when a document or export request cannot be found in the database."""


class DocumentStoreError(ProcessorError):
    """Raised when the document store cannot read or write an object."""


class ExportError(ProcessorError):
    """Raised when an export archive cannot be assembled."""
