class PreviewError(Exception):
    """Raised when a preview image cannot be produced."""


class UnsupportedPreviewTypeError(PreviewError):
    """Raised for mime types the renderer does not handle."""
