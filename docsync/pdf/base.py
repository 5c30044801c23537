from abc import ABC, abstractmethod


class BasePdfRasterizer(ABC):
    """Contract for all PDF rasterization adapters."""

    @abstractmethod
    def render_first_page(self, pdf_bytes: bytes, scale: float) -> bytes:
        """Render page one of a PDF to PNG.

        Args:
            pdf_bytes: Raw PDF file content.
            scale: Zoom factor relative to 72 dpi.

        Returns:
            PNG-encoded image bytes.

        Raises:
            PdfRenderError: if the document has no pages or cannot be rendered.
        """
