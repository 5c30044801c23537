import pymupdf

from docsync.pdf.base import BasePdfRasterizer
from docsync.pdf.exceptions import PdfRenderError


class PyMuPdfAdapter(BasePdfRasterizer):
    """Renders PDF pages using PyMuPDF."""

    def render_first_page(self, pdf_bytes: bytes, scale: float) -> bytes:
        try:
            with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
                if doc.page_count == 0:
                    raise PdfRenderError("PDF has no pages")
                pixmap = doc[0].get_pixmap(matrix=pymupdf.Matrix(scale, scale))
                return pixmap.tobytes("png")
        except PdfRenderError:
            raise
        except Exception as exc:
            raise PdfRenderError(f"PDF rendering failed: {exc}") from exc
