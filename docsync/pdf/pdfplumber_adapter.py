import io

import pdfplumber

from docsync.pdf.base import BasePdfRasterizer
from docsync.pdf.exceptions import PdfRenderError

_BASE_DPI = 72


class PdfPlumberAdapter(BasePdfRasterizer):
    """Renders PDF pages using pdfplumber (pypdfium2 under the hood)."""

    def render_first_page(self, pdf_bytes: bytes, scale: float) -> bytes:
        try:
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                if not pdf.pages:
                    raise PdfRenderError("PDF has no pages")
                page_image = pdf.pages[0].to_image(resolution=_BASE_DPI * scale)
                buffer = io.BytesIO()
                page_image.original.save(buffer, format="PNG")
                return buffer.getvalue()
        except PdfRenderError:
            raise
        except Exception as exc:
            raise PdfRenderError(f"PDF rendering failed: {exc}") from exc
