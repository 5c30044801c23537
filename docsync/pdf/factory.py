from docsync.config.settings import Settings
from docsync.exceptions import ConfigurationError
from docsync.pdf.base import BasePdfRasterizer
from docsync.pdf.pdfplumber_adapter import PdfPlumberAdapter
from docsync.pdf.pymupdf_adapter import PyMuPdfAdapter


class PdfRasterizerFactory:
    """Picks the rasterizer named by ``settings.pdf_engine``."""

    ADAPTERS: dict[str, type[BasePdfRasterizer]] = {
        "pymupdf": PyMuPdfAdapter,
        "pdfplumber": PdfPlumberAdapter,
    }

    @classmethod
    def create(cls, settings: Settings) -> BasePdfRasterizer:
        engine = settings.pdf_engine.lower()
        try:
            return cls.ADAPTERS[engine]()
        except KeyError:
            raise ConfigurationError(
                f"Unknown PDF engine '{engine}'. Choose from: {sorted(cls.ADAPTERS)}"
            ) from None
