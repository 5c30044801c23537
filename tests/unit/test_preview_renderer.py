import io
from unittest.mock import MagicMock

import pytest
from PIL import Image

from docsync.pdf.exceptions import PdfRenderError
from docsync.pdf.pymupdf_adapter import PyMuPdfAdapter
from docsync.preview.exceptions import PreviewError, UnsupportedPreviewTypeError
from docsync.preview.renderer import (
    MAX_PREVIEW_DIMENSION,
    PDF_RENDER_SCALE,
    PreviewRenderer,
    is_supported_for_preview,
)
from tests.fakes import make_png


def _size(webp: bytes) -> tuple[int, int]:
    with Image.open(io.BytesIO(webp)) as image:
        assert image.format == "WEBP"
        return image.size


class TestIsSupportedForPreview:
    @pytest.mark.parametrize("mime", ["application/pdf", "image/png", "image/jpeg", "image/webp"])
    def test_supported(self, mime: str) -> None:
        assert is_supported_for_preview(mime) is True

    @pytest.mark.parametrize("mime", ["text/csv", "application/zip", "", None])
    def test_unsupported(self, mime: str | None) -> None:
        assert is_supported_for_preview(mime) is False


class TestImagePreview:
    def test_large_image_fits_in_box_keeping_aspect(self) -> None:
        renderer = PreviewRenderer(MagicMock())

        result = renderer.render(make_png(2000, 1000), "image/png")

        assert result.mime_type == "image/webp"
        assert result.size == len(result.data)
        assert _size(result.data) == (MAX_PREVIEW_DIMENSION, 256)

    def test_tall_image_is_capped_by_height(self) -> None:
        width, height = _size(PreviewRenderer(MagicMock()).render(make_png(300, 1200), "image/png").data)

        assert height == MAX_PREVIEW_DIMENSION
        assert width == 128

    def test_small_image_is_not_upscaled(self) -> None:
        result = PreviewRenderer(MagicMock()).render(make_png(100, 50), "image/png")

        assert _size(result.data) == (100, 50)

    def test_transparent_image_is_accepted(self) -> None:
        buf = io.BytesIO()
        Image.new("RGBA", (600, 600), (255, 0, 0, 0)).save(buf, format="PNG")

        result = PreviewRenderer(MagicMock()).render(buf.getvalue(), "image/png")

        assert _size(result.data) == (512, 512)

    def test_undecodable_image_raises_preview_error(self) -> None:
        with pytest.raises(PreviewError, match="Image processing failed"):
            PreviewRenderer(MagicMock()).render(b"not an image", "image/png")


class TestPdfPreview:
    def test_pdf_first_page_is_rendered_and_shrunk(self, sample_pdf_bytes: bytes) -> None:
        result = PreviewRenderer(PyMuPdfAdapter()).render(sample_pdf_bytes, "application/pdf")

        width, height = _size(result.data)
        assert height == MAX_PREVIEW_DIMENSION
        assert width < height

    def test_rasterizer_gets_render_scale(self) -> None:
        rasterizer = MagicMock()
        rasterizer.render_first_page.return_value = make_png(1224, 1584)

        PreviewRenderer(rasterizer).render(b"%PDF", "application/pdf")

        rasterizer.render_first_page.assert_called_once_with(b"%PDF", PDF_RENDER_SCALE)

    def test_render_error_becomes_preview_error(self) -> None:
        rasterizer = MagicMock()
        rasterizer.render_first_page.side_effect = PdfRenderError("PDF has no pages")

        with pytest.raises(PreviewError, match="no pages"):
            PreviewRenderer(rasterizer).render(b"%PDF", "application/pdf")


class TestUnsupportedType:
    def test_csv_rejected_without_touching_rasterizer(self) -> None:
        rasterizer = MagicMock()

        with pytest.raises(UnsupportedPreviewTypeError):
            PreviewRenderer(rasterizer).render(b"a,b\n1,2", "text/csv")

        rasterizer.render_first_page.assert_not_called()

    async def test_async_render_rejects_before_thread_hop(self) -> None:
        rasterizer = MagicMock()

        with pytest.raises(UnsupportedPreviewTypeError):
            await PreviewRenderer(rasterizer).render_async(b"a,b", "text/csv")

        rasterizer.render_first_page.assert_not_called()

    async def test_async_render_produces_webp(self) -> None:
        result = await PreviewRenderer(MagicMock()).render_async(make_png(800, 800), "image/png")

        assert _size(result.data) == (512, 512)
