import asyncio
import io
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from docsync.logging.logger import Log
from docsync.pdf.base import BasePdfRasterizer
from docsync.pdf.exceptions import PdfRenderError
from docsync.preview.exceptions import PreviewError, UnsupportedPreviewTypeError

MAX_PREVIEW_DIMENSION = 512
WEBP_QUALITY = 80
PDF_RENDER_SCALE = 2.0
PREVIEW_MIME_TYPE = "image/webp"


def is_supported_for_preview(mime_type: str | None) -> bool:
    if not mime_type:
        return False
    return mime_type == "application/pdf" or mime_type.startswith("image/")


@dataclass(frozen=True)
class PreviewResult:
    data: bytes
    mime_type: str
    size: int


class PreviewRenderer:
    """Turns a PDF or image into a WEBP thumbnail no larger than 512 px."""

    def __init__(self, rasterizer: BasePdfRasterizer) -> None:
        self._rasterizer = rasterizer

    async def render_async(self, data: bytes, mime_type: str) -> PreviewResult:
        """Run :meth:`render` off the event loop; decoding is CPU-bound."""
        if not is_supported_for_preview(mime_type):
            raise UnsupportedPreviewTypeError(
                f"Unsupported file type for preview generation: {mime_type}"
            )
        return await asyncio.to_thread(self.render, data, mime_type)

    def render(self, data: bytes, mime_type: str) -> PreviewResult:
        Log.debug("Generating preview", mime_type=mime_type, size=len(data))
        if mime_type == "application/pdf":
            try:
                image_bytes = self._rasterizer.render_first_page(data, PDF_RENDER_SCALE)
            except PdfRenderError as exc:
                raise PreviewError(str(exc)) from exc
        elif mime_type.startswith("image/"):
            image_bytes = data
        else:
            raise UnsupportedPreviewTypeError(
                f"Unsupported file type for preview generation: {mime_type}"
            )

        preview = self._finish(image_bytes)
        return PreviewResult(data=preview, mime_type=PREVIEW_MIME_TYPE, size=len(preview))

    def _finish(self, image_bytes: bytes) -> bytes:
        """Shrink to fit inside the preview box and re-encode as WEBP."""
        try:
            with Image.open(io.BytesIO(image_bytes)) as source:
                image = source.convert("RGBA" if _has_alpha(source) else "RGB")
        except (UnidentifiedImageError, OSError) as exc:
            raise PreviewError(f"Image processing failed: {exc}") from exc

        if max(image.size) > MAX_PREVIEW_DIMENSION:
            # thumbnail() keeps the aspect ratio and never enlarges.
            image.thumbnail(
                (MAX_PREVIEW_DIMENSION, MAX_PREVIEW_DIMENSION), Image.Resampling.LANCZOS
            )

        buffer = io.BytesIO()
        image.save(buffer, format="WEBP", quality=WEBP_QUALITY)
        return buffer.getvalue()


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    )
