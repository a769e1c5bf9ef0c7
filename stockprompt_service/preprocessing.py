"""
Input normalization for uploaded files.

A selection of files becomes a flat, ordered list of single-image assets:
unsupported types are skipped up front, PDFs are split into one JPEG per
page (first pages only), everything else passes through unchanged. This is
the only place where one selected file can turn into several units.
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Iterable, List, Optional, Protocol

from PIL import Image

from .errors import PdfDecompositionError
from .models import Asset

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
SUPPORTED_MEDIA_TYPES = frozenset({"image/jpeg", "image/png", "image/webp", PDF_MEDIA_TYPE})
SKIP_NOTICE = "Some files were skipped because their format is not supported (use JPG, PNG, WEBP, PDF)."

DEFAULT_MAX_PAGES = 10
DEFAULT_RENDER_SCALE = 2.0
DEFAULT_JPEG_QUALITY = 95

_EXTENSION_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".pdf": PDF_MEDIA_TYPE,
}


class PageRenderer(Protocol):
    def page_count(self, pdf_bytes: bytes) -> int:
        ...

    def render_page(self, pdf_bytes: bytes, page_number: int, scale: float) -> bytes:
        ...


class PyMuPdfRenderer:
    """Rasterize PDF pages with PyMuPDF and encode them as JPEG with Pillow."""

    def __init__(self, jpeg_quality: int = DEFAULT_JPEG_QUALITY) -> None:
        self.jpeg_quality = jpeg_quality

    @staticmethod
    def _open(pdf_bytes: bytes):
        import fitz  # PyMuPDF

        try:
            doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        except Exception as exc:  # noqa: BLE001
            raise PdfDecompositionError(f"Could not open PDF: {exc}") from exc
        if doc.needs_pass:
            doc.close()
            raise PdfDecompositionError("PDF is password protected")
        return doc

    def page_count(self, pdf_bytes: bytes) -> int:
        doc = self._open(pdf_bytes)
        try:
            return doc.page_count
        finally:
            doc.close()

    def render_page(self, pdf_bytes: bytes, page_number: int, scale: float) -> bytes:
        """Render 1-based `page_number` at `scale` times its point size."""
        import fitz  # PyMuPDF

        doc = self._open(pdf_bytes)
        try:
            page = doc.load_page(page_number - 1)
            pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
            image = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
        finally:
            doc.close()

        buffer = BytesIO()
        image.save(buffer, format="JPEG", quality=self.jpeg_quality)
        return buffer.getvalue()


@dataclass
class NormalizedInput:
    assets: List[Asset] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def skip_notice(self) -> Optional[str]:
        return SKIP_NOTICE if self.skipped else None


def guess_media_type(filename: str) -> str:
    """Media type from the file extension, `application/octet-stream` when unknown."""
    suffix = Path(filename).suffix.lower()
    if suffix in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def asset_from_path(path: Path) -> Asset:
    return Asset(filename=path.name, media_type=guess_media_type(path.name), data=path.read_bytes())


def _page_filename(pdf_name: str, page_number: int) -> str:
    stem = pdf_name[:-4] if pdf_name.lower().endswith(".pdf") else pdf_name
    return f"{stem}_page_{page_number}.jpg"


def split_pdf_pages(
    pdf: Asset,
    renderer: PageRenderer,
    max_pages: int = DEFAULT_MAX_PAGES,
    scale: float = DEFAULT_RENDER_SCALE,
) -> List[Asset]:
    """
    Render the first `max_pages` pages of a PDF into standalone JPEG assets.

    Raises:
        PdfDecompositionError: when the document cannot be read or yields no pages.
    """
    try:
        total = renderer.page_count(pdf.data)
        pages: List[Asset] = []
        for number in range(1, min(total, max_pages) + 1):
            pages.append(
                Asset(
                    filename=_page_filename(pdf.filename, number),
                    media_type="image/jpeg",
                    data=renderer.render_page(pdf.data, number, scale),
                )
            )
    except PdfDecompositionError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise PdfDecompositionError(f"Failed to render {pdf.filename}: {exc}") from exc

    if not pages:
        raise PdfDecompositionError(f"{pdf.filename} has no renderable pages")
    if total > max_pages:
        logger.info("PDF %s has %d pages, only the first %d are used", pdf.filename, total, max_pages)
    return pages


def normalize_inputs(
    files: Iterable[Asset],
    renderer: Optional[PageRenderer] = None,
    max_pages: int = DEFAULT_MAX_PAGES,
    scale: float = DEFAULT_RENDER_SCALE,
) -> NormalizedInput:
    """
    Turn a file selection into a flat list of single-image assets.

    A PDF that cannot be split is passed through as-is so every supported
    file yields at least one asset.
    """
    renderer = renderer or PyMuPdfRenderer()
    result = NormalizedInput()

    for item in files:
        if item.media_type not in SUPPORTED_MEDIA_TYPES:
            logger.info("Skipping unsupported file %s (%s)", item.filename, item.media_type)
            result.skipped.append(item.filename)
            continue

        if item.media_type != PDF_MEDIA_TYPE:
            result.assets.append(item)
            continue

        try:
            pages = split_pdf_pages(item, renderer, max_pages=max_pages, scale=scale)
        except PdfDecompositionError as exc:
            logger.warning("PDF decomposition failed, passing %s through unmodified: %s", item.filename, exc)
            result.assets.append(item)
            continue
        result.assets.extend(pages)

    return result
