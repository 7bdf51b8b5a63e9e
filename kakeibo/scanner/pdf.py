"""PDF page rasterization using PyMuPDF."""

from __future__ import annotations

import base64
import binascii
import logging

from .models import PageImage

logger = logging.getLogger(__name__)

DEFAULT_SCALE = 2.0


def decode_document(data: bytes | str) -> bytes:
    """Return raw document bytes.

    Strings are treated as base64, optionally with a data-URL prefix
    (``data:application/pdf;base64,...``). Whitespace such as line
    wrapping is ignored.

    Raises:
        ValueError: If the string isn't valid base64.
    """
    if isinstance(data, bytes):
        return data
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    # MIME base64 wraps lines
    data = "".join(data.split())
    try:
        return base64.b64decode(data, validate=True)
    except binascii.Error as e:
        raise ValueError(f"Base64デコードに失敗しました: {e}") from e


def _import_fitz():
    try:
        import pymupdf as fitz
    except ImportError:
        raise ImportError(
            "PyMuPDF が必要です: pip install pymupdf"
        ) from None
    return fitz


def _open(data: bytes):
    fitz = _import_fitz()
    try:
        return fitz.open(stream=data, filetype="pdf")
    except Exception as e:
        raise RuntimeError(f"PDFを開けませんでした: {e}") from e


def get_pdf_page_count(data: bytes) -> int:
    """Return the number of pages in a PDF.

    Raises:
        RuntimeError: If the PDF cannot be opened.
    """
    with _open(data) as doc:
        return doc.page_count


def is_pdf_multi_page(data: bytes) -> bool:
    return get_pdf_page_count(data) > 1


def _render_page(doc, index: int, scale: float) -> bytes:
    fitz = _import_fitz()
    page = doc.load_page(index)
    pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
    try:
        return pix.tobytes("png")
    finally:
        # Release the pixel buffer before the next page is rendered
        del pix


def extract_pdf_pages(data: bytes, scale: float = DEFAULT_SCALE) -> list[PageImage]:
    """Render every page of a PDF to PNG.

    A page that fails to render is still returned, with empty ``data``, so
    one bad page never fails the whole document.

    Raises:
        RuntimeError: If the PDF cannot be opened.
    """
    pages: list[PageImage] = []
    with _open(data) as doc:
        total = doc.page_count
        logger.info("PDF %d ページを画像化します (scale=%.1f)", total, scale)
        for index in range(total):
            page_number = index + 1
            try:
                png = _render_page(doc, index, scale)
            except Exception:
                logger.exception("ページ %d の画像化に失敗しました", page_number)
                pages.append(PageImage(page_number=page_number))
                continue
            pages.append(PageImage(page_number=page_number, data=png))
            logger.debug("ページ %d/%d を画像化しました", page_number, total)
    return pages


def extract_single_page(
    data: bytes, page_number: int, scale: float = DEFAULT_SCALE
) -> PageImage:
    """Render one page (1-based) of a PDF to PNG.

    Raises:
        ValueError: If ``page_number`` is out of range.
        RuntimeError: If the PDF cannot be opened or the page fails to render.
    """
    with _open(data) as doc:
        if page_number < 1 or page_number > doc.page_count:
            raise ValueError(
                f"無効なページ番号: {page_number} (PDFは {doc.page_count} ページです)"
            )
        try:
            png = _render_page(doc, page_number - 1, scale)
        except Exception as e:
            raise RuntimeError(f"ページ {page_number} の抽出に失敗しました: {e}") from e
    return PageImage(page_number=page_number, data=png)
