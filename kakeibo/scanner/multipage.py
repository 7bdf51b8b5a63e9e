"""Page-by-page analysis of multi-page PDFs.

Pages are analysed one at a time by default so a long statement stays under
the inference service's per-minute rate limits. A failure on one page is
recorded on that page's :class:`PageResult` and the run moves on to the next
page. Cancelling the surrounding task stops the run; no further pages are
sent after the cancellation point.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING

from .ai.errors import AnalysisError
from .config import ScanOptions
from .models import MultiPageProgress, PageImage, PageResult, ScanResult
from .normalizer import normalize_transactions
from .pdf import DEFAULT_SCALE, decode_document, extract_pdf_pages, get_pdf_page_count
from .retry import RetryPolicy, with_retry

if TYPE_CHECKING:
    from .ai import ExtractionBackend
    from .learning import LearningRule

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[MultiPageProgress], None]

PDF_MIME_TYPE = "application/pdf"


def _emit(on_progress: ProgressCallback | None, progress: MultiPageProgress) -> None:
    if on_progress is not None:
        on_progress(progress)


async def analyze_multi_page_pdf(
    data: bytes,
    backend: ExtractionBackend,
    *,
    auto_kamoku: bool = False,
    on_progress: ProgressCallback | None = None,
    policy: RetryPolicy | None = None,
    scale: float = DEFAULT_SCALE,
    concurrency: int = 1,
) -> list[PageResult]:
    """Rasterize a PDF and extract transactions from each page.

    Args:
        data: Raw PDF bytes.
        backend: Extraction backend used for every page.
        auto_kamoku: Ask the model to guess account items.
        on_progress: Called with phase and page counts as the run advances.
        policy: Retry policy applied to each page's AI call.
        scale: Rasterization scale (2.0 = twice the nominal resolution).
        concurrency: Pages analysed at once. Values above 1 trade rate-limit
            safety for speed; results stay in page order either way.

    Returns:
        One PageResult per page, in page order.

    Raises:
        RuntimeError: If the PDF cannot be opened at all.
    """
    _emit(on_progress, MultiPageProgress(
        phase="extracting",
        current_page=0,
        total_pages=0,
        message="PDFをページごとに画像化しています...",
    ))
    pages = await asyncio.to_thread(extract_pdf_pages, data, scale)
    total = len(pages)
    logger.info("%d ページの解析を開始します", total)

    async def analyze(page: PageImage) -> PageResult:
        number = page.page_number
        _emit(on_progress, MultiPageProgress(
            phase="analyzing",
            current_page=number,
            total_pages=total,
            message=f"ページ {number}/{total} を解析中...",
        ))
        if not page.ok:
            return PageResult(page_number=number, error="ページの画像化に失敗しました")

        call = functools.partial(
            backend.extract_transactions,
            page.data,
            page.mime_type,
            auto_kamoku=auto_kamoku,
        )
        try:
            transactions = await with_retry(call, policy)
        except AnalysisError as e:
            logger.warning("ページ %d の解析に失敗しました: %s", number, e.message)
            return PageResult(page_number=number, error=e.message)
        except Exception as e:
            logger.exception("ページ %d の解析中に予期しないエラーが発生しました", number)
            return PageResult(page_number=number, error=f"予期しないエラー: {e}")

        logger.info("ページ %d: %d 件の取引を抽出しました", number, len(transactions))
        return PageResult(page_number=number, transactions=transactions)

    if concurrency <= 1:
        results = [await analyze(page) for page in pages]
    else:
        semaphore = asyncio.Semaphore(concurrency)

        async def bounded(page: PageImage) -> PageResult:
            async with semaphore:
                return await analyze(page)

        results = list(await asyncio.gather(*(bounded(page) for page in pages)))

    _emit(on_progress, MultiPageProgress(
        phase="complete",
        current_page=total,
        total_pages=total,
        message="解析が完了しました",
    ))
    return results


async def scan_document(
    data: bytes | str,
    mime_type: str,
    backend: ExtractionBackend,
    *,
    options: ScanOptions | None = None,
    learning_rules: Mapping[str, LearningRule] | None = None,
    policy: RetryPolicy | None = None,
    on_progress: ProgressCallback | None = None,
) -> ScanResult:
    """Extract and normalize the transactions of one document.

    Multi-page PDFs in ``split`` mode are analysed page by page and never
    raise for a single page's failure. Images and everything else are sent
    in one call whose classified error propagates to the caller.

    Raises:
        AnalysisError: Failure of a single-call analysis.
        RuntimeError: If a PDF in split mode cannot be opened.
    """
    options = options or ScanOptions()
    raw = decode_document(data)
    rules = dict(learning_rules or {})

    def normalize(transactions):
        return normalize_transactions(
            transactions,
            learning_rules=rules,
            book_type=options.book_type,
            auto_kamoku=options.auto_kamoku,
        )

    if mime_type == PDF_MIME_TYPE and options.pdf_mode == "split":
        page_count = await asyncio.to_thread(get_pdf_page_count, raw)
        if page_count > 1:
            page_results = await analyze_multi_page_pdf(
                raw,
                backend,
                auto_kamoku=options.auto_kamoku,
                on_progress=on_progress,
                policy=policy,
                scale=options.render_scale,
                concurrency=options.concurrency,
            )
            pages = [
                PageResult(
                    page_number=p.page_number,
                    transactions=normalize(p.transactions),
                    error=p.error,
                )
                for p in page_results
            ]
            result = ScanResult(
                is_multi_page=True,
                pages=pages,
                transactions=[tx for p in pages for tx in p.transactions],
            )
            logger.info("%s", result.summary())
            return result

    call = functools.partial(
        backend.extract_transactions,
        raw,
        mime_type,
        auto_kamoku=options.auto_kamoku,
    )
    transactions = normalize(await with_retry(call, policy))
    return ScanResult(
        is_multi_page=False,
        pages=[PageResult(page_number=1, transactions=transactions)],
        transactions=transactions,
    )
