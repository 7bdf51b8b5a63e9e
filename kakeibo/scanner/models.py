"""Data models for scanned transactions and scan results."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Literal

TransactionType = Literal["income", "expense"]
BookType = Literal["cash", "deposit", "credit"]

BOOK_TYPES: tuple[str, ...] = ("cash", "deposit", "credit")


def new_transaction_id() -> str:
    return f"txn-{uuid.uuid4().hex[:12]}"


@dataclass
class Transaction:
    """A single accounting entry extracted from a document."""

    date: str  # YYYY/MM/DD
    description: str  # 摘要（店名・振込先）
    amount: int | float
    type: TransactionType
    kamoku: str | None = None  # 相手勘定科目
    sub_kamoku: str | None = None  # 相手補助科目
    invoice_number: str | None = None  # 適格 / 非適格
    tax_category: str | None = None  # 課税仕入 10% など
    memo: str | None = None
    id: str = field(default_factory=new_transaction_id)

    def to_dict(self) -> dict:
        """Serialize with the key names used by the bookkeeping UI."""
        data = {
            "id": self.id,
            "date": self.date,
            "description": self.description,
            "amount": self.amount,
            "type": self.type,
            "kamoku": self.kamoku,
            "subKamoku": self.sub_kamoku,
            "invoiceNumber": self.invoice_number,
            "taxCategory": self.tax_category,
        }
        if self.memo is not None:
            data["memo"] = self.memo
        return data


@dataclass
class PageImage:
    """One rasterized PDF page. ``data`` is empty when rendering failed."""

    page_number: int
    data: bytes = b""
    mime_type: str = "image/png"

    @property
    def ok(self) -> bool:
        return bool(self.data)


@dataclass
class PageResult:
    page_number: int
    transactions: list[Transaction] = field(default_factory=list)
    error: str | None = None


@dataclass
class ScanResult:
    is_multi_page: bool
    pages: list[PageResult] = field(default_factory=list)
    transactions: list[Transaction] = field(default_factory=list)

    @property
    def succeeded_pages(self) -> list[PageResult]:
        return [p for p in self.pages if p.error is None]

    @property
    def failed_pages(self) -> list[PageResult]:
        return [p for p in self.pages if p.error is not None]

    def summary(self) -> str:
        """Human-readable outcome, in the wording shown to the user."""
        total = len(self.transactions)
        failed = len(self.failed_pages)
        if failed:
            return (
                f"{len(self.succeeded_pages)}ページ成功、"
                f"{failed}ページでエラーが発生しました（計{total}件）"
            )
        if self.is_multi_page:
            return f"{len(self.pages)}ページから{total}件の取引を抽出しました"
        return f"{total}件の取引を抽出しました"


@dataclass
class MultiPageProgress:
    phase: Literal["extracting", "analyzing", "complete"]
    current_page: int
    total_pages: int
    message: str
