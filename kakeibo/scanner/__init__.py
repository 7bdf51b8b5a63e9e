"""Document scanning: AI extraction of transactions from receipts and statements."""

from .ai import AnalysisError, ExtractionBackend, create_backend, parse_response
from .config import ScannerConfig, ScanOptions, load_config
from .duplicates import DuplicateGroup, duplicate_ids, find_duplicates
from .learning import LearningRule, load_learning_rules, update_rule
from .models import (
    MultiPageProgress,
    PageImage,
    PageResult,
    ScanResult,
    Transaction,
)
from .multipage import analyze_multi_page_pdf, scan_document
from .normalizer import normalize_transactions, toggle_sign
from .retry import RetryPolicy, with_retry

__all__ = [
    "AnalysisError",
    "ExtractionBackend",
    "create_backend",
    "parse_response",
    "ScannerConfig",
    "ScanOptions",
    "load_config",
    "DuplicateGroup",
    "find_duplicates",
    "duplicate_ids",
    "LearningRule",
    "load_learning_rules",
    "update_rule",
    "Transaction",
    "PageImage",
    "PageResult",
    "ScanResult",
    "MultiPageProgress",
    "analyze_multi_page_pdf",
    "scan_document",
    "normalize_transactions",
    "toggle_sign",
    "RetryPolicy",
    "with_retry",
]
