"""Sign convention and account/tax defaulting for extracted transactions."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from types import MappingProxyType

from .ai.prompts import SUSPENSE_PAYABLE, SUSPENSE_RECEIVABLE
from .learning import LearningRule
from .models import Transaction

TAX_NOT_APPLICABLE = "対象外"
INVOICE_UNQUALIFIED = "非適格"

# Bank and credit-card ledgers carry no tax or invoice semantics
_NO_TAX_BOOK_TYPES = ("deposit", "credit")


def suspense_account(tx_type: str) -> str:
    return SUSPENSE_RECEIVABLE if tx_type == "income" else SUSPENSE_PAYABLE


def signed_amount(amount: int | float, tx_type: str) -> int | float:
    return abs(amount) if tx_type == "income" else -abs(amount)


def normalize_transaction(
    tx: Transaction,
    *,
    learning_rules: Mapping[str, LearningRule],
    book_type: str = "cash",
    auto_kamoku: bool = False,
) -> Transaction:
    """Return a normalized copy of ``tx``.

    Account precedence: learned rule for the exact description, then the
    AI's guess (only with ``auto_kamoku``), then the suspense account.
    """
    rule = learning_rules.get(tx.description)
    if rule is not None and rule.kamoku:
        kamoku, sub_kamoku = rule.kamoku, rule.sub_kamoku or ""
    elif auto_kamoku and tx.kamoku:
        kamoku, sub_kamoku = tx.kamoku, tx.sub_kamoku or ""
    else:
        kamoku, sub_kamoku = suspense_account(tx.type), ""

    if book_type in _NO_TAX_BOOK_TYPES:
        tax_category = TAX_NOT_APPLICABLE
        invoice_number = INVOICE_UNQUALIFIED
    else:
        tax_category = tx.tax_category or ""
        invoice_number = tx.invoice_number or ""

    return replace(
        tx,
        amount=signed_amount(tx.amount, tx.type),
        kamoku=kamoku,
        sub_kamoku=sub_kamoku,
        tax_category=tax_category,
        invoice_number=invoice_number,
    )


def normalize_transactions(
    transactions: list[Transaction],
    *,
    learning_rules: Mapping[str, LearningRule] | None = None,
    book_type: str = "cash",
    auto_kamoku: bool = False,
) -> list[Transaction]:
    """Normalize a batch against a snapshot of the learning rules."""
    snapshot = MappingProxyType(dict(learning_rules or {}))
    return [
        normalize_transaction(
            tx,
            learning_rules=snapshot,
            book_type=book_type,
            auto_kamoku=auto_kamoku,
        )
        for tx in transactions
    ]


def toggle_sign(tx: Transaction) -> Transaction:
    """Flip income/expense, swapping the suspense accounts to match."""
    new_type = "income" if tx.type == "expense" else "expense"
    kamoku = tx.kamoku
    if kamoku == SUSPENSE_PAYABLE:
        kamoku = SUSPENSE_RECEIVABLE
    elif kamoku == SUSPENSE_RECEIVABLE:
        kamoku = SUSPENSE_PAYABLE
    return replace(tx, type=new_type, amount=-tx.amount, kamoku=kamoku)
