"""Tests for near-duplicate detection."""

import pytest

from kakeibo.scanner.duplicates import (
    DuplicateGroup,
    duplicate_ids,
    find_duplicates,
    is_probable_duplicate,
    similarity,
)
from kakeibo.scanner.models import Transaction


def _tx(tx_id, description, amount=-1000, date="2024/01/15"):
    return Transaction(
        date=date, description=description, amount=amount, type="expense", id=tx_id
    )


class TestSimilarity:
    def test_identical(self):
        assert similarity("ローソン", "ローソン") == pytest.approx(1.2)

    def test_containment_bonus(self):
        # 7 / 10 + 0.2
        assert similarity("セブンイレブン渋谷店", "セブンイレブン") == pytest.approx(0.9)

    def test_case_insensitive(self):
        assert similarity("AMAZON", "amazon") == pytest.approx(1.2)

    def test_character_overlap(self):
        assert similarity("abcd", "abxy") == pytest.approx(0.5)

    def test_both_empty(self):
        assert similarity("", "") == 1.0

    def test_unrelated(self):
        assert similarity("ENEOS", "ローソン") == 0.0


class TestIsProbableDuplicate:
    def test_sign_ignored(self):
        assert is_probable_duplicate(
            _tx("a", "ローソン", -500), _tx("b", "ローソン", 500)
        )

    def test_different_amount(self):
        assert not is_probable_duplicate(
            _tx("a", "ローソン", -500), _tx("b", "ローソン", -501)
        )

    def test_different_date(self):
        assert not is_probable_duplicate(
            _tx("a", "セブンイレブン渋谷店"),
            _tx("b", "セブンイレブン", date="2024/01/16"),
        )


class TestFindDuplicates:
    def test_containment_pair_grouped(self):
        groups = find_duplicates([
            _tx("a", "セブンイレブン渋谷店"),
            _tx("b", "セブンイレブン"),
        ])
        assert groups == [DuplicateGroup(anchor_id="a", matching_ids=["b"])]

    def test_no_duplicates(self):
        assert find_duplicates([_tx("a", "ローソン"), _tx("b", "ENEOS")]) == []

    def test_claimed_transaction_not_reused_as_anchor(self):
        groups = find_duplicates([
            _tx("a", "ローソン"),
            _tx("b", "ローソン"),
            _tx("c", "ローソン"),
        ])
        assert groups == [DuplicateGroup(anchor_id="a", matching_ids=["b", "c"])]

    def test_nothing_removed(self):
        txs = [_tx("a", "ローソン"), _tx("b", "ローソン")]
        find_duplicates(txs)
        assert [t.id for t in txs] == ["a", "b"]

    def test_duplicate_ids(self):
        groups = [
            DuplicateGroup(anchor_id="a", matching_ids=["b"]),
            DuplicateGroup(anchor_id="x", matching_ids=["y", "z"]),
        ]
        assert duplicate_ids(groups) == {"a", "b", "x", "y", "z"}
