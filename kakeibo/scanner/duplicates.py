"""Near-duplicate transaction detection."""

from __future__ import annotations

from dataclasses import dataclass, field

from .models import Transaction

DUPLICATE_THRESHOLD = 0.8
_CONTAINMENT_BONUS = 0.2


@dataclass
class DuplicateGroup:
    anchor_id: str
    matching_ids: list[str] = field(default_factory=list)


def similarity(s1: str, s2: str) -> float:
    """Rough description similarity in ``[0, 1.2]``.

    If one string contains the other (ignoring case) the length ratio gets a
    +0.2 bonus; otherwise it's the share of the shorter string's characters
    that appear anywhere in the longer one.
    """
    longer, shorter = (s1, s2) if len(s1) > len(s2) else (s2, s1)
    if not longer:
        return 1.0
    longer_l, shorter_l = longer.lower(), shorter.lower()
    if shorter_l in longer_l:
        return len(shorter) / len(longer) + _CONTAINMENT_BONUS
    matches = sum(1 for ch in shorter_l if ch in longer_l)
    return matches / len(longer)


def is_probable_duplicate(a: Transaction, b: Transaction) -> bool:
    return (
        a.date == b.date
        and abs(a.amount) == abs(b.amount)
        and similarity(a.description, b.description) >= DUPLICATE_THRESHOLD
    )


def find_duplicates(transactions: list[Transaction]) -> list[DuplicateGroup]:
    """Group transactions that look like re-entries of the same event.

    Single left-to-right pass: a transaction already claimed by an earlier
    anchor is never an anchor itself. Nothing is removed or merged.
    """
    groups: list[DuplicateGroup] = []
    claimed: set[str] = set()

    for i, anchor in enumerate(transactions):
        if anchor.id in claimed:
            continue
        matching: list[str] = []
        for other in transactions[i + 1:]:
            if is_probable_duplicate(anchor, other):
                matching.append(other.id)
                claimed.add(other.id)
        if matching:
            groups.append(DuplicateGroup(anchor_id=anchor.id, matching_ids=matching))
            claimed.add(anchor.id)

    return groups


def duplicate_ids(groups: list[DuplicateGroup]) -> set[str]:
    """All transaction ids that take part in any duplicate group."""
    ids: set[str] = set()
    for group in groups:
        ids.add(group.anchor_id)
        ids.update(group.matching_ids)
    return ids
