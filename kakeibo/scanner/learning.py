"""Learned description → account mappings, kept per client."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LearningRule:
    kamoku: str
    sub_kamoku: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"kamoku": self.kamoku, "subKamoku": self.sub_kamoku}


def load_learning_rules(raw: Mapping) -> dict[str, LearningRule]:
    """Build rules from their stored JSON shape.

    Older data stored the account name as a bare string; those entries are
    migrated to a rule with an empty sub-account.
    """
    rules: dict[str, LearningRule] = {}
    for description, value in raw.items():
        if isinstance(value, str):
            rules[description] = LearningRule(kamoku=value)
        elif isinstance(value, Mapping):
            rules[description] = LearningRule(
                kamoku=value.get("kamoku") or "",
                sub_kamoku=value.get("subKamoku") or "",
            )
        else:
            logger.warning("学習ルールの形式が不正なためスキップします: %r", description)
    return rules


def update_rule(
    rules: Mapping[str, LearningRule],
    description: str,
    kamoku: str,
    sub_kamoku: str = "",
) -> dict[str, LearningRule]:
    """Return a new mapping with the rule for ``description`` replaced."""
    updated = dict(rules)
    updated[description] = LearningRule(kamoku=kamoku, sub_kamoku=sub_kamoku)
    return updated


def dump_learning_rules(rules: Mapping[str, LearningRule]) -> dict[str, dict[str, str]]:
    return {description: rule.to_dict() for description, rule in rules.items()}


def load_rules_file(path: str | Path, client: str) -> dict[str, LearningRule]:
    """Read one client's rules from a JSON file keyed by client name.

    A missing file or client yields no rules.
    """
    p = Path(path)
    if not p.exists():
        return {}
    with open(p, encoding="utf-8") as f:
        data = json.load(f)
    return load_learning_rules(data.get(client, {}))
