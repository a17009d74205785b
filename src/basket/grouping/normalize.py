"""Deterministic product-name normalization.

A declared mapping always wins over the algorithm: if the account has an
effective rule for the exact raw name, the cleaned group name is the key. Otherwise
the name is cleaned into a comparison key so trivially different spellings
("Cola Z 4p", "cola  zero") collapse together.

This is an exact-match key (not fuzzy matching); fuzzy comparison lives in
``similarity``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

_WHITESPACE = re.compile(r"\s+")

# Pack-size tokens: digits immediately followed by a unit ("4p", "6st", "12pk").
_PACK_SIZE = re.compile(r"\d+(?:p|st|pk)")

# Ambiguous single-letter unit tokens and their spelled-out form.
_UNIT_TOKENS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bz\b"), "zero"),
]

# Compound words receipts print with or without a space.
_COMPOUND_WORDS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bbrygg\s*kaffe\b"), "bryggkaffe"),
    (re.compile(r"\bmellan\s*mjölk\b"), "mellanmjölk"),
    (re.compile(r"\blätt\s*mjölk\b"), "lättmjölk"),
    (re.compile(r"\bstand\s*mjölk\b"), "standardmjölk"),
    (re.compile(r"\bstandard\s*mjölk\b"), "standardmjölk"),
    (re.compile(r"\bgrädd\s*fil\b"), "gräddfil"),
    (re.compile(r"\bfil\s*mjölk\b"), "filmjölk"),
]


class RuleLike(Protocol):
    mapped_name: str
    category: str | None


@dataclass(frozen=True)
class NormalizedName:
    key: str
    category: str | None = None


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _strip_pack_sizes(text: str) -> str:
    tokens = text.split(" ")
    while tokens and _PACK_SIZE.fullmatch(tokens[-1]):
        tokens.pop()
    return " ".join(tokens)


def normalize_key(raw_name: str | None) -> str:
    """Algorithmic normalization only (no mapping lookup)."""
    text = _collapse((raw_name or "").lower())
    text = _strip_pack_sizes(text)
    for pattern, replacement in _UNIT_TOKENS:
        text = pattern.sub(replacement, text)
    for pattern, replacement in _COMPOUND_WORDS:
        text = pattern.sub(replacement, text)
    return _collapse(text)


def normalize(
    raw_name: str | None,
    rule_lookup: Mapping[str, RuleLike] | None = None,
) -> NormalizedName:
    """Turn a raw receipt name into a comparison key.

    Args:
        raw_name: Name as printed on the receipt.
        rule_lookup: Effective rules for the caller, keyed by original name
            (see ``resolver.merge_rules``).

    Returns:
        NormalizedName with the key and, when a rule matched, its category.
    """
    if raw_name and rule_lookup:
        rule = rule_lookup.get(raw_name)
        # Detached rules (empty mapped_name) don't name a group; fall through.
        if rule is not None and rule.mapped_name:
            return NormalizedName(key=normalize_key(rule.mapped_name), category=rule.category)

    return NormalizedName(key=normalize_key(raw_name))
