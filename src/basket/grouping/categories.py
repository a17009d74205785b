"""Grocery category taxonomy and cleanup rules.

Category keys are stable identifiers stored on mappings and receipt items.
Older rows sometimes carry free-form or English category strings; ``clean_category``
maps those back onto the taxonomy deterministically.
"""

from __future__ import annotations

import re

# Public taxonomy. Keys are stored; labels are for presentation.
CATEGORY_LABELS: dict[str, str] = {
    "frukt_och_gront": "Frukt och grönt",
    "mejeri": "Mejeri",
    "kott_fagel_chark": "Kött, fågel, chark",
    "fisk_skaldjur": "Fisk och skaldjur",
    "brod_bageri": "Bröd och bageri",
    "skafferi": "Skafferi",
    "frysvaror": "Frysvaror",
    "drycker": "Drycker",
    "sotsaker_snacks": "Sötsaker och snacks",
    "fardigmat": "Färdigmat",
    "hushall_hygien": "Hushåll och hygien",
    "delikatess": "Delikatess",
    "pant": "Pant",
    "other": "Övrigt",
}

CATEGORIES: set[str] = set(CATEGORY_LABELS)

FALLBACK_CATEGORY = "other"

# Legacy English keys written by early versions of the receipt parser.
_LEGACY_ALIASES: dict[str, str] = {
    "fruits_vegetables": "frukt_och_gront",
    "dairy": "mejeri",
    "meat": "kott_fagel_chark",
    "bread": "brod_bageri",
    "pantry": "skafferi",
    "frozen": "frysvaror",
    "drinks": "drycker",
    "snacks": "sotsaker_snacks",
}


def is_valid_category(category: str | None) -> bool:
    return category in CATEGORIES


def normalize_category_input(category: str | None) -> str | None:
    """Trim and lower-case a user-supplied category key; empty input means no category."""
    if category is None:
        return None
    cleaned = re.sub(r"\s+", " ", category).strip().lower()
    return cleaned or None


def clean_category(category: str) -> str:
    """Map an arbitrary stored category string onto the taxonomy.

    Rules, first match wins:
    - comma-separated lists take the first valid part ("mejeri, eko" -> "mejeri")
    - whitespace/case variants of a valid key
    - legacy English aliases
    - anything else becomes "other"
    """
    current = category.lower().strip()

    if "," in current:
        for part in current.split(","):
            part = part.strip()
            if part in CATEGORIES:
                return part
        return FALLBACK_CATEGORY

    if current in CATEGORIES:
        return current

    return _LEGACY_ALIASES.get(current, FALLBACK_CATEGORY)
