"""
Ingredient Name Normalizer

Pure string helpers that turn free-text ingredient names (as written by the
AI consultation) into comparison keys for catalog lookup.

    "  **Ashwagandha** (KSM-66) 600mg" -> "ashwagandha"
    "Ginkgo Biloba PE 1/8% Flavones"   -> "ginkgo biloba"

Keys are never shown to users. Display always uses the catalog's
canonical name.
"""

import re
from typing import Iterable

_MARKDOWN_NOISE = re.compile(r"[*_`\"“”]")
_APOSTROPHE = re.compile(r"['’]")
_BULLET_PREFIX = re.compile(r"^(?:[-•·]+|\d+[.)])\s+")
_PARENTHETICAL = re.compile(r"\s*[(\[][^)\]]*[)\]]")
# Standardized-extract qualifier, e.g. "PE 1/8% Flavones", "PE 4:1"
_PE_QUALIFIER = re.compile(r"\s+PE\b.*$", re.IGNORECASE)
_TRAILING_DOSE = re.compile(r"\s*[-–,:]?\s*\d+(?:\.\d+)?\s*(?:mg|mcg|µg|g|iu)\b\.?$", re.IGNORECASE)
_TRAILING_PUNCT = re.compile(r"[\s,;:.]+$")
_WHITESPACE = re.compile(r"\s+")


def normalize_ingredient_name(raw: str) -> str:
    """
    Build the comparison key for an ingredient name.

    Trims, collapses whitespace, strips markdown/bullet noise, apostrophes, parenthetical
    descriptors, PE qualifiers and trailing dose annotations, then case-folds.
    Returns "" for empty or whitespace-only input.
    """
    if not raw:
        return ""

    name = _WHITESPACE.sub(" ", str(raw)).strip()
    name = _MARKDOWN_NOISE.sub("", name).strip()
    name = _APOSTROPHE.sub("", name)
    name = _BULLET_PREFIX.sub("", name)
    name = _PARENTHETICAL.sub("", name)
    name = _PE_QUALIFIER.sub("", name)
    name = _TRAILING_DOSE.sub("", name)
    name = _TRAILING_PUNCT.sub("", name)
    name = _WHITESPACE.sub(" ", name).strip()

    return name.casefold()


def is_ingredient_approved(name: str, approved: Iterable[str]) -> bool:
    """
    Check a name against a set of approved canonical names.

    Exact match first, then a normalized (case-insensitive) fallback.
    """
    approved = approved if isinstance(approved, (set, frozenset)) else set(approved)
    if name in approved:
        return True

    key = normalize_ingredient_name(name)
    if not key:
        return False
    return any(normalize_ingredient_name(a) == key for a in approved)
