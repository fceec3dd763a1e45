"""
DSHEA Disclaimer Utilities
Makes sure every accepted formula carries the FDA disclaimer.

RULES (LOCKED):
1. Singular: "This statement has not been evaluated..."  -> claim_count == 1
2. Plural: "These statements have not been evaluated..." -> claim_count > 1

NOTE: the AI consultation writes its own disclaimers. This module only adds
the DSHEA text when none of them already carries it.
"""

from typing import List

# Standard DSHEA disclaimer templates
DSHEA_DISCLAIMER_SINGULAR = (
    "This statement has not been evaluated by the Food and Drug Administration. "
    "This product is not intended to diagnose, treat, cure, or prevent any disease."
)

DSHEA_DISCLAIMER_PLURAL = (
    "These statements have not been evaluated by the Food and Drug Administration. "
    "This product is not intended to diagnose, treat, cure, or prevent any disease."
)

_FDA_MARKER = "food and drug administration"


def choose_disclaimer_prefix(claim_count: int) -> str:
    """
    Return the appropriate DSHEA disclaimer text based on claim count.

    Rules:
        - claim_count == 1  -> "This statement..."
        - claim_count > 1   -> "These statements..."
        - claim_count <= 0  -> plural
    """
    if claim_count == 1:
        return DSHEA_DISCLAIMER_SINGULAR
    return DSHEA_DISCLAIMER_PLURAL


def has_dshea_disclaimer(disclaimers: List[str]) -> bool:
    """True if any disclaimer already references the FDA."""
    return any(_FDA_MARKER in (d or "").lower() for d in disclaimers)


def ensure_dshea_disclaimer(disclaimers: List[str], claim_count: int = 2) -> List[str]:
    """
    Return a copy of disclaimers with the DSHEA text appended if missing.

    Args:
        disclaimers: Disclaimers written by the AI consultation
        claim_count: Number of health claims (ingredient purposes) in the formula

    Returns:
        New list; the input is left untouched.
    """
    result = [d for d in disclaimers if d and d.strip()]
    if not has_dshea_disclaimer(result):
        result.append(choose_disclaimer_prefix(claim_count))
    return result
