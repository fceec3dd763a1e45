"""Formula Safety Shared Utilities"""

from .disclaimer import (
    DSHEA_DISCLAIMER_SINGULAR,
    DSHEA_DISCLAIMER_PLURAL,
    choose_disclaimer_prefix,
    has_dshea_disclaimer,
    ensure_dshea_disclaimer,
)

__all__ = [
    "DSHEA_DISCLAIMER_SINGULAR",
    "DSHEA_DISCLAIMER_PLURAL",
    "choose_disclaimer_prefix",
    "has_dshea_disclaimer",
    "ensure_dshea_disclaimer",
]
