"""
Ingredient Catalog

Read-only reference data for formula validation:
- System supports (bases), dosed at 1x / 2x / 3x of a base dose
- Individual ingredients (additions), dosed within a mg range

This module does NOT:
- Decide what to recommend
- Validate formulas

This module ONLY:
- Loads the approved catalog
- Resolves free-text names to canonical catalog entries

Version: formula_catalog_v1
"""

from .models import (
    CatalogIngredient,
    IngredientCatalog,
    IngredientCategory,
    SYSTEM_SUPPORT_MULTIPLES,
)
from .normalizer import normalize_ingredient_name, is_ingredient_approved
from .loader import load_catalog, catalog_from_dict, get_default_catalog

__version__ = "formula_catalog_v1"

__all__ = [
    "CatalogIngredient",
    "IngredientCatalog",
    "IngredientCategory",
    "SYSTEM_SUPPORT_MULTIPLES",
    "normalize_ingredient_name",
    "is_ingredient_approved",
    "load_catalog",
    "catalog_from_dict",
    "get_default_catalog",
    "__version__",
]
