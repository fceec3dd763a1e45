"""
Catalog Loader

Reads the approved ingredient catalog from its JSON reference file and
builds an immutable IngredientCatalog.

The default catalog is loaded once per process and cached. Override the
file location with FORMULA_CATALOG_PATH.

Version: formula_catalog_v1
"""

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import CatalogIngredient, IngredientCatalog, IngredientCategory

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "data" / "ingredients.v1.json"


def _build_entries(
    rows: List[Dict[str, Any]],
    category: IngredientCategory
) -> tuple:
    entries = []
    for row in rows:
        if not row.get("name") or row.get("dose_mg") is None:
            raise ValueError(f"Catalog entry missing name or dose_mg: {row}")
        entries.append(CatalogIngredient(
            name=row["name"],
            category=category,
            dose_mg=row["dose_mg"],
            dose_range_min=row.get("dose_range_min"),
            dose_range_max=row.get("dose_range_max"),
            unit=row.get("unit", "mg"),
        ))
    return tuple(entries)


def catalog_from_dict(raw: Dict[str, Any]) -> IngredientCatalog:
    """Build a catalog from the parsed JSON structure."""
    return IngredientCatalog(
        system_supports=_build_entries(
            raw.get("system_supports", []), IngredientCategory.SYSTEM_SUPPORT
        ),
        individual_ingredients=_build_entries(
            raw.get("individual_ingredients", []), IngredientCategory.INDIVIDUAL
        ),
        catalog_version=raw.get("catalog_version", "formula_catalog_v1"),
    )


def load_catalog(path: Optional[str] = None) -> IngredientCatalog:
    """
    Load a catalog JSON file.

    Args:
        path: Path to the catalog file (defaults to the bundled ingredients.v1.json)

    Raises:
        FileNotFoundError: catalog file does not exist
        ValueError: catalog file is malformed
    """
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH
    if not catalog_path.exists():
        raise FileNotFoundError(f"Catalog not found: {catalog_path}")

    with open(catalog_path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    catalog = catalog_from_dict(raw)
    logger.info(
        "Loaded ingredient catalog %s: %d system supports, %d individual ingredients",
        catalog.catalog_version,
        len(catalog.system_supports),
        len(catalog.individual_ingredients),
    )
    return catalog


@lru_cache(maxsize=1)
def get_default_catalog() -> IngredientCatalog:
    """Process-wide catalog, loaded on first use."""
    return load_catalog(os.environ.get("FORMULA_CATALOG_PATH"))
