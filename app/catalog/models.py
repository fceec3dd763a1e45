"""
Ingredient Catalog Models

Immutable reference data for the formula safety core.

The catalog holds two lists:
- System supports (bases): dosed at 1x / 2x / 3x of a fixed base dose
- Individual ingredients (additions): dosed within a [min, max] mg range

The catalog is loaded once per process and shared read-only between
validation calls. Nothing in this module mutates it.

Version: formula_catalog_v1
"""

from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Dict, List, Optional, Tuple

from .normalizer import normalize_ingredient_name


class IngredientCategory(str, Enum):
    """Catalog section an ingredient belongs to."""
    SYSTEM_SUPPORT = "system_support"
    INDIVIDUAL = "individual"


# Legal dose multiples for system supports
SYSTEM_SUPPORT_MULTIPLES: Tuple[int, ...] = (1, 2, 3)


@dataclass(frozen=True)
class CatalogIngredient:
    """A single approved ingredient with its dosing rule."""
    name: str
    category: IngredientCategory
    dose_mg: float
    dose_range_min: Optional[float] = None
    dose_range_max: Optional[float] = None
    unit: str = "mg"

    @property
    def has_dose_range(self) -> bool:
        return self.dose_range_min is not None and self.dose_range_max is not None

    def allowed_multiples(self) -> List[float]:
        """Legal mg amounts for a system support (1x, 2x, 3x)."""
        return [self.dose_mg * m for m in SYSTEM_SUPPORT_MULTIPLES]

    def to_dict(self) -> Dict:
        data = {
            "name": self.name,
            "category": self.category.value,
            "dose_mg": self.dose_mg,
            "unit": self.unit,
        }
        if self.has_dose_range:
            data["dose_range_min"] = self.dose_range_min
            data["dose_range_max"] = self.dose_range_max
        return data


@dataclass(frozen=True)
class IngredientCatalog:
    """
    The approved ingredient catalog.

    Passed explicitly to the corrector and validator so tests can run
    against small fake catalogs.
    """
    system_supports: Tuple[CatalogIngredient, ...] = ()
    individual_ingredients: Tuple[CatalogIngredient, ...] = ()
    catalog_version: str = "formula_catalog_v1"
    _index: Dict = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        names = [i.name for i in self.system_supports + self.individual_ingredients]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate catalog entries: {', '.join(duplicates)}")

        for category, entries in (
            (IngredientCategory.SYSTEM_SUPPORT, self.system_supports),
            (IngredientCategory.INDIVIDUAL, self.individual_ingredients),
        ):
            for ingredient in entries:
                if ingredient.category != category:
                    raise ValueError(
                        f"Catalog entry {ingredient.name!r} listed under {category.value} "
                        f"but has category {ingredient.category.value}"
                    )
                key = normalize_ingredient_name(ingredient.name)
                if key in self._index:
                    raise ValueError(
                        f"Catalog entries {self._index[key].name!r} and {ingredient.name!r} "
                        f"normalize to the same name"
                    )
                self._index[key] = ingredient

    @cached_property
    def by_name(self) -> Dict[str, CatalogIngredient]:
        """Exact canonical name -> ingredient."""
        return {i.name: i for i in self.all_ingredients}

    @property
    def all_ingredients(self) -> Tuple[CatalogIngredient, ...]:
        return self.system_supports + self.individual_ingredients

    @cached_property
    def names(self) -> frozenset:
        return frozenset(self.by_name)

    @cached_property
    def system_support_names(self) -> frozenset:
        return frozenset(i.name for i in self.system_supports)

    @cached_property
    def individual_names(self) -> frozenset:
        return frozenset(i.name for i in self.individual_ingredients)

    def get(self, name: str) -> Optional[CatalogIngredient]:
        """Exact canonical lookup."""
        return self.by_name.get(name)

    def find(
        self,
        name: str,
        category: Optional[IngredientCategory] = None
    ) -> Optional[CatalogIngredient]:
        """
        Resolve a free-text name to a catalog entry.

        Matching is on the normalized key, so case, whitespace and
        formatting noise are ignored.

        Args:
            name: Raw ingredient name (e.g. "  ashwagandha ")
            category: Restrict the match to one catalog section

        Returns:
            CatalogIngredient or None if not found
        """
        if not name:
            return None
        ingredient = self._index.get(normalize_ingredient_name(name))
        if ingredient is None:
            return None
        if category is not None and ingredient.category != category:
            return None
        return ingredient

    def is_valid_ingredient(self, name: str) -> bool:
        return self.find(name) is not None

    def get_ingredient_dose(self, name: str) -> Optional[float]:
        ingredient = self.find(name)
        return ingredient.dose_mg if ingredient else None

    def to_dict(self) -> Dict:
        return {
            "catalog_version": self.catalog_version,
            "system_supports": [i.to_dict() for i in self.system_supports],
            "individual_ingredients": [i.to_dict() for i in self.individual_ingredients],
        }
