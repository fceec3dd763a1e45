"""
Formula Policy Configuration

Numeric limits enforced by the dosage validator. Defaults match the
production policy; each value can be overridden by environment variable.

    FORMULA_CAPSULE_CAPACITY_MG       550
    FORMULA_VALID_CAPSULE_COUNTS      6,9,12
    FORMULA_DEFAULT_CAPSULE_COUNT     9
    FORMULA_BUDGET_TOLERANCE_PERCENT  5
    FORMULA_MIN_INGREDIENT_DOSE_MG    10
    FORMULA_MIN_INGREDIENT_COUNT      8
    FORMULA_MAX_INGREDIENT_COUNT      50
"""

import os
from typing import Mapping, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator


# Single authoritative capsule capacity. Anything else quoting a per-capsule
# figure must read it from FormulaPolicy.
CAPSULE_CAPACITY_MG = 550

VALID_CAPSULE_COUNTS: Tuple[int, ...] = (6, 9, 12)
DEFAULT_CAPSULE_COUNT = 9
BUDGET_TOLERANCE_PERCENT = 5.0
MIN_INGREDIENT_DOSE_MG = 10
MIN_INGREDIENT_COUNT = 8
MAX_INGREDIENT_COUNT = 50


class FormulaPolicy(BaseModel):
    """Immutable set of formula limits."""

    capsule_capacity_mg: int = Field(default=CAPSULE_CAPACITY_MG, gt=0)
    valid_capsule_counts: Tuple[int, ...] = Field(default=VALID_CAPSULE_COUNTS)
    default_capsule_count: int = Field(default=DEFAULT_CAPSULE_COUNT)
    budget_tolerance_percent: float = Field(default=BUDGET_TOLERANCE_PERCENT, ge=0)
    min_ingredient_dose_mg: float = Field(default=MIN_INGREDIENT_DOSE_MG, ge=0)
    min_ingredient_count: int = Field(default=MIN_INGREDIENT_COUNT, ge=0)
    max_ingredient_count: int = Field(default=MAX_INGREDIENT_COUNT, gt=0)

    class Config:
        frozen = True
        extra = "forbid"

    @field_validator("valid_capsule_counts", mode="before")
    @classmethod
    def parse_capsule_counts(cls, v):
        """Accept "6,9,12" as well as a sequence."""
        if isinstance(v, str):
            return tuple(int(c.strip()) for c in v.split(",") if c.strip())
        return tuple(v)

    @model_validator(mode="after")
    def check_consistency(self):
        if not self.valid_capsule_counts:
            raise ValueError("valid_capsule_counts must not be empty")
        if self.default_capsule_count not in self.valid_capsule_counts:
            raise ValueError(
                f"default_capsule_count {self.default_capsule_count} is not one of "
                f"{list(self.valid_capsule_counts)}"
            )
        if self.min_ingredient_count > self.max_ingredient_count:
            raise ValueError("min_ingredient_count exceeds max_ingredient_count")
        return self

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "FormulaPolicy":
        """Build a policy from FORMULA_* environment variables."""
        env = os.environ if environ is None else environ
        overrides = {}
        for field_name, env_name in _ENV_VARS.items():
            value = env.get(env_name)
            if value not in (None, ""):
                overrides[field_name] = value
        return cls(**overrides)


_ENV_VARS = {
    "capsule_capacity_mg": "FORMULA_CAPSULE_CAPACITY_MG",
    "valid_capsule_counts": "FORMULA_VALID_CAPSULE_COUNTS",
    "default_capsule_count": "FORMULA_DEFAULT_CAPSULE_COUNT",
    "budget_tolerance_percent": "FORMULA_BUDGET_TOLERANCE_PERCENT",
    "min_ingredient_dose_mg": "FORMULA_MIN_INGREDIENT_DOSE_MG",
    "min_ingredient_count": "FORMULA_MIN_INGREDIENT_COUNT",
    "max_ingredient_count": "FORMULA_MAX_INGREDIENT_COUNT",
}


def get_formula_policy() -> FormulaPolicy:
    """Policy for the current process environment."""
    return FormulaPolicy.from_env()
