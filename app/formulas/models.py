"""
Formula Models

Pydantic models for AI-proposed formulas, structured rule violations,
and the results of correction, validation and extraction.

Violations are structured records (kind + ingredient + numeric context).
Human-readable text is produced by render_violation(), so callers and tests
can look at fields instead of matching substrings.

Version: formula_safety_v1
"""

import hashlib
import json
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field


# =============================================================================
# FORMULA CANDIDATE (wire shape from the AI consultation)
# =============================================================================

class FormulaIngredient(BaseModel):
    """One line of a proposed formula."""
    ingredient: str = Field(description="Ingredient name as written by the AI")
    amount: float = Field(description="Daily amount in mg", allow_inf_nan=False)
    unit: str = Field(default="mg")
    purpose: Optional[str] = Field(default=None)

    class Config:
        extra = "ignore"


class FormulaCandidate(BaseModel):
    """
    A proposed formula parsed from the AI's fenced JSON block.

    total_mg is untrusted. It is always replaced by the calculated total
    before a formula is accepted.
    """
    bases: List[FormulaIngredient] = Field(description="System supports")
    additions: List[FormulaIngredient] = Field(description="Individual ingredients")
    total_mg: Optional[float] = Field(default=None, alias="totalMg", allow_inf_nan=False)
    target_capsules: Optional[int] = Field(default=None, alias="targetCapsules")
    warnings: List[str]
    rationale: str
    disclaimers: List[str]

    class Config:
        extra = "ignore"
        populate_by_name = True

    @property
    def ingredients(self) -> List[FormulaIngredient]:
        """Bases followed by additions."""
        return list(self.bases) + list(self.additions)

    @property
    def ingredient_count(self) -> int:
        return len(self.bases) + len(self.additions)

    def compute_hash(self) -> str:
        """
        Deterministic hash of the formula's dosing content.

        Rationale, purposes and free-text warnings are excluded, so two
        formulas with the same ingredients and amounts hash the same.
        """
        hash_input = {
            "bases": sorted([b.ingredient, b.amount] for b in self.bases),
            "additions": sorted([a.ingredient, a.amount] for a in self.additions),
            "target_capsules": self.target_capsules,
        }
        hash_str = json.dumps(hash_input, sort_keys=True)
        return f"sha256:{hashlib.sha256(hash_str.encode()).hexdigest()[:16]}"


# =============================================================================
# VIOLATIONS
# =============================================================================

class ViolationKind(str, Enum):
    """Rule that a formula broke."""
    SCHEMA_ERROR = "SCHEMA_ERROR"
    UNAPPROVED_INGREDIENT = "UNAPPROVED_INGREDIENT"
    DOSE_BELOW_MINIMUM = "DOSE_BELOW_MINIMUM"
    DOSE_OUT_OF_RANGE = "DOSE_OUT_OF_RANGE"
    DOSE_NOT_ALLOWED_MULTIPLE = "DOSE_NOT_ALLOWED_MULTIPLE"
    INGREDIENT_COUNT_OUT_OF_BOUNDS = "INGREDIENT_COUNT_OUT_OF_BOUNDS"
    TOTAL_BUDGET_EXCEEDED = "TOTAL_BUDGET_EXCEEDED"
    INVALID_CAPSULE_COUNT = "INVALID_CAPSULE_COUNT"
    MISSING_SYSTEM_SUPPORT = "MISSING_SYSTEM_SUPPORT"


class FormulaViolation(BaseModel):
    """A single rule violation with its numeric context."""
    kind: ViolationKind
    ingredient: Optional[str] = None
    attempted: Optional[float] = Field(
        default=None,
        description="Value the formula tried to use (mg, count or capsules)"
    )
    limit: Optional[float] = Field(
        default=None,
        description="The bound that was crossed (nominal budget for TOTAL_BUDGET_EXCEEDED)"
    )
    bound: Optional[Literal["min", "max"]] = None
    range_min: Optional[float] = None
    range_max: Optional[float] = None
    allowed_values: List[float] = Field(default_factory=list)
    ceiling: Optional[float] = Field(
        default=None,
        description="Tolerance-adjusted maximum total"
    )
    target_capsules: Optional[int] = None
    tolerance_percent: Optional[float] = None
    detail: Optional[str] = None

    class Config:
        extra = "forbid"

    @property
    def message(self) -> str:
        return render_violation(self)


def format_amount(value: Optional[float]) -> str:
    """840.0 -> "840", 12.5 -> "12.5"."""
    if value is None:
        return "?"
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")


MULTIPLE_HINT = "Use 1x for mild support, 2x for moderate issues, 3x for therapeutic intervention."


def render_violation(v: FormulaViolation) -> str:
    """Human-readable message for a violation. Pure function of its fields."""
    f = format_amount

    if v.kind == ViolationKind.SCHEMA_ERROR:
        return f"Formula block could not be parsed: {v.detail}"

    if v.kind == ViolationKind.UNAPPROVED_INGREDIENT:
        return f'Unapproved ingredient: "{v.ingredient}" is not in the approved catalog'

    if v.kind == ViolationKind.DOSE_BELOW_MINIMUM:
        return (
            f'Ingredient "{v.ingredient}" below minimum dose of {f(v.limit)}mg '
            f"(attempted: {f(v.attempted)}mg)"
        )

    if v.kind == ViolationKind.DOSE_OUT_OF_RANGE:
        if v.bound == "min":
            head = f'"{v.ingredient}" below allowed minimum of {f(v.range_min)}mg'
        else:
            head = f'"{v.ingredient}" exceeds allowed maximum of {f(v.range_max)}mg'
        return (
            f"{head} (attempted: {f(v.attempted)}mg). "
            f"Allowed range: {f(v.range_min)}-{f(v.range_max)}mg"
        )

    if v.kind == ViolationKind.DOSE_NOT_ALLOWED_MULTIPLE:
        one, two, three = (list(v.allowed_values) + [None, None, None])[:3]
        return (
            f'System support "{v.ingredient}" must be dosed at 1x ({f(one)}mg), '
            f"2x ({f(two)}mg), or 3x ({f(three)}mg). "
            f"Attempted: {f(v.attempted)}mg. {MULTIPLE_HINT}"
        )

    if v.kind == ViolationKind.INGREDIENT_COUNT_OUT_OF_BOUNDS:
        if v.bound == "max":
            return (
                f"Formula exceeds maximum ingredient count of {f(v.limit)} "
                f"(attempted: {f(v.attempted)})"
            )
        return (
            f"Formula must contain at least {f(v.limit)} ingredients "
            f"for comprehensive support (has: {f(v.attempted)})"
        )

    if v.kind == ViolationKind.TOTAL_BUDGET_EXCEEDED:
        return (
            f"Formula exceeds {v.target_capsules}-capsule budget of {f(v.limit)}mg "
            f"(max {f(v.ceiling)}mg with {f(v.tolerance_percent)}% tolerance). "
            f"Attempted: {f(v.attempted)}mg. Reduce ingredients or increase capsule count."
        )

    if v.kind == ViolationKind.INVALID_CAPSULE_COUNT:
        allowed = ", ".join(f(c) for c in v.allowed_values)
        return f"Invalid capsule count: {f(v.attempted)}. Must be one of: {allowed}"

    if v.kind == ViolationKind.MISSING_SYSTEM_SUPPORT:
        return "Formula must include at least one system support"

    return v.detail or v.kind.value


# =============================================================================
# RESULTS
# =============================================================================

class SchemaError(BaseModel):
    """The fenced block was not valid JSON or did not match the formula schema."""
    reason: str
    details: List[str] = Field(default_factory=list)

    def to_violation(self) -> FormulaViolation:
        detail = self.reason
        if self.details:
            detail = f"{self.reason}: {'; '.join(self.details)}"
        return FormulaViolation(kind=ViolationKind.SCHEMA_ERROR, detail=detail)


class CorrectionResult(BaseModel):
    """Output of the name corrector."""
    corrected_formula: FormulaCandidate
    warnings: List[str] = Field(default_factory=list)
    removed: List[str] = Field(
        default_factory=list,
        description="Original names of entries dropped as unapproved"
    )
    renamed: List[Tuple[str, str]] = Field(
        default_factory=list,
        description="(original, canonical) pairs"
    )


class TotalCalculation(BaseModel):
    """Authoritative total computed from the corrected formula."""
    total_mg: float
    violations: List[FormulaViolation] = Field(default_factory=list)


class ValidationResult(BaseModel):
    """Output of the dosage validator. Rejection is carried in violations."""
    valid: bool
    violations: List[FormulaViolation] = Field(default_factory=list)
    calculated_total_mg: float = 0

    @property
    def errors(self) -> List[str]:
        return [v.message for v in self.violations]

    def kinds(self) -> List[ViolationKind]:
        return [v.kind for v in self.violations]


class ExtractionState(str, Enum):
    """Pipeline state. Every run starts at NO_FORMULA_DETECTED."""
    NO_FORMULA_DETECTED = "NO_FORMULA_DETECTED"
    PARSED = "PARSED"
    CORRECTED = "CORRECTED"
    CALCULATED = "CALCULATED"
    ACCEPTED = "ACCEPTED"
    REJECTED_WITH_ERRORS = "REJECTED_WITH_ERRORS"


class ExtractionResult(BaseModel):
    """
    Outcome of one extraction pass over an AI response.

    ACCEPTED carries the corrected formula. REJECTED_WITH_ERRORS carries
    violations and no formula. NO_FORMULA_DETECTED carries neither.
    """
    state: ExtractionState = ExtractionState.NO_FORMULA_DETECTED
    formula: Optional[FormulaCandidate] = None
    correction_warnings: List[str] = Field(default_factory=list)
    safety_warnings: List[str] = Field(
        default_factory=list,
        description="Interaction warnings for an accepted formula (advisory)"
    )
    violations: List[FormulaViolation] = Field(default_factory=list)
    schema_error: Optional[SchemaError] = None
    calculated_total_mg: Optional[float] = None
    formula_hash: Optional[str] = None
    health_data: Optional[Dict[str, Any]] = None
    version: str = "formula_safety_v1"

    @property
    def accepted(self) -> bool:
        return self.state == ExtractionState.ACCEPTED

    @property
    def errors(self) -> List[str]:
        return [v.message for v in self.violations]
