"""
Formula Dosage Validator

Numeric safety rules for a corrected formula:
1. targetCapsules must be one of the valid capsule counts
2. Calculated total must fit the capsule budget (+ tolerance)
3. Every ingredient must meet the global minimum dose
4. Individual ingredients must stay within their catalog range
5. Ingredient count must stay within policy bounds
6. Every ingredient must be in the approved catalog
7. System supports must be dosed at exactly 1x, 2x or 3x

All violations are collected in one pass so a single regeneration request
can cover every fix. Nothing here raises on a bad formula.

The total is always recomputed from the ingredient list. A totalMg supplied
by the AI is ignored.
"""

import math
from typing import List, Optional

from app.catalog import IngredientCatalog, IngredientCategory, is_ingredient_approved

from .config import FormulaPolicy
from .models import (
    FormulaCandidate,
    FormulaViolation,
    TotalCalculation,
    ValidationResult,
    ViolationKind,
)


# =============================================================================
# CAPSULE BUDGET
# =============================================================================

def resolve_capsule_count(
    target_capsules: Optional[int],
    policy: FormulaPolicy
) -> int:
    """Return target_capsules if valid, else the policy default."""
    if target_capsules in policy.valid_capsule_counts:
        return target_capsules
    return policy.default_capsule_count


def capsule_budget(
    target_capsules: Optional[int],
    policy: Optional[FormulaPolicy] = None
) -> int:
    """
    Maximum total mg for a capsule count.

    Invalid or missing counts fall back to the policy default.
    """
    policy = policy or FormulaPolicy()
    return resolve_capsule_count(target_capsules, policy) * policy.capsule_capacity_mg


def budget_ceiling(budget: float, policy: Optional[FormulaPolicy] = None) -> int:
    """
    Tolerance-adjusted maximum total, rounded down.

    Tolerance applies to this ceiling only, never to per-ingredient minimums.
    """
    policy = policy or FormulaPolicy()
    return math.floor(budget * (100 + policy.budget_tolerance_percent) / 100)


# =============================================================================
# TOTAL CALCULATOR
# =============================================================================

def calculate_formula_total(
    formula: FormulaCandidate,
    catalog: IngredientCatalog
) -> TotalCalculation:
    """
    Authoritative total dose of a corrected formula.

    Sums amount over approved bases and additions. formula.total_mg is
    never read.
    """
    violations: List[FormulaViolation] = []
    if not formula.bases:
        violations.append(FormulaViolation(kind=ViolationKind.MISSING_SYSTEM_SUPPORT))

    total = math.fsum(
        item.amount
        for item in formula.ingredients
        if is_ingredient_approved(item.ingredient, catalog.names)
    )

    return TotalCalculation(total_mg=total, violations=violations)


# =============================================================================
# VALIDATOR
# =============================================================================

def _is_allowed_multiple(amount: float, allowed: List[float]) -> bool:
    return any(math.isclose(amount, value, rel_tol=0, abs_tol=1e-9) for value in allowed)


def validate_formula(
    formula: FormulaCandidate,
    catalog: IngredientCatalog,
    policy: Optional[FormulaPolicy] = None,
    calculation: Optional[TotalCalculation] = None,
) -> ValidationResult:
    """
    Validate a corrected formula against the dosing policy.

    Args:
        formula: Formula after name correction
        catalog: Approved ingredient catalog
        policy: Formula limits (defaults to the built-in policy)
        calculation: Precomputed total; calculated here if omitted

    Returns:
        ValidationResult with every violation found
    """
    policy = policy or FormulaPolicy()
    calculation = calculation or calculate_formula_total(formula, catalog)
    violations: List[FormulaViolation] = list(calculation.violations)
    ingredients = formula.ingredients

    # 1. Capsule count
    if (
        formula.target_capsules is not None
        and formula.target_capsules not in policy.valid_capsule_counts
    ):
        violations.append(FormulaViolation(
            kind=ViolationKind.INVALID_CAPSULE_COUNT,
            attempted=formula.target_capsules,
            allowed_values=list(policy.valid_capsule_counts),
        ))

    # 2. Total vs capsule budget
    capsules = resolve_capsule_count(formula.target_capsules, policy)
    budget = capsule_budget(capsules, policy)
    ceiling = budget_ceiling(budget, policy)
    if calculation.total_mg > ceiling:
        violations.append(FormulaViolation(
            kind=ViolationKind.TOTAL_BUDGET_EXCEEDED,
            attempted=calculation.total_mg,
            limit=budget,
            ceiling=ceiling,
            target_capsules=capsules,
            tolerance_percent=policy.budget_tolerance_percent,
        ))

    # 3. Global minimum dose
    for item in ingredients:
        if item.amount < policy.min_ingredient_dose_mg:
            violations.append(FormulaViolation(
                kind=ViolationKind.DOSE_BELOW_MINIMUM,
                ingredient=item.ingredient,
                attempted=item.amount,
                limit=policy.min_ingredient_dose_mg,
            ))

    # 4. Individual ingredient ranges
    for item in ingredients:
        entry = catalog.get(item.ingredient)
        if entry is None or entry.category != IngredientCategory.INDIVIDUAL:
            continue
        if not entry.has_dose_range:
            continue
        if item.amount < entry.dose_range_min:
            bound = "min"
        elif item.amount > entry.dose_range_max:
            bound = "max"
        else:
            continue
        violations.append(FormulaViolation(
            kind=ViolationKind.DOSE_OUT_OF_RANGE,
            ingredient=item.ingredient,
            attempted=item.amount,
            bound=bound,
            range_min=entry.dose_range_min,
            range_max=entry.dose_range_max,
        ))

    # 5. Ingredient count
    count = len(ingredients)
    if count > policy.max_ingredient_count:
        violations.append(FormulaViolation(
            kind=ViolationKind.INGREDIENT_COUNT_OUT_OF_BOUNDS,
            attempted=count,
            limit=policy.max_ingredient_count,
            bound="max",
        ))
    elif count < policy.min_ingredient_count:
        violations.append(FormulaViolation(
            kind=ViolationKind.INGREDIENT_COUNT_OUT_OF_BOUNDS,
            attempted=count,
            limit=policy.min_ingredient_count,
            bound="min",
        ))

    # 6. Approved catalog (post-correction double-check)
    for item in ingredients:
        if not is_ingredient_approved(item.ingredient, catalog.names):
            violations.append(FormulaViolation(
                kind=ViolationKind.UNAPPROVED_INGREDIENT,
                ingredient=item.ingredient,
            ))

    # 7. System support multiples
    for base in formula.bases:
        entry = catalog.get(base.ingredient)
        if entry is None or entry.category != IngredientCategory.SYSTEM_SUPPORT:
            continue
        allowed = entry.allowed_multiples()
        if not _is_allowed_multiple(base.amount, allowed):
            violations.append(FormulaViolation(
                kind=ViolationKind.DOSE_NOT_ALLOWED_MULTIPLE,
                ingredient=base.ingredient,
                attempted=base.amount,
                allowed_values=allowed,
            ))

    return ValidationResult(
        valid=len(violations) == 0,
        violations=violations,
        calculated_total_mg=calculation.total_mg,
    )
