"""
Formula Safety Layer

Untrusted AI text -> safety-checked, policy-compliant formula.

This module answers: "Is the formula the AI just proposed safe to hand to
the customer, and if not, what exactly is wrong with it?"

- Extracts the fenced JSON formula block from an AI response
- Corrects ingredient names against the approved catalog
- Recomputes the total dose (never trusts the AI's total)
- Validates dosing rules and collects every violation
- Attaches advisory interaction warnings to accepted formulas

PRINCIPLE: The AI proposes. The catalog and the policy decide.

Version: formula_safety_v1
"""

from .config import FormulaPolicy, get_formula_policy
from .models import (
    FormulaIngredient,
    FormulaCandidate,
    FormulaViolation,
    ViolationKind,
    ValidationResult,
    CorrectionResult,
    TotalCalculation,
    SchemaError,
    ExtractionState,
    ExtractionResult,
    render_violation,
)
from .corrector import correct_formula
from .interactions import check_formula_interactions
from .validator import (
    capsule_budget,
    budget_ceiling,
    resolve_capsule_count,
    calculate_formula_total,
    validate_formula,
)
from .extraction import (
    FormulaExtractionPipeline,
    capsule_count_from_message,
    extract_formula,
    extract_health_data,
    find_fenced_block,
    parse_formula_block,
)

__all__ = [
    "FormulaPolicy",
    "get_formula_policy",
    "FormulaIngredient",
    "FormulaCandidate",
    "FormulaViolation",
    "ViolationKind",
    "ValidationResult",
    "CorrectionResult",
    "TotalCalculation",
    "SchemaError",
    "ExtractionState",
    "ExtractionResult",
    "render_violation",
    "correct_formula",
    "check_formula_interactions",
    "capsule_budget",
    "budget_ceiling",
    "resolve_capsule_count",
    "calculate_formula_total",
    "validate_formula",
    "FormulaExtractionPipeline",
    "capsule_count_from_message",
    "extract_formula",
    "extract_health_data",
    "find_fenced_block",
    "parse_formula_block",
]

__version__ = "formula_safety_v1"
