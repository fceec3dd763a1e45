"""
Formula Name Corrector

Resolves AI-written ingredient names against the approved catalog:
- Bases are matched against system supports
- Additions are matched against individual ingredients

Unmatched entries are removed. Near-matches (case, whitespace, formatting
noise) are rewritten to the catalog's canonical name. Every change is
reported as a warning, never as an error.

The input formula is never mutated.
"""

import logging
from typing import List, Tuple

from app.catalog import IngredientCatalog, IngredientCategory

from .models import CorrectionResult, FormulaCandidate, FormulaIngredient

logger = logging.getLogger(__name__)


def _correct_section(
    entries: List[FormulaIngredient],
    catalog: IngredientCatalog,
    category: IngredientCategory,
    removal_label: str,
    warnings: List[str],
    removed: List[str],
    renamed: List[Tuple[str, str]],
) -> List[FormulaIngredient]:
    corrected: List[FormulaIngredient] = []

    for entry in entries:
        original = entry.ingredient
        match = catalog.find(original, category=category)

        if match is None:
            warnings.append(f'Removed {removal_label}: "{original}"')
            removed.append(original)
            continue

        if original != match.name:
            warnings.append(f'AUTO-CORRECTED: "{original}" → "{match.name}"')
            renamed.append((original, match.name))
            entry = entry.model_copy(update={"ingredient": match.name})
        else:
            entry = entry.model_copy()

        corrected.append(entry)

    return corrected


def correct_formula(
    formula: FormulaCandidate,
    catalog: IngredientCatalog
) -> CorrectionResult:
    """
    Correct ingredient names against the catalog.

    Args:
        formula: Parsed (untrusted) formula candidate
        catalog: Approved ingredient catalog

    Returns:
        CorrectionResult with an independent corrected copy and warnings
    """
    warnings: List[str] = []
    removed: List[str] = []
    renamed: List[Tuple[str, str]] = []

    bases = _correct_section(
        formula.bases, catalog, IngredientCategory.SYSTEM_SUPPORT,
        "unapproved system support", warnings, removed, renamed,
    )
    additions = _correct_section(
        formula.additions, catalog, IngredientCategory.INDIVIDUAL,
        "unapproved ingredient", warnings, removed, renamed,
    )

    corrected = formula.model_copy(
        update={
            "bases": bases,
            "additions": additions,
            "warnings": list(formula.warnings),
            "disclaimers": list(formula.disclaimers),
        },
    )

    if warnings:
        logger.debug(
            "Formula correction: %d renamed, %d removed", len(renamed), len(removed)
        )

    return CorrectionResult(
        corrected_formula=corrected,
        warnings=warnings,
        removed=removed,
        renamed=renamed,
    )
