"""
Formula Extraction Pipeline

Turns a raw AI consultation response into an accepted formula or a list of
violations.

States:
    NO_FORMULA_DETECTED -> PARSED -> CORRECTED -> CALCULATED
        -> ACCEPTED | REJECTED_WITH_ERRORS

Pipeline:
1. Find the first ```json fenced block (none = no formula this turn)
2. Parse JSON and check the formula schema
3. Apply a capsule count the customer picked in their own message
4. Correct ingredient names against the catalog
5. Recompute the total dose
6. Validate dosing rules
7. Accept (corrected formula, recomputed total, interaction warnings)
   or reject (all violations)

The pipeline is deterministic and side-effect free over its inputs. It
never raises; every failure ends in REJECTED_WITH_ERRORS.

Version: formula_safety_v1
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from app.catalog import IngredientCatalog, get_default_catalog
from app.shared.disclaimer import ensure_dshea_disclaimer

from .config import FormulaPolicy, get_formula_policy
from .corrector import correct_formula
from .interactions import check_formula_interactions
from .models import (
    ExtractionResult,
    ExtractionState,
    FormulaCandidate,
    FormulaViolation,
    SchemaError,
    ViolationKind,
)
from .validator import calculate_formula_total, resolve_capsule_count, validate_formula

logger = logging.getLogger(__name__)

FORMULA_BLOCK_TAG = "json"
HEALTH_DATA_BLOCK_TAG = "health-data"


# =============================================================================
# FENCED BLOCKS
# =============================================================================

def _fence_pattern(tag: str) -> "re.Pattern":
    return re.compile(
        r"```" + re.escape(tag) + r"(?![\w-])\s*([\s\S]*?)\s*```",
        re.IGNORECASE,
    )


def _opening_fence_pattern(tag: str) -> "re.Pattern":
    return re.compile(r"```" + re.escape(tag) + r"(?![\w-])", re.IGNORECASE)


def find_fenced_block(text: Optional[str], tag: str = FORMULA_BLOCK_TAG) -> Optional[str]:
    """
    Return the contents of the first ```<tag> fenced block, or None.

    Args:
        text: Raw AI response
        tag: Fence language tag (case-insensitive)
    """
    if not text:
        return None
    match = _fence_pattern(tag).search(text)
    if match is None:
        return None
    return match.group(1).strip()


def has_unterminated_block(text: Optional[str], tag: str = FORMULA_BLOCK_TAG) -> bool:
    """True if a ```<tag> fence is opened but never closed (truncated response)."""
    if not text:
        return False
    return (
        _opening_fence_pattern(tag).search(text) is not None
        and _fence_pattern(tag).search(text) is None
    )


# =============================================================================
# PARSING
# =============================================================================

def _format_validation_error(error: Dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ())) or "<root>"
    return f"{location}: {error.get('msg', 'invalid value')}"


def parse_formula_block(raw: str) -> Union[FormulaCandidate, SchemaError]:
    """
    Parse a fenced block into a FormulaCandidate.

    Returns a SchemaError instead of raising when the block is not JSON or
    does not match the formula schema.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        return SchemaError(
            reason="Invalid JSON in formula block",
            details=[f"{e.msg} (line {e.lineno}, column {e.colno})"],
        )
    except (ValueError, RecursionError) as e:
        # Oversized integer literals and pathological nesting
        return SchemaError(
            reason="Invalid JSON in formula block",
            details=[f"{type(e).__name__}: {e}"],
        )

    if not isinstance(data, dict):
        return SchemaError(
            reason="Formula block must be a JSON object",
            details=[f"got {type(data).__name__}"],
        )

    try:
        return FormulaCandidate.model_validate(data)
    except ValidationError as e:
        return SchemaError(
            reason="Formula block does not match the formula schema",
            details=[_format_validation_error(err) for err in e.errors()],
        )


def extract_health_data(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Parse the optional ```health-data block of an AI response.

    Malformed content is logged and ignored.
    """
    block = find_fenced_block(text, HEALTH_DATA_BLOCK_TAG)
    if block is None:
        return None
    try:
        data = json.loads(block)
    except (ValueError, RecursionError) as e:
        logger.warning("Ignoring malformed health-data block: %s", type(e).__name__)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring health-data block that is not a JSON object")
        return None
    return data


# =============================================================================
# CAPSULE SELECTION FROM THE USER MESSAGE
# =============================================================================

# Phrases customers use when picking a capsule count in chat
CAPSULE_SELECTION_PATTERNS = [
    re.compile(p, re.IGNORECASE) for p in (
        r"I['’]ll take (\d+) capsules",
        r"I['’]ve selected (\d+)",
        r"(\d+) capsules per day",
        r"(\d+) capsules/day",
        r"(\d+) capsules please",
        r"selected (\d+) capsules",
        r"choose (\d+) capsules",
        r"want (\d+) capsules",
        r"(\d+) caps per day",
        r"go with (\d+)",
    )
]


def capsule_count_from_message(
    message: Optional[str],
    policy: Optional[FormulaPolicy] = None
) -> Optional[int]:
    """
    Capsule count the customer asked for in their own chat message.

    Patterns are tried in order; the first match whose number is a valid
    capsule count wins. Returns None when nothing valid is found.
    """
    if not message:
        return None
    policy = policy or FormulaPolicy()
    for pattern in CAPSULE_SELECTION_PATTERNS:
        match = pattern.search(message)
        # Capsule counts are small; skip digit runs int() may refuse
        if match and len(match.group(1)) <= 4 and int(match.group(1)) in policy.valid_capsule_counts:
            return int(match.group(1))
    return None


# =============================================================================
# PIPELINE
# =============================================================================

class FormulaExtractionPipeline:
    """
    Drives parse -> correct -> calculate -> validate for one AI response.

    Holds only the immutable catalog and policy, so one instance can be
    shared across concurrent calls.
    """

    def __init__(
        self,
        catalog: Optional[IngredientCatalog] = None,
        policy: Optional[FormulaPolicy] = None,
    ):
        self.catalog = catalog or get_default_catalog()
        self.policy = policy or get_formula_policy()

    def run(
        self,
        text: Optional[str],
        user_message: Optional[str] = None,
        medications: Optional[List[str]] = None,
    ) -> ExtractionResult:
        """
        Process a raw AI response.

        Args:
            text: Full AI response
            user_message: The customer's chat message that prompted it; an
                explicit capsule choice there overrides the AI's targetCapsules
            medications: Customer's current medications for interaction warnings
        """
        result = ExtractionResult(health_data=extract_health_data(text))

        block = find_fenced_block(text, FORMULA_BLOCK_TAG)
        if block is None:
            if has_unterminated_block(text, FORMULA_BLOCK_TAG):
                return self._reject_schema(result, SchemaError(
                    reason="Formula block is not terminated",
                    details=["missing closing ``` fence"],
                ))
            logger.debug("No formula block in AI response")
            return result

        parsed = parse_formula_block(block)
        if isinstance(parsed, SchemaError):
            return self._reject_schema(result, parsed)

        selected = capsule_count_from_message(user_message, self.policy)
        if selected is not None and selected != parsed.target_capsules:
            logger.debug(
                "Customer selected %d capsules (AI proposed %s)", selected, parsed.target_capsules
            )
            parsed = parsed.model_copy(update={"target_capsules": selected})

        return self.process_candidate(parsed, result, medications=medications)

    def process_candidate(
        self,
        candidate: FormulaCandidate,
        result: Optional[ExtractionResult] = None,
        medications: Optional[List[str]] = None,
    ) -> ExtractionResult:
        """Correct, calculate and validate an already-parsed formula."""
        result = result or ExtractionResult()
        result.state = ExtractionState.PARSED

        try:
            correction = correct_formula(candidate, self.catalog)
            corrected = correction.corrected_formula
            result.state = ExtractionState.CORRECTED
            result.correction_warnings = list(correction.warnings)

            calculation = calculate_formula_total(corrected, self.catalog)
            result.state = ExtractionState.CALCULATED
            result.calculated_total_mg = calculation.total_mg

            validation = validate_formula(
                corrected, self.catalog, self.policy, calculation=calculation
            )
        except Exception:
            logger.exception("Formula validation failed unexpectedly")
            return self._reject(result, [FormulaViolation(
                kind=ViolationKind.SCHEMA_ERROR,
                detail="internal error while validating formula",
            )])

        if not validation.valid:
            return self._reject(result, validation.violations)

        claim_count = sum(1 for item in corrected.ingredients if item.purpose)
        accepted = corrected.model_copy(update={
            "total_mg": calculation.total_mg,
            "target_capsules": resolve_capsule_count(corrected.target_capsules, self.policy),
            "disclaimers": ensure_dshea_disclaimer(corrected.disclaimers, claim_count),
        })

        result.state = ExtractionState.ACCEPTED
        result.formula = accepted
        result.formula_hash = accepted.compute_hash()
        result.safety_warnings = check_formula_interactions(accepted, medications)

        logger.info(
            "Formula accepted: %d ingredients, %smg, %d capsules, %d corrections, %d safety warnings",
            accepted.ingredient_count,
            calculation.total_mg,
            accepted.target_capsules,
            len(result.correction_warnings),
            len(result.safety_warnings),
        )
        return result

    def _reject_schema(self, result: ExtractionResult, error: SchemaError) -> ExtractionResult:
        result.schema_error = error
        return self._reject(result, [error.to_violation()])

    def _reject(self, result: ExtractionResult, violations) -> ExtractionResult:
        result.state = ExtractionState.REJECTED_WITH_ERRORS
        result.formula = None
        result.formula_hash = None
        result.safety_warnings = []
        result.violations = list(violations)
        logger.warning(
            "Formula rejected with %d violation(s): %s",
            len(result.violations),
            ", ".join(sorted({v.kind.value for v in result.violations})),
        )
        return result


def extract_formula(
    text: Optional[str],
    catalog: Optional[IngredientCatalog] = None,
    policy: Optional[FormulaPolicy] = None,
    user_message: Optional[str] = None,
    medications: Optional[List[str]] = None,
) -> ExtractionResult:
    """Run the extraction pipeline over one AI response."""
    return FormulaExtractionPipeline(catalog=catalog, policy=policy).run(
        text, user_message=user_message, medications=medications
    )
