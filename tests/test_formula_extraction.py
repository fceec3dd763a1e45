"""
Formula Extraction Pipeline Tests

Tests validate:
- No fenced block = NO_FORMULA_DETECTED (not an error)
- Malformed / truncated / wrong-shape blocks are rejected
- Auto-correction feeds into validation
- Calculated total replaces the AI total on acceptance
- Rejected results never carry a formula
- health-data block extraction
- DSHEA disclaimer and formula hash on accepted formulas
- Pathological JSON (huge integers, deep nesting) never raises
- Customer capsule selection overrides the AI count
- Interaction warnings on accepted formulas

Version: formula_safety_v1
"""

import copy
import json

import pytest

from app.catalog import get_default_catalog
from app.formulas import (
    ExtractionState,
    FormulaExtractionPipeline,
    FormulaPolicy,
    ViolationKind,
    capsule_count_from_message,
    extract_formula,
    extract_health_data,
    find_fenced_block,
    parse_formula_block,
)
from app.formulas.models import FormulaCandidate, SchemaError


# ============================================================================
# Test Fixtures
# ============================================================================

def make_formula_dict(**overrides) -> dict:
    """A valid 8-ingredient formula against the bundled catalog (2120mg)."""
    formula = {
        "bases": [
            {"ingredient": "Adrenal Support", "amount": 420, "unit": "mg", "purpose": "stress"},
            {"ingredient": "Heart Support", "amount": 450, "unit": "mg", "purpose": "circulation"},
        ],
        "additions": [
            {"ingredient": "Ashwagandha", "amount": 600, "unit": "mg", "purpose": "cortisol"},
            {"ingredient": "L-Theanine", "amount": 200, "unit": "mg", "purpose": "calm"},
            {"ingredient": "CoEnzyme Q10", "amount": 100, "unit": "mg", "purpose": "energy"},
            {"ingredient": "Quercetin", "amount": 50, "unit": "mg", "purpose": "inflammation"},
            {"ingredient": "GABA", "amount": 100, "unit": "mg", "purpose": "sleep"},
            {"ingredient": "Garlic", "amount": 200, "unit": "mg", "purpose": "cardiovascular"},
        ],
        "totalMg": 2120,
        "targetCapsules": 9,
        "warnings": [],
        "rationale": "Stress and cardiovascular support.",
        "disclaimers": ["Consult your physician before starting any supplement."],
    }
    formula.update(overrides)
    return formula


def make_response(formula, prose: str = "Here is your personalized formula.") -> str:
    body = formula if isinstance(formula, str) else json.dumps(formula, indent=2)
    return f"{prose}\n\n```json\n{body}\n```\n\nLet me know if you have questions."


def make_pipeline(**policy_overrides) -> FormulaExtractionPipeline:
    return FormulaExtractionPipeline(
        catalog=get_default_catalog(),
        policy=FormulaPolicy(**policy_overrides),
    )


# ============================================================================
# Fenced Block Tests
# ============================================================================

class TestFindFencedBlock:
    """Test fenced block detection."""

    def test_finds_json_block(self):
        text = 'intro\n```json\n{"a": 1}\n```\nouter'
        assert find_fenced_block(text) == '{"a": 1}'

    def test_single_line_block(self):
        assert find_fenced_block('```json {"a": 1} ```') == '{"a": 1}'

    def test_tag_is_case_insensitive(self):
        assert find_fenced_block('```JSON\n{"a": 1}\n```') == '{"a": 1}'

    def test_first_block_wins(self):
        text = '```json\n{"a": 1}\n```\n```json\n{"a": 2}\n```'
        assert find_fenced_block(text) == '{"a": 1}'

    def test_other_tags_ignored(self):
        assert find_fenced_block('```python\nprint(1)\n```') is None
        assert find_fenced_block('```jsonc\n{}\n```') is None

    def test_empty_text(self):
        assert find_fenced_block("") is None
        assert find_fenced_block(None) is None


class TestParseFormulaBlock:
    """Test JSON + schema parsing."""

    def test_valid_block(self):
        parsed = parse_formula_block(json.dumps(make_formula_dict()))
        assert isinstance(parsed, FormulaCandidate)
        assert parsed.target_capsules == 9
        assert parsed.total_mg == 2120

    def test_invalid_json(self):
        parsed = parse_formula_block('{"bases": [')
        assert isinstance(parsed, SchemaError)
        assert "Invalid JSON" in parsed.reason

    def test_not_an_object(self):
        parsed = parse_formula_block("[1, 2, 3]")
        assert isinstance(parsed, SchemaError)
        assert parsed.details == ["got list"]

    def test_missing_required_field(self):
        data = make_formula_dict()
        del data["rationale"]

        parsed = parse_formula_block(json.dumps(data))

        assert isinstance(parsed, SchemaError)
        assert any(d.startswith("rationale") for d in parsed.details)

    def test_non_numeric_amount(self):
        data = make_formula_dict()
        data["additions"][0]["amount"] = "a lot"
        assert isinstance(parse_formula_block(json.dumps(data)), SchemaError)

    def test_unknown_fields_ignored(self):
        parsed = parse_formula_block(json.dumps(make_formula_dict(extra_field="x")))
        assert isinstance(parsed, FormulaCandidate)


# ============================================================================
# Pipeline Tests
# ============================================================================

class TestNoFormula:
    """A response without a formula is a normal outcome."""

    def test_plain_conversation(self):
        result = make_pipeline().run("Tell me more about your sleep habits.")

        assert result.state == ExtractionState.NO_FORMULA_DETECTED
        assert result.formula is None
        assert result.violations == []
        assert result.errors == []

    def test_empty_response(self):
        assert make_pipeline().run("").state == ExtractionState.NO_FORMULA_DETECTED


class TestAcceptance:
    """Valid formulas are accepted with authoritative values."""

    def test_valid_formula_accepted(self):
        result = make_pipeline().run(make_response(make_formula_dict()))

        assert result.state == ExtractionState.ACCEPTED
        assert result.accepted
        assert result.violations == []
        assert result.formula.total_mg == 2120
        assert result.calculated_total_mg == 2120

    def test_ai_total_overridden(self):
        result = make_pipeline().run(make_response(make_formula_dict(totalMg=9999)))

        assert result.accepted
        assert result.formula.total_mg == 2120

    def test_missing_capsule_count_defaults(self):
        data = make_formula_dict()
        del data["targetCapsules"]

        result = make_pipeline().run(make_response(data))

        assert result.accepted
        assert result.formula.target_capsules == 9

    def test_lowercase_name_corrected_then_accepted(self):
        data = make_formula_dict()
        data["additions"][0]["ingredient"] = "ashwagandha"

        result = make_pipeline().run(make_response(data))

        assert result.accepted
        assert result.formula.additions[0].ingredient == "Ashwagandha"
        assert 'AUTO-CORRECTED: "ashwagandha" → "Ashwagandha"' in result.correction_warnings

    def test_removed_ingredient_still_accepted(self):
        """9 proposed, 1 unapproved removed, 8 remain."""
        data = make_formula_dict()
        data["additions"].append({"ingredient": "Unicorn Dust", "amount": 100})

        result = make_pipeline().run(make_response(data))

        assert result.accepted
        assert result.formula.ingredient_count == 8
        assert 'Removed unapproved ingredient: "Unicorn Dust"' in result.correction_warnings
        assert result.formula.total_mg == 2120

    def test_dshea_disclaimer_appended_once(self):
        result = make_pipeline().run(make_response(make_formula_dict()))

        disclaimers = result.formula.disclaimers
        assert disclaimers[0] == "Consult your physician before starting any supplement."
        fda = [d for d in disclaimers if "Food and Drug Administration" in d]
        assert len(fda) == 1
        assert fda[0].startswith("These statements")

    def test_existing_dshea_disclaimer_kept(self):
        existing = (
            "These statements have not been evaluated by the Food and Drug Administration."
        )
        result = make_pipeline().run(make_response(make_formula_dict(disclaimers=[existing])))
        assert result.formula.disclaimers == [existing]

    def test_formula_hash(self):
        first = make_pipeline().run(make_response(make_formula_dict()))
        second = make_pipeline().run(
            make_response(make_formula_dict(rationale="Different wording."))
        )

        assert first.formula_hash.startswith("sha256:")
        assert first.formula_hash == second.formula_hash

    def test_input_candidate_not_mutated(self):
        candidate = FormulaCandidate.model_validate(make_formula_dict(totalMg=1))
        before = copy.deepcopy(candidate.model_dump())

        make_pipeline().process_candidate(candidate)

        assert candidate.model_dump() == before


class TestRejection:
    """Rejected formulas carry every violation and no formula."""

    def test_malformed_json_rejected(self):
        result = make_pipeline().run(make_response('{"bases": [ oops'))

        assert result.state == ExtractionState.REJECTED_WITH_ERRORS
        assert result.formula is None
        assert [v.kind for v in result.violations] == [ViolationKind.SCHEMA_ERROR]
        assert result.schema_error is not None

    def test_missing_rationale_rejected(self):
        data = make_formula_dict()
        del data["rationale"]

        result = make_pipeline().run(make_response(data))

        assert result.state == ExtractionState.REJECTED_WITH_ERRORS
        assert "rationale" in result.errors[0]

    def test_array_block_rejected(self):
        result = make_pipeline().run(make_response("[]"))
        assert result.state == ExtractionState.REJECTED_WITH_ERRORS

    def test_unterminated_block_rejected(self):
        text = "Here is your formula:\n```json\n" + json.dumps(make_formula_dict())

        result = make_pipeline().run(text)

        assert result.state == ExtractionState.REJECTED_WITH_ERRORS
        assert result.schema_error.reason == "Formula block is not terminated"

    def test_removal_below_minimum_count_rejected(self):
        """Correction warnings survive a rejection."""
        data = make_formula_dict()
        data["additions"][-1] = {"ingredient": "Unicorn Dust", "amount": 200}

        result = make_pipeline().run(make_response(data))

        assert result.state == ExtractionState.REJECTED_WITH_ERRORS
        assert result.formula is None
        assert result.formula_hash is None
        assert [v.kind for v in result.violations] == [ViolationKind.INGREDIENT_COUNT_OUT_OF_BOUNDS]
        assert 'Removed unapproved ingredient: "Unicorn Dust"' in result.correction_warnings

    def test_over_budget_rejected(self):
        """6 capsules x 550mg = 3300mg, ceiling 3465mg."""
        data = make_formula_dict(targetCapsules=6)
        data["bases"][0]["amount"] = 1260
        data["bases"][1]["amount"] = 1350

        result = make_pipeline().run(make_response(data))

        assert result.state == ExtractionState.REJECTED_WITH_ERRORS
        assert result.calculated_total_mg == 3860
        violation = result.violations[0]
        assert violation.kind == ViolationKind.TOTAL_BUDGET_EXCEEDED
        assert violation.limit == 3300
        assert violation.ceiling == 3465

    def test_multiple_violations_reported_together(self):
        data = make_formula_dict(targetCapsules=7)
        data["bases"][0]["amount"] = 500
        data["additions"][3]["amount"] = 5

        result = make_pipeline().run(make_response(data))

        kinds = {v.kind for v in result.violations}
        assert ViolationKind.INVALID_CAPSULE_COUNT in kinds
        assert ViolationKind.DOSE_NOT_ALLOWED_MULTIPLE in kinds
        assert ViolationKind.DOSE_BELOW_MINIMUM in kinds
        assert ViolationKind.DOSE_OUT_OF_RANGE in kinds
        assert len(result.errors) == len(result.violations)

    def test_nan_amount_rejected(self):
        body = json.dumps(make_formula_dict()).replace('"amount": 600', '"amount": NaN')
        result = make_pipeline().run(make_response(body))
        assert result.state == ExtractionState.REJECTED_WITH_ERRORS


# ============================================================================
# Malformed JSON Edge Cases
# ============================================================================

class TestPathologicalJson:
    """JSON that the decoder refuses without a JSONDecodeError."""

    def test_oversized_integer_rejected(self):
        body = json.dumps(make_formula_dict(totalMg=1)).replace('"totalMg": 1', '"totalMg": ' + "9" * 5000)

        result = make_pipeline().run(make_response(body))

        assert result.state == ExtractionState.REJECTED_WITH_ERRORS
        assert result.formula is None
        assert [v.kind for v in result.violations] == [ViolationKind.SCHEMA_ERROR]

    def test_deep_nesting_rejected(self):
        body = "[" * 100000 + "]" * 100000

        result = make_pipeline().run(make_response(body))

        assert result.state == ExtractionState.REJECTED_WITH_ERRORS
        assert result.schema_error.reason == "Invalid JSON in formula block"

    def test_deep_nesting_parse_returns_schema_error(self):
        assert isinstance(parse_formula_block("[" * 100000 + "]" * 100000), SchemaError)

    def test_deep_nesting_in_health_data_ignored(self):
        nested = '{"a": ' + "[" * 100000 + "]" * 100000 + "}"
        text = make_response(make_formula_dict()) + "\n```health-data\n" + nested + "\n```"

        result = make_pipeline().run(text)

        assert result.health_data is None
        assert result.accepted

    def test_oversized_integer_in_health_data_does_not_raise(self):
        text = "```health-data\n{\"age\": " + "9" * 5000 + "}\n```"
        assert extract_health_data(text) is None


# ============================================================================
# Capsule Selection Tests
# ============================================================================

class TestCapsuleSelection:
    """The customer's own capsule choice overrides the AI's targetCapsules."""

    @pytest.mark.parametrize("message,expected", [
        ("I'll take 12 capsules", 12),
        ("I’ll take 6 capsules", 6),
        ("I've selected 12", 12),
        ("9 capsules per day sounds right", 9),
        ("12 capsules/day", 12),
        ("6 capsules please", 6),
        ("I want 12 capsules", 12),
        ("12 caps per day", 12),
        ("Let's go with 6", 6),
        ("I CHOOSE 9 CAPSULES", 9),
    ])
    def test_patterns(self, message, expected):
        assert capsule_count_from_message(message) == expected

    def test_invalid_count_ignored(self):
        assert capsule_count_from_message("I'll take 7 capsules") is None

    def test_later_valid_pattern_used(self):
        assert capsule_count_from_message("I'll take 7 capsules, actually go with 6") == 6

    def test_huge_number_ignored(self):
        assert capsule_count_from_message("I'll take " + "9" * 5000 + " capsules") is None

    def test_no_selection(self):
        assert capsule_count_from_message("What does ashwagandha do?") is None
        assert capsule_count_from_message(None) is None

    def test_uses_policy_counts(self):
        policy = FormulaPolicy(valid_capsule_counts=(6, 9, 12, 15))
        assert capsule_count_from_message("I'll take 15 capsules", policy) == 15
        assert capsule_count_from_message("I'll take 15 capsules") is None

    def test_message_overrides_ai_count(self):
        text = make_response(make_formula_dict(targetCapsules=9))

        result = make_pipeline().run(text, user_message="I'll take 12 capsules")

        assert result.accepted
        assert result.formula.target_capsules == 12

    def test_invalid_message_count_keeps_ai_count(self):
        text = make_response(make_formula_dict(targetCapsules=6))

        result = make_pipeline().run(text, user_message="I'll take 7 capsules")

        assert result.formula.target_capsules == 6

    def test_selected_count_sets_budget(self):
        """2120mg does not fit 6 capsules at 300mg each (1800mg, ceiling 1890mg)."""
        text = make_response(make_formula_dict(targetCapsules=12))

        result = make_pipeline(capsule_capacity_mg=300).run(text, user_message="6 capsules please")

        assert result.state == ExtractionState.REJECTED_WITH_ERRORS
        assert result.violations[0].kind == ViolationKind.TOTAL_BUDGET_EXCEEDED
        assert result.violations[0].target_capsules == 6


# ============================================================================
# Safety Warning Tests
# ============================================================================

class TestSafetyWarnings:
    """Interaction warnings ride along with accepted formulas only."""

    def test_accepted_formula_carries_warnings(self):
        result = make_pipeline().run(make_response(make_formula_dict()))

        assert result.accepted
        assert "High-dose garlic increases bleeding risk. Avoid before surgery." in result.safety_warnings
        assert result.safety_warnings[-1].startswith("IMPORTANT:")
        assert not any(w.startswith("AUTO-CORRECTED") for w in result.safety_warnings)

    def test_medications_add_interactions(self):
        result = make_pipeline().run(make_response(make_formula_dict()), medications=["Warfarin"])

        assert "INTERACTION: Garlic may increase bleeding risk with warfarin." in result.safety_warnings

    def test_rejected_formula_has_no_safety_warnings(self):
        data = make_formula_dict(targetCapsules=7)

        result = make_pipeline().run(make_response(data), medications=["warfarin"])

        assert result.state == ExtractionState.REJECTED_WITH_ERRORS
        assert result.safety_warnings == []


# ============================================================================
# Health Data Tests
# ============================================================================

class TestHealthData:
    """Optional ```health-data block."""

    def test_health_data_parsed(self):
        text = (
            make_response(make_formula_dict())
            + '\n```health-data\n{"sleep_hours": 6, "stress": "high"}\n```'
        )

        result = make_pipeline().run(text)

        assert result.health_data == {"sleep_hours": 6, "stress": "high"}
        assert result.accepted

    def test_health_data_without_formula(self):
        result = make_pipeline().run('```health-data\n{"age": 40}\n```')

        assert result.state == ExtractionState.NO_FORMULA_DETECTED
        assert result.health_data == {"age": 40}

    def test_malformed_health_data_ignored(self):
        assert extract_health_data("```health-data\nnot json\n```") is None
        assert extract_health_data("```health-data\n[1]\n```") is None
        assert extract_health_data("no block") is None

    def test_health_data_block_not_taken_as_formula(self):
        assert find_fenced_block('```health-data\n{"a": 1}\n```', "json") is None


class TestExtractFormulaFunction:
    """Module-level convenience wrapper."""

    def test_uses_supplied_catalog_and_policy(self):
        policy = FormulaPolicy(min_ingredient_count=9)
        result = extract_formula(
            make_response(make_formula_dict()),
            catalog=get_default_catalog(),
            policy=policy,
        )
        assert result.state == ExtractionState.REJECTED_WITH_ERRORS

    def test_deterministic(self):
        text = make_response(make_formula_dict())
        first = extract_formula(text)
        second = extract_formula(text)
        assert first.model_dump() == second.model_dump()


# Run tests
if __name__ == "__main__":
    pytest.main([__file__, "-v"])
