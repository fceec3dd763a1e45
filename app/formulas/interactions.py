"""
Supplement Interaction Warnings

Advisory safety notes attached to an accepted formula:
- High-risk ingredient warnings (bleeding risk, toxicity, serotonin)
- Supplement-to-supplement pairs (absorption competition, depletion)
- Medication interactions, when the customer's medications are known

These are warnings only. They never reject a formula.

Matching is case-insensitive substring matching on ingredient names, so
"Ginger Root" picks up the "ginger" warning.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from .models import FormulaCandidate


# =============================================================================
# REFERENCE DATA
# =============================================================================

HIGH_RISK_SUPPLEMENTS: Dict[str, str] = {
    "iron": "Iron supplements can be toxic in excess. Monitor iron levels and avoid if you have hemochromatosis.",
    "vitamin a": "High-dose Vitamin A can be toxic. Avoid during pregnancy.",
    "vitamin k": "Vitamin K affects blood clotting. Monitor if taking blood thinners.",
    "5-htp": "5-HTP affects serotonin levels. Can cause serotonin syndrome with antidepressants.",
    "same": "SAMe affects neurotransmitters. Can interact with antidepressants and blood thinners.",
    "ginseng": "Ginseng can affect blood pressure and blood sugar. Monitor if diabetic or hypertensive.",
    "ginkgo": "Ginkgo increases bleeding risk. Avoid before surgery or with blood thinners.",
    "garlic": "High-dose garlic increases bleeding risk. Avoid before surgery.",
    "ginger": "High-dose ginger increases bleeding risk and can affect blood pressure.",
    "turmeric": "Turmeric/Curcumin increases bleeding risk and can affect blood sugar.",
    "st. john's wort": "St. John's Wort interacts with many medications including birth control, antidepressants, and blood thinners.",
    "kava": "Kava can cause liver damage. Avoid if you have liver problems or take liver-affecting medications.",
    "yohimbe": "Yohimbe can cause dangerous blood pressure changes and heart problems.",
    "ephedra": "Ephedra (Ma Huang) can cause heart problems and is banned in many supplements.",
    "comfrey": "Comfrey can cause liver damage and is not safe for internal use.",
}

SUPPLEMENT_PAIRS: List[Tuple[Tuple[str, str], str]] = [
    (("iron", "calcium"),
     "Iron and Calcium compete for absorption. Take Iron and Calcium supplements 2+ hours apart."),
    (("zinc", "copper"),
     "High-dose Zinc can deplete Copper. Maintain 10:1 Zinc:Copper ratio."),
    (("vitamin c", "iron"),
     "Vitamin C enhances Iron absorption - monitor for iron overload if taking both."),
    (("magnesium", "calcium"),
     "High-dose Calcium can interfere with Magnesium absorption. Balance is important."),
    (("5-htp", "same"),
     "Both 5-HTP and SAMe affect serotonin/neurotransmitters. Avoid combining without medical supervision."),
]

# supplement -> {medication keyword -> warning}
MEDICATION_INTERACTIONS: Dict[str, Dict[str, str]] = {
    "vitamin k": {
        "warfarin": "Vitamin K can interfere with warfarin effectiveness. Monitor INR closely.",
        "coumadin": "Vitamin K can interfere with coumadin effectiveness. Monitor INR closely.",
        "heparin": "Vitamin K can affect clotting times with heparin.",
        "aspirin": "Monitor bleeding risk when combining Vitamin K with aspirin.",
    },
    "garlic": {
        "warfarin": "Garlic may increase bleeding risk with warfarin.",
        "aspirin": "Garlic + aspirin increases bleeding risk.",
        "clopidogrel": "Garlic may increase bleeding risk with clopidogrel.",
    },
    "ginkgo": {
        "warfarin": "Ginkgo significantly increases bleeding risk with warfarin.",
        "aspirin": "Ginkgo + aspirin increases bleeding risk.",
        "ibuprofen": "Ginkgo + NSAIDs increases bleeding risk.",
    },
    "st. john's wort": {
        "ssri": "St. John's Wort may cause serotonin syndrome with SSRIs.",
        "antidepressants": "St. John's Wort may interact with antidepressants causing serotonin syndrome.",
        "birth control": "St. John's Wort can reduce birth control effectiveness.",
        "digoxin": "St. John's Wort can reduce digoxin levels.",
        "cyclosporine": "St. John's Wort can reduce cyclosporine levels.",
        "simvastatin": "St. John's Wort can reduce statin effectiveness.",
    },
    "5-htp": {
        "ssri": "5-HTP with SSRIs may cause serotonin syndrome.",
        "antidepressants": "5-HTP with antidepressants may cause serotonin syndrome.",
        "maoi": "5-HTP with MAOIs can be dangerous.",
        "tramadol": "5-HTP with tramadol increases serotonin syndrome risk.",
    },
    "same": {
        "antidepressants": "SAMe can interact with antidepressants.",
        "maoi": "SAMe with MAOIs can cause dangerous interactions.",
    },
    "ginseng": {
        "blood pressure": "Ginseng may interact with blood pressure medications.",
        "ace inhibitor": "Ginseng may affect ACE inhibitor effectiveness.",
        "beta blocker": "Ginseng may interact with beta blockers.",
        "calcium channel blocker": "Ginseng may affect calcium channel blockers.",
        "digoxin": "Ginseng may increase digoxin levels.",
        "warfarin": "Ginseng may affect warfarin metabolism.",
    },
    "hawthorn": {
        "digoxin": "Hawthorn may increase digoxin effects.",
        "beta blocker": "Hawthorn may enhance beta blocker effects.",
        "calcium channel blocker": "Hawthorn may enhance calcium channel blocker effects.",
    },
    "chromium": {
        "insulin": "Chromium may enhance insulin effects - monitor blood sugar.",
        "metformin": "Chromium may enhance metformin effects.",
        "diabetes": "Chromium may affect blood sugar levels with diabetes medications.",
    },
    "cinnamon": {
        "diabetes": "Cinnamon may enhance diabetes medication effects - monitor blood sugar.",
        "insulin": "Cinnamon may enhance insulin effects.",
    },
    "iron": {
        "thyroid": "Iron can interfere with thyroid medication absorption. Take 4+ hours apart.",
        "levothyroxine": "Iron reduces levothyroxine absorption. Take 4+ hours apart.",
        "calcium": "Iron and calcium compete for absorption. Take separately.",
    },
    "calcium": {
        "thyroid": "Calcium can interfere with thyroid medication absorption.",
        "levothyroxine": "Calcium reduces levothyroxine absorption. Take 4+ hours apart.",
        "antibiotics": "Calcium can reduce antibiotic absorption.",
    },
    "folate": {
        "phenytoin": "Folate may reduce phenytoin levels.",
        "carbamazepine": "Folate may interact with carbamazepine.",
        "valproic acid": "Folate may interact with valproic acid.",
    },
    "echinacea": {
        "immunosuppressant": "Echinacea may counteract immunosuppressive medications.",
        "cyclosporine": "Echinacea may reduce cyclosporine effectiveness.",
        "tacrolimus": "Echinacea may interact with tacrolimus.",
    },
    "zinc": {
        "antibiotic": "Zinc can reduce antibiotic absorption. Take 2+ hours apart.",
        "quinolone": "Zinc significantly reduces quinolone antibiotic absorption.",
    },
    "melatonin": {
        "sedative": "Melatonin may enhance sedative effects.",
        "sleeping pill": "Melatonin may enhance sleeping medication effects.",
        "benzodiazepine": "Melatonin may enhance benzodiazepine effects.",
    },
    "valerian": {
        "sedative": "Valerian may enhance sedative effects.",
        "sleeping pill": "Valerian may enhance sleeping medication effects.",
    },
}

INTERACTION_PREFIX = "INTERACTION: "

CONSULT_PROVIDER_NOTICE = (
    "IMPORTANT: These are potential interactions. "
    "Always consult your healthcare provider before starting new supplements."
)


# =============================================================================
# CHECKS
# =============================================================================

def high_risk_warnings(ingredient: str) -> List[str]:
    """Warnings for a single ingredient name."""
    name = ingredient.lower()
    return [warning for key, warning in HIGH_RISK_SUPPLEMENTS.items() if key in name]


def supplement_pair_warnings(ingredients: Iterable[str]) -> List[str]:
    """Warnings for known pairs present together in the formula."""
    names = [i.lower() for i in ingredients]
    warnings = []
    for pair, warning in SUPPLEMENT_PAIRS:
        if all(any(key in name for name in names) for key in pair):
            warnings.append(warning)
    return warnings


def medication_interaction(ingredient: str, medication: str) -> Optional[str]:
    """
    First known interaction between an ingredient and a medication, or None.

    A medication matches when either string contains the other, so
    "warfarin 5mg" and "ssri" both match their keyword.
    """
    name = ingredient.lower()
    medication = medication.strip().lower()
    if not medication:
        return None

    for supplement, by_medication in MEDICATION_INTERACTIONS.items():
        if supplement not in name:
            continue
        for keyword, warning in by_medication.items():
            if keyword in medication or medication in keyword:
                return f"{INTERACTION_PREFIX}{warning}"
    return None


def check_formula_interactions(
    formula: FormulaCandidate,
    medications: Optional[Iterable[str]] = None,
) -> List[str]:
    """
    Safety warnings for a formula.

    Args:
        formula: Corrected formula
        medications: Customer's current medications, if known

    Returns:
        De-duplicated warnings in first-seen order, followed by the
        consult-your-provider notice when any warning was raised.
    """
    names = [item.ingredient for item in formula.ingredients]
    medications = [m for m in (medications or []) if m and m.strip()]
    warnings: List[str] = []

    for name in names:
        warnings.extend(high_risk_warnings(name))

    for name in names:
        for medication in medications:
            interaction = medication_interaction(name, medication)
            if interaction:
                warnings.append(interaction)

    warnings.extend(supplement_pair_warnings(names))

    if warnings:
        warnings.append(CONSULT_PROVIDER_NOTICE)

    return list(dict.fromkeys(warnings))
