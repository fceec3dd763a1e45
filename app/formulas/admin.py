"""
Formula Safety Endpoints

POST /api/v1/formulas/extract  - Extract and validate a formula from AI text
POST /api/v1/formulas/validate - Validate an already-structured formula
GET  /api/v1/formulas/catalog  - Approved catalog + active policy (admin)
GET  /api/v1/formulas/health   - Health check

Version: formula_safety_v1
"""

import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from app.catalog import get_default_catalog

from .config import get_formula_policy
from .extraction import FormulaExtractionPipeline
from .models import (
    ExtractionResult,
    ExtractionState,
    FormulaCandidate,
    FormulaViolation,
)


# Router
router = APIRouter(
    prefix="/api/v1/formulas",
    tags=["formulas"],
)


# Security
def verify_admin_key(x_admin_api_key: str = Header(None, alias="X-Admin-API-Key")) -> str:
    """
    Verify admin API key from header.

    Raises 401 if missing or invalid.
    """
    expected_key = os.environ.get("ADMIN_API_KEY")

    if not expected_key:
        # Open in dev when ADMIN_API_KEY is not set
        return "dev_mode"

    if not x_admin_api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing X-Admin-API-Key header"
        )

    if x_admin_api_key != expected_key:
        raise HTTPException(
            status_code=401,
            detail="Invalid admin API key"
        )

    return x_admin_api_key


def get_pipeline() -> FormulaExtractionPipeline:
    return FormulaExtractionPipeline(
        catalog=get_default_catalog(),
        policy=get_formula_policy(),
    )


# Request / response models

class ExtractFormulaRequest(BaseModel):
    """Raw AI consultation response."""
    text: str = Field(description="Full AI response, may contain a ```json formula block")
    user_message: Optional[str] = Field(
        default=None,
        description="Customer message that prompted the response (capsule selection)"
    )
    medications: List[str] = Field(
        default_factory=list,
        description="Customer medications for interaction warnings"
    )


class FormulaResponse(BaseModel):
    """Pipeline outcome for API callers."""
    success: bool
    state: ExtractionState
    formula: Optional[Dict[str, Any]] = None
    formula_hash: Optional[str] = None
    calculated_total_mg: Optional[float] = None
    warnings: List[str] = Field(default_factory=list)
    safety_warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    violations: List[FormulaViolation] = Field(default_factory=list)
    health_data: Optional[Dict[str, Any]] = None
    generated_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def from_result(cls, result: ExtractionResult) -> "FormulaResponse":
        return cls(
            success=result.state != ExtractionState.REJECTED_WITH_ERRORS,
            state=result.state,
            formula=result.formula.model_dump(by_alias=True) if result.formula else None,
            formula_hash=result.formula_hash,
            calculated_total_mg=result.calculated_total_mg,
            warnings=result.correction_warnings,
            safety_warnings=result.safety_warnings,
            errors=result.errors,
            violations=result.violations,
            health_data=result.health_data,
        )


class FormulaHealthResponse(BaseModel):
    """Health check response for formula module."""
    status: str = "ok"
    module: str = "formula_safety"
    version: str = "formula_safety_v1"
    catalog_version: str
    timestamp: str = Field(default_factory=lambda: datetime.utcnow().isoformat())


# Endpoints

@router.get("/health", response_model=FormulaHealthResponse)
async def formulas_health():
    """
    Health check for formula module.

    Does not require authentication.
    """
    return FormulaHealthResponse(catalog_version=get_default_catalog().catalog_version)


@router.post("/extract", response_model=FormulaResponse)
async def extract_formula_endpoint(
    request: ExtractFormulaRequest,
    pipeline: FormulaExtractionPipeline = Depends(get_pipeline),
):
    """
    Extract and validate a formula from an AI response.

    A response without a formula block returns NO_FORMULA_DETECTED with
    success=true. A rejected formula returns 200 with success=false and the
    full error list, so the chat layer can request one regeneration covering
    every fix.
    """
    return FormulaResponse.from_result(pipeline.run(
        request.text,
        user_message=request.user_message,
        medications=request.medications,
    ))


@router.post("/validate", response_model=FormulaResponse)
async def validate_formula_endpoint(
    formula: FormulaCandidate,
    pipeline: FormulaExtractionPipeline = Depends(get_pipeline),
):
    """Correct and validate a structured formula (no text extraction)."""
    return FormulaResponse.from_result(pipeline.process_candidate(formula))


@router.get("/catalog")
async def get_catalog(admin_key: str = Depends(verify_admin_key)):
    """
    Approved ingredient catalog and the active formula policy.

    Requires X-Admin-API-Key header.
    """
    catalog = get_default_catalog()
    policy = get_formula_policy()
    return {
        "success": True,
        "catalog": catalog.to_dict(),
        "counts": {
            "system_supports": len(catalog.system_supports),
            "individual_ingredients": len(catalog.individual_ingredients),
        },
        "policy": policy.model_dump(),
        "generated_at": datetime.utcnow().isoformat(),
    }
