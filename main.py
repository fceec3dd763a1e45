"""
Formula Safety API Server Entry Point

Validates AI-proposed supplement formulas against the approved ingredient
catalog and the dosing policy.

Use this file for deployment:
  uvicorn main:app --host 0.0.0.0 --port $PORT
"""

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.catalog import get_default_catalog
from app.formulas import get_formula_policy
from app.formulas.admin import router as formulas_router

# Configure logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# ============================================
# App Configuration
# ============================================
app = FastAPI(
    title="Formula Safety API",
    description="Catalog correction and dosage validation for AI-proposed formulas",
    version="1.0.0"
)

# ============================================
# CORS Configuration
# ============================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOW_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
        ).split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(formulas_router)


# ===== REFERENCE DATA =====
# Load once at import so a broken catalog or policy fails the deploy, not a request
_catalog = get_default_catalog()
_policy = get_formula_policy()
logger.info(
    "Formula policy: %d mg/capsule, capsule counts %s (default %d), %s%% tolerance",
    _policy.capsule_capacity_mg,
    list(_policy.valid_capsule_counts),
    _policy.default_capsule_count,
    _policy.budget_tolerance_percent,
)
logger.info("Catalog %s ready", _catalog.catalog_version)


@app.get("/")
def root():
    return {"service": "formula-safety", "status": "ok"}


# For local development
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
