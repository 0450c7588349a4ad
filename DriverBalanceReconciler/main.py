"""
Driver Balance Reconciler - FastAPI Web Backend

HTTP access to the driver wallet reconciliation for the admin panel.

Features:
    - Dry-run reconciliation of a single driver
    - Applying the corrected balance/debt of a single driver
    - Per-ride ledger trail of a driver
    - Full reconciliation run over all drivers

Endpoints:
    GET  /drivers/{driver_id}/reconciliation  - Compare stored vs computed
    POST /drivers/{driver_id}/reconciliation  - Compare and fix (apply=true)
    GET  /drivers/{driver_id}/ledger          - Ride-by-ride ledger trail
    POST /reconciliations                     - Reconcile every driver
    GET  /health                              - Health check

Usage:
    uvicorn main:app --reload
"""

from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from google.api_core.exceptions import GoogleAPIError
from pydantic import BaseModel, Field

from config.firebase_config import get_db
from drivers import find_driver
from ledger import fold_rides
from reconciler import (
    FatalDiscoveryError,
    TransientStoreError,
    reconcile_all,
    reconcile_driver,
)
from report import summarize
from rides import get_finalized_rides


# =============================================================================
# Pydantic Models for Request/Response Validation
# =============================================================================

class ReconciliationResponse(BaseModel):
    """One driver's stored vs computed money position."""
    driver_id: str
    email: Optional[str]
    stored_balance: float
    stored_debt: float
    computed_balance: float
    computed_debt: float
    balance_diff: float
    debt_diff: float
    ride_count: int
    mismatched: bool
    applied: bool


class LedgerStepResponse(BaseModel):
    ride_id: str
    action: str
    amount: float
    credit_to_balance: Optional[float]
    balance_after: float
    debt_after: float


class LedgerResponse(BaseModel):
    """Balance/debt rebuilt from rides, with the per-ride trail."""
    driver_id: str
    balance: float
    debt: float
    ride_count: int
    steps: list[LedgerStepResponse]


class ReconciliationRunRequest(BaseModel):
    """Request model for a full reconciliation run."""
    apply: bool = Field(False, description="Write corrections for mismatched drivers")
    limit: Optional[int] = Field(None, gt=0, description="Max drivers to check")


class ReconciliationFailure(BaseModel):
    driver_id: str
    error: str


class ReconciliationRunResponse(BaseModel):
    summary: dict
    records: list[ReconciliationResponse]
    failures: list[ReconciliationFailure]


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Driver Balance Reconciler",
    description="Rebuilds driver balance and debt from finished rides",
    version="1.0.0"
)


def get_firestore():
    """Dependency providing the Firestore client."""
    db = get_db()
    if db is None:
        raise HTTPException(status_code=503, detail="Database not available")
    return db


def _load_driver(driver_id: str, db):
    driver = find_driver(driver_id, db=db)
    if driver is None:
        raise HTTPException(status_code=404, detail=f"Driver {driver_id} not found")
    return driver


# =============================================================================
# API Endpoints
# =============================================================================

@app.get("/drivers/{driver_id}/reconciliation", response_model=ReconciliationResponse)
def get_driver_reconciliation(driver_id: str, db=Depends(get_firestore)):
    """
    Compare a driver's stored balance/debt with the computed values.

    Never writes.
    """
    driver = _load_driver(driver_id, db)
    try:
        record = reconcile_driver(driver, apply=False, db=db)
    except TransientStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return ReconciliationResponse(**record.to_dict())


@app.post("/drivers/{driver_id}/reconciliation", response_model=ReconciliationResponse)
def fix_driver_reconciliation(driver_id: str, apply: bool = False, db=Depends(get_firestore)):
    """
    Compare a driver's stored values and, with apply=true, overwrite them
    with the computed ones when they differ by more than one cent.
    """
    driver = _load_driver(driver_id, db)
    try:
        record = reconcile_driver(driver, apply=apply, db=db)
    except TransientStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return ReconciliationResponse(**record.to_dict())


@app.get("/drivers/{driver_id}/ledger", response_model=LedgerResponse)
def get_driver_ledger(driver_id: str, db=Depends(get_firestore)):
    """Rebuild a driver's balance/debt and return the ride-by-ride trail."""
    driver = _load_driver(driver_id, db)
    try:
        rides = get_finalized_rides(driver.driver_id, db=db)
    except GoogleAPIError as e:
        raise HTTPException(status_code=503, detail=str(e))

    result = fold_rides(rides)
    return LedgerResponse(driver_id=driver.driver_id, **result.to_dict())


@app.post("/reconciliations", response_model=ReconciliationRunResponse)
def run_reconciliation(request: ReconciliationRunRequest, db=Depends(get_firestore)):
    """
    Reconcile every driver.

    Drivers whose rides could not be read are listed under failures; the
    rest of the run is unaffected.
    """
    try:
        report = reconcile_all(apply=request.apply, limit=request.limit, db=db)
    except FatalDiscoveryError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return ReconciliationRunResponse(
        summary=summarize(report),
        records=[ReconciliationResponse(**record.to_dict()) for record in report.records],
        failures=[
            ReconciliationFailure(driver_id=driver_id, error=message)
            for driver_id, message in report.failures
        ]
    )


# =============================================================================
# Health Check Endpoint
# =============================================================================

@app.get("/health")
def health_check():
    """Health check endpoint to verify API is running."""
    return {"status": "healthy", "service": "Driver Balance Reconciler"}


# =============================================================================
# Run with: python main.py
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
