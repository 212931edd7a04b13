"""
Medication Safety API Routes
Thin HTTP layer over the prescribing workflow
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from medsafety.database.models import OverrideReasonCode
from medsafety.exceptions import (
    ConcurrencyConflictError, MedicationSafetyError, NotFoundError,
    PersistenceError, SafetyAlertError, SafetyDataUnavailableError, ValidationError
)
from medsafety.models.safety import AlternativeContext, OverrideRequest, PrescriptionCandidate
from medsafety.services.prescription_workflow import PrescriptionWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/safety", tags=["Medication Safety"])

_workflow: Optional[PrescriptionWorkflow] = None


def get_workflow() -> PrescriptionWorkflow:
    """FastAPI dependency; one workflow (and lock registry) per process"""
    global _workflow
    if _workflow is None:
        _workflow = PrescriptionWorkflow()
    return _workflow


# ==================== Pydantic Models ====================

class EvaluateRequest(BaseModel):
    patient_id: int
    medication_id: int
    dose: Optional[str] = None
    frequency: Optional[str] = None


class OverrideIn(BaseModel):
    override_reason: str
    clinical_justification: Optional[str] = None
    monitoring_plan: Optional[str] = None
    reason_code: OverrideReasonCode = OverrideReasonCode.OTHER


class PrescriptionCreate(BaseModel):
    patient_id: int
    medication_id: int
    provider_id: int
    dose: str
    frequency: str
    route: str = "PO"
    duration_days: Optional[int] = Field(default=None, ge=0)
    quantity: Optional[int] = Field(default=None, ge=0)
    refills: int = Field(default=0, ge=0)
    instructions: Optional[str] = None
    indication: Optional[str] = None
    prescribed_name: Optional[str] = None
    override: Optional[OverrideIn] = None


class InteractionCheckRequest(BaseModel):
    medication_ids: List[int] = Field(min_length=1)
    patient_id: Optional[int] = None


# ==================== Error mapping ====================

def _http_error(error: MedicationSafetyError) -> HTTPException:
    if isinstance(error, ValidationError):
        status = 422
    elif isinstance(error, NotFoundError):
        status = 404
    elif isinstance(error, (SafetyAlertError, ConcurrencyConflictError)):
        status = 409
    elif isinstance(error, (PersistenceError, SafetyDataUnavailableError)):
        status = 503
    else:
        status = 500
    return HTTPException(status_code=status, detail=error.to_dict())


# ==================== Evaluation ====================

@router.post("/evaluate")
def evaluate_prescription(
    request: EvaluateRequest,
    workflow: PrescriptionWorkflow = Depends(get_workflow)
):
    """
    Check a candidate prescription without writing anything.
    Returns the ranked alerts, overall risk level and whether an override is required.
    """
    candidate = PrescriptionCandidate(
        patient_id=request.patient_id,
        medication_id=request.medication_id,
        dose=request.dose,
        frequency=request.frequency
    )
    try:
        report = workflow.evaluate(candidate)
    except MedicationSafetyError as e:
        raise _http_error(e)
    return report.to_dict()


@router.post("/interactions/check")
def check_interactions(
    request: InteractionCheckRequest,
    workflow: PrescriptionWorkflow = Depends(get_workflow)
):
    """Interactions among a list of medications, plus allergies when a patient is given"""
    try:
        report = workflow.check_interactions(request.medication_ids, request.patient_id)
    except MedicationSafetyError as e:
        raise _http_error(e)
    return {
        'medication_ids': sorted(set(request.medication_ids)),
        'has_interactions': report.has_conflicts,
        **report.to_dict()
    }


# ==================== Prescribing ====================

@router.post("/prescriptions", status_code=201)
def create_prescription(
    request: PrescriptionCreate,
    workflow: PrescriptionWorkflow = Depends(get_workflow)
):
    """
    Prescribe a medication.

    409 with the safety report when blocking alerts exist and no override was
    given; re-submit with `override` to proceed.
    """
    candidate = PrescriptionCandidate(
        patient_id=request.patient_id,
        medication_id=request.medication_id,
        provider_id=request.provider_id,
        dose=request.dose,
        frequency=request.frequency,
        route=request.route,
        duration_days=request.duration_days,
        quantity=request.quantity,
        refills=request.refills,
        instructions=request.instructions,
        indication=request.indication,
        prescribed_name=request.prescribed_name
    )
    override = None
    if request.override is not None:
        override = OverrideRequest(
            override_reason=request.override.override_reason,
            clinical_justification=request.override.clinical_justification,
            monitoring_plan=request.override.monitoring_plan,
            reason_code=request.override.reason_code
        )

    try:
        result = workflow.prescribe(candidate, override)
    except MedicationSafetyError as e:
        raise _http_error(e)

    if isinstance(result, SafetyAlertError):
        raise _http_error(result)
    return result.to_dict()


@router.get("/prescriptions/{prescription_id}/safety")
def prescription_safety(
    prescription_id: int,
    workflow: PrescriptionWorkflow = Depends(get_workflow)
):
    """Re-check a stored prescription against the patient's other active prescriptions"""
    try:
        report = workflow.evaluate_existing(prescription_id)
    except MedicationSafetyError as e:
        raise _http_error(e)
    return {'prescription_id': prescription_id, **report.to_dict()}


# ==================== Alternatives ====================

@router.get("/medications/{medication_id}/alternatives")
def medication_alternatives(
    medication_id: int,
    patient_id: Optional[int] = Query(None),
    therapeutic_class: Optional[str] = Query(None),
    excluding_prescription_id: Optional[int] = Query(None),
    workflow: PrescriptionWorkflow = Depends(get_workflow)
):
    """Same-class substitutes that raise no blocking alert for the patient"""
    context = AlternativeContext(
        patient_id=patient_id,
        excluding_prescription_id=excluding_prescription_id
    )
    try:
        alternatives = workflow.find_alternatives(medication_id, context, therapeutic_class)
    except MedicationSafetyError as e:
        raise _http_error(e)
    return {
        'medication_id': medication_id,
        'count': len(alternatives),
        'alternatives': [m.to_dict() for m in alternatives]
    }
