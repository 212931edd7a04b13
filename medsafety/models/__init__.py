# Safety value types
from .safety import (
    NO_RISK, InteractionSeverity, AlertKind, AdvisoryKind, WorkflowState,
    InteractionMatch, AllergyMatch, DrugDrugAlert, DrugAllergyAlert, SafetyAlert,
    MedicationAdvisory, SafetyReport, PrescriptionCandidate, OverrideRequest,
    AlternativeContext, PrescriptionOutcome, alert_to_dict
)
