# Services Package
from .reference_lookup import ReferenceLookup, safety_data_lookup
from .interaction_catalog import InteractionCatalog
from .allergy_registry import AllergyRegistry, AllergyMatcher, normalize_substance
from .active_medications import ActiveMedicationSet
from .risk_classifier import RiskClassifier, compare_alerts
from .safety_evaluator import SafetyEvaluator, PatientSafetyContext
from .alternative_finder import AlternativeFinder
from .patient_locks import PatientLockRegistry, acquire_transaction_lock
from .audit_service import AuditService
from .prescription_workflow import PrescriptionWorkflow

__all__ = [
    'ReferenceLookup',
    'safety_data_lookup',
    'InteractionCatalog',
    'AllergyRegistry',
    'AllergyMatcher',
    'normalize_substance',
    'ActiveMedicationSet',
    'RiskClassifier',
    'compare_alerts',
    'SafetyEvaluator',
    'PatientSafetyContext',
    'AlternativeFinder',
    'PatientLockRegistry',
    'acquire_transaction_lock',
    'AuditService',
    'PrescriptionWorkflow',
]
