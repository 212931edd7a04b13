"""
Database Package
Provides database models, connection management, and session handling
"""
from medsafety.database.connection import get_db, db_manager, DatabaseManager
from medsafety.database.models import (
    Base, Patient, Provider, Medication, Allergy, AllergyType,
    InteractionRule, DrugAllergyRule, Prescription, PrescriptionStatus,
    PrescriptionOverride, OverrideReasonCode, AuditLog
)

__all__ = [
    'get_db', 'db_manager', 'DatabaseManager',
    'Base', 'Patient', 'Provider', 'Medication', 'Allergy', 'AllergyType',
    'InteractionRule', 'DrugAllergyRule', 'Prescription', 'PrescriptionStatus',
    'PrescriptionOverride', 'OverrideReasonCode', 'AuditLog'
]
