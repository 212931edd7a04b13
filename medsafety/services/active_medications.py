"""
Active Medication Set - what a new prescription would interact with
"""
from typing import FrozenSet, Optional

from sqlalchemy.orm import Session

from medsafety.database.models import Prescription, PrescriptionStatus
from medsafety.services.reference_lookup import safety_data_lookup


class ActiveMedicationSet:
    """Medication ids of a patient's prescriptions with status 'active'"""

    def __init__(self, db: Session):
        self.db = db

    def active_medication_ids(self, patient_id: int,
                              excluding_prescription_id: Optional[int] = None) -> FrozenSet[int]:
        with safety_data_lookup("active medication set"):
            query = self.db.query(Prescription.medication_id).filter(
                Prescription.patient_id == patient_id,
                Prescription.status == PrescriptionStatus.ACTIVE
            )
            if excluding_prescription_id is not None:
                query = query.filter(Prescription.id != excluding_prescription_id)
            rows = query.all()
        return frozenset(r.medication_id for r in rows)
