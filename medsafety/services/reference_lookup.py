"""
Reference Lookup - patient, provider and medication existence checks
"""
import logging
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medsafety.database.models import Medication, Patient, Provider
from medsafety.exceptions import NotFoundError, SafetyDataUnavailableError

logger = logging.getLogger(__name__)


@contextmanager
def safety_data_lookup(source: str):
    """Turn storage failures during a read into SafetyDataUnavailableError"""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"Safety data lookup failed ({source}): {e}")
        raise SafetyDataUnavailableError(
            f"{source} is unavailable; safety cannot be assessed",
            {'source': source}
        ) from e


class ReferenceLookup:
    """Read-only access to the entities a prescription refers to"""

    def __init__(self, db: Session):
        self.db = db

    def get_medication(self, medication_id: int) -> Medication:
        with safety_data_lookup("medication catalog"):
            medication = self.db.get(Medication, medication_id)
        if medication is None:
            raise NotFoundError("medication", medication_id)
        return medication

    def get_medications(self, medication_ids: Iterable[int]) -> Dict[int, Medication]:
        ids = sorted(set(medication_ids))
        if not ids:
            return {}
        with safety_data_lookup("medication catalog"):
            rows = self.db.query(Medication).filter(Medication.id.in_(ids)).all()
        return {m.id: m for m in rows}

    def medications_in_class(self, therapeutic_class: str,
                             excluding_id: Optional[int] = None) -> List[Medication]:
        """Active catalog medications of one therapeutic class (case-insensitive)"""
        with safety_data_lookup("medication catalog"):
            query = self.db.query(Medication).filter(
                Medication.active.is_(True),
                Medication.therapeutic_class.isnot(None)
            )
            if excluding_id is not None:
                query = query.filter(Medication.id != excluding_id)
            rows = query.order_by(Medication.id).all()
        wanted = therapeutic_class.strip().casefold()
        return [m for m in rows if m.therapeutic_class.strip().casefold() == wanted]

    def patient_exists(self, patient_id: int) -> bool:
        with safety_data_lookup("patient registry"):
            return self.db.get(Patient, patient_id) is not None

    def provider_exists(self, provider_id: int) -> bool:
        with safety_data_lookup("provider registry"):
            return self.db.get(Provider, provider_id) is not None

    def require_patient(self, patient_id: int):
        if not self.patient_exists(patient_id):
            raise NotFoundError("patient", patient_id)

    def require_provider(self, provider_id: int):
        if not self.provider_exists(provider_id):
            raise NotFoundError("provider", provider_id)
