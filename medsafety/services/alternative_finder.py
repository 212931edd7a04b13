"""
Alternative Finder - same-class substitutes that do not raise blocking alerts
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from medsafety.config import settings
from medsafety.database.models import Medication
from medsafety.models.safety import AlternativeContext
from medsafety.services.safety_evaluator import SafetyEvaluator

logger = logging.getLogger(__name__)


class AlternativeFinder:
    """Looks up substitutes for a contraindicated medication"""

    def __init__(self, db: Session, evaluator: SafetyEvaluator = None, limit: Optional[int] = None):
        self.db = db
        self.evaluator = evaluator or SafetyEvaluator(db)
        self.limit = settings.ALTERNATIVES_LIMIT if limit is None else limit

    def alternatives(self, medication_id: int, therapeutic_class: Optional[str] = None,
                     context: Optional[AlternativeContext] = None) -> List[Medication]:
        """
        Medications of the same therapeutic class (or the supplied class),
        excluding the original and anything that would block for the context
        patient. Conflict-free alternatives come first, then by generic name.
        """
        lookup = self.evaluator.lookup
        original = lookup.get_medication(medication_id)

        wanted_class = therapeutic_class or original.therapeutic_class
        if not wanted_class or not wanted_class.strip():
            return []

        candidates = lookup.medications_in_class(wanted_class, excluding_id=original.id)
        if not candidates:
            return []

        patient_context = None
        if context is not None and context.patient_id is not None:
            lookup.require_patient(context.patient_id)
            patient_context = self.evaluator.gather_context(
                context.patient_id, context.excluding_prescription_id
            )

        ranked = []
        for medication in candidates:
            has_conflict = False
            if patient_context is not None:
                report = self.evaluator.assess(medication, patient_context)
                if report.requires_override:
                    logger.debug(f"Alternative {medication.generic_name} skipped: "
                                 f"blocking alert(s) {report.blocking_alert_ids}")
                    continue
                has_conflict = report.has_conflicts
            ranked.append(((has_conflict, medication.generic_name.casefold(), medication.id), medication))

        ranked.sort(key=lambda item: item[0])
        results = [medication for _, medication in ranked]
        if self.limit:
            results = results[:self.limit]

        logger.info(f"Found {len(results)} alternative(s) for {original.generic_name} in class {wanted_class}")
        return results
