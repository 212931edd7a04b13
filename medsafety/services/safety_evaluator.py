"""
Safety Evaluator - builds one SafetyReport for a candidate prescription
"""
import logging
import re
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional

from sqlalchemy.orm import Session

from medsafety.database.models import Medication, Prescription
from medsafety.exceptions import NotFoundError
from medsafety.models.safety import (
    AdvisoryKind, InteractionMatch, InteractionSeverity, MedicationAdvisory,
    PrescriptionCandidate, SafetyReport
)
from medsafety.services.active_medications import ActiveMedicationSet
from medsafety.services.allergy_registry import AllergyMatcher, AllergyRegistry
from medsafety.services.interaction_catalog import InteractionCatalog
from medsafety.services.reference_lookup import ReferenceLookup, safety_data_lookup
from medsafety.services.risk_classifier import RiskClassifier
from medsafety.services.validation import require_id

logger = logging.getLogger(__name__)

# Narrow therapeutic index drugs need level monitoring whatever else is prescribed
NARROW_THERAPEUTIC_INDEX = ('warfarin', 'insulin', 'digoxin', 'lithium')

DOSE_PATTERN = re.compile(r'(\d+(?:\.\d+)?)')


@dataclass(frozen=True)
class PatientSafetyContext:
    """Facts about one patient, gathered once per evaluation"""
    patient_id: int
    active_medication_ids: FrozenSet[int]
    active_substances: FrozenSet[str]


def _same_class(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a and b) and a.casefold() == b.casefold()


def parse_dose(dose: Optional[str]) -> Optional[float]:
    if not dose:
        return None
    match = DOSE_PATTERN.search(dose)
    return float(match.group(1)) if match else None


class SafetyEvaluator:
    """
    Orchestrates the read-only lookups and the classifier.

    Features:
    - Drug-drug interaction check against the active medication set
    - Drug-allergy check against active allergy substances
    - Non-blocking advisories (controlled substance, narrow therapeutic
      index, dose range, duplicate therapy)
    """

    def __init__(self, db: Session, classifier: RiskClassifier = None):
        self.db = db
        self.classifier = classifier or RiskClassifier()
        self.lookup = ReferenceLookup(db)
        self.catalog = InteractionCatalog(db)
        self.allergies = AllergyRegistry(db)
        self.allergy_matcher = AllergyMatcher(db)
        self.active_medications = ActiveMedicationSet(db)

    def gather_context(self, patient_id: int,
                       excluding_prescription_id: Optional[int] = None) -> PatientSafetyContext:
        return PatientSafetyContext(
            patient_id=patient_id,
            active_medication_ids=self.active_medications.active_medication_ids(
                patient_id, excluding_prescription_id
            ),
            active_substances=self.allergies.active_substances(patient_id)
        )

    def evaluate(self, candidate: PrescriptionCandidate,
                 excluding_prescription_id: Optional[int] = None) -> SafetyReport:
        """Evaluate a candidate prescription; no side effects"""
        patient_id = require_id(candidate.patient_id, "patient_id")
        medication_id = require_id(candidate.medication_id, "medication_id")

        self.lookup.require_patient(patient_id)
        medication = self.lookup.get_medication(medication_id)

        context = self.gather_context(patient_id, excluding_prescription_id)
        return self.assess(medication, context, dose=candidate.dose)

    def evaluate_existing(self, prescription_id: int) -> SafetyReport:
        """What a stored prescription interacts with, excluding itself"""
        with safety_data_lookup("prescription store"):
            prescription = self.db.get(Prescription, prescription_id)
        if prescription is None:
            raise NotFoundError("prescription", prescription_id)

        medication = self.lookup.get_medication(prescription.medication_id)
        context = self.gather_context(prescription.patient_id, prescription.id)
        return self.assess(medication, context, dose=prescription.dose)

    def assess(self, medication: Medication, context: PatientSafetyContext,
               dose: Optional[str] = None) -> SafetyReport:
        others = context.active_medication_ids - {medication.id}
        rules = self.catalog.lookup(medication.id, others)

        interaction_matches = []
        for rule in rules:
            other_id = rule.other_medication_id(medication.id)
            other = rule.medication_1 if rule.medication_1_id == other_id else rule.medication_2
            interaction_matches.append(InteractionMatch(
                rule_id=rule.id,
                medication_id=medication.id,
                medication_name=medication.generic_name,
                other_medication_id=other_id,
                other_medication_name=other.generic_name,
                severity=InteractionSeverity.from_level(rule.severity_level),
                contraindicated=bool(rule.contraindicated),
                interaction_type=rule.interaction_type,
                description=rule.description,
                management=rule.management or ""
            ))

        allergy_matches = self.allergy_matcher.match(medication, context.active_substances)
        advisories = self._advisories(medication, context, dose)

        report = self.classifier.classify(interaction_matches, allergy_matches, advisories)
        logger.debug(
            f"Evaluated {medication.generic_name} for patient {context.patient_id}: "
            f"{len(report.alerts)} alert(s), risk={report.overall_risk_level}, "
            f"requires_override={report.requires_override}"
        )
        return report

    def check_medication_list(self, medication_ids: Iterable[int],
                              patient_id: Optional[int] = None) -> SafetyReport:
        """Interactions among a list of medications, plus allergies when a patient is given"""
        ids = sorted(set(medication_ids))
        medications = self.lookup.get_medications(ids)
        missing = [i for i in ids if i not in medications]
        if missing:
            raise NotFoundError("medication", missing[0])

        interaction_matches = [
            InteractionMatch(
                rule_id=rule.id,
                medication_id=rule.medication_1_id,
                medication_name=rule.medication_1.generic_name,
                other_medication_id=rule.medication_2_id,
                other_medication_name=rule.medication_2.generic_name,
                severity=InteractionSeverity.from_level(rule.severity_level),
                contraindicated=bool(rule.contraindicated),
                interaction_type=rule.interaction_type,
                description=rule.description,
                management=rule.management or ""
            )
            for rule in self.catalog.lookup_among(ids)
        ]

        allergy_matches = []
        if patient_id is not None:
            self.lookup.require_patient(patient_id)
            substances = self.allergies.active_substances(patient_id)
            for medication_id in ids:
                allergy_matches.extend(
                    self.allergy_matcher.match(medications[medication_id], substances)
                )

        return self.classifier.classify(interaction_matches, allergy_matches)

    def _advisories(self, medication: Medication, context: PatientSafetyContext,
                    dose: Optional[str]) -> List[MedicationAdvisory]:
        advisories = []

        if medication.controlled_substance:
            schedule = f" (Schedule {medication.schedule})" if medication.schedule else ""
            advisories.append(MedicationAdvisory(
                kind=AdvisoryKind.CONTROLLED_SUBSTANCE,
                medication_id=medication.id,
                message=f"{medication.generic_name} is a controlled substance{schedule}"
            ))

        generic = (medication.generic_name or "").lower()
        if any(name in generic for name in NARROW_THERAPEUTIC_INDEX):
            advisories.append(MedicationAdvisory(
                kind=AdvisoryKind.NARROW_THERAPEUTIC_INDEX,
                medication_id=medication.id,
                message=f"{medication.generic_name} has a narrow therapeutic index - requires monitoring"
            ))

        numeric_dose = parse_dose(dose)
        if numeric_dose is not None:
            if medication.typical_dose_min is not None and numeric_dose < medication.typical_dose_min:
                advisories.append(MedicationAdvisory(
                    kind=AdvisoryKind.DOSE_BELOW_RANGE,
                    medication_id=medication.id,
                    message=f"Prescribed dose ({dose}) is below typical minimum ({medication.typical_dose_min:g})"
                ))
            elif medication.typical_dose_max is not None and numeric_dose > medication.typical_dose_max:
                advisories.append(MedicationAdvisory(
                    kind=AdvisoryKind.DOSE_ABOVE_RANGE,
                    medication_id=medication.id,
                    message=f"Prescribed dose ({dose}) exceeds typical maximum ({medication.typical_dose_max:g})"
                ))

        if context.active_medication_ids:
            active = self.lookup.get_medications(context.active_medication_ids)
            if medication.id in active:
                advisories.append(MedicationAdvisory(
                    kind=AdvisoryKind.DUPLICATE_THERAPY,
                    medication_id=medication.id,
                    message=f"Patient already has an active prescription for {medication.generic_name}"
                ))
            else:
                same_class = sorted(
                    m.generic_name for m in active.values()
                    if _same_class(m.drug_class, medication.drug_class)
                    or _same_class(m.therapeutic_class, medication.therapeutic_class)
                )
                if same_class:
                    classes = " / ".join(c for c in (medication.drug_class, medication.therapeutic_class) if c)
                    advisories.append(MedicationAdvisory(
                        kind=AdvisoryKind.DUPLICATE_THERAPY,
                        medication_id=medication.id,
                        message=f"Patient already on {classes}: {', '.join(same_class)}"
                    ))

        return advisories
