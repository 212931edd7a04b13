"""
Allergy Registry - active allergy substances and medication matching
"""
import logging
from typing import FrozenSet, Iterable, List, Optional

from sqlalchemy.orm import Session

from medsafety.database.models import Allergy, DrugAllergyRule, Medication
from medsafety.models.safety import AllergyMatch, InteractionSeverity
from medsafety.services.reference_lookup import safety_data_lookup

logger = logging.getLogger(__name__)


def normalize_substance(value: Optional[str]) -> str:
    return (value or "").strip().casefold()


class AllergyRegistry:
    """Read-only view of a patient's active allergies"""

    def __init__(self, db: Session):
        self.db = db

    def active_substances(self, patient_id: int) -> FrozenSet[str]:
        with safety_data_lookup("allergy registry"):
            rows = (
                self.db.query(Allergy.substance)
                .filter(Allergy.patient_id == patient_id, Allergy.active.is_(True))
                .all()
            )
        substances = frozenset(normalize_substance(r.substance) for r in rows)
        return frozenset(s for s in substances if s)


class AllergyMatcher:
    """
    Matches allergy substances against a medication.

    Ingredient-table rules are consulted first (substance equal to the rule's
    allergy substance or ingredient). Without a rule, a substance matches when
    it contains, or is contained in, the medication's generic or brand name.
    Comparison is case-insensitive; one match at most per substance.
    """

    def __init__(self, db: Session):
        self.db = db

    def _rules_for(self, medication_id: int) -> List[DrugAllergyRule]:
        with safety_data_lookup("drug-allergy rules"):
            return (
                self.db.query(DrugAllergyRule)
                .filter(DrugAllergyRule.medication_id == medication_id,
                        DrugAllergyRule.active.is_(True))
                .order_by(DrugAllergyRule.id)
                .all()
            )

    def match(self, medication: Medication, substances: Iterable[str]) -> List[AllergyMatch]:
        substances = sorted({normalize_substance(s) for s in substances} - {""})
        if not substances:
            return []

        rules = self._rules_for(medication.id)
        names = [n for n in (normalize_substance(medication.generic_name),
                             normalize_substance(medication.brand_name)) if n]

        matches = []
        for substance in substances:
            hits = [
                r for r in rules
                if substance in (normalize_substance(r.allergy_substance),
                                 normalize_substance(r.ingredient))
            ]
            if hits:
                rule = max(hits, key=lambda r: (bool(r.contraindicated), r.severity_level, -r.id))
                matches.append(AllergyMatch(
                    substance=substance,
                    medication_id=medication.id,
                    medication_name=medication.generic_name,
                    severity=InteractionSeverity.from_level(rule.severity_level),
                    contraindicated=bool(rule.contraindicated),
                    match_type="ingredient",
                    description=rule.description,
                    rule_id=rule.id,
                    ingredient=rule.ingredient
                ))
                continue

            if any(substance in name or name in substance for name in names):
                matches.append(AllergyMatch(
                    substance=substance,
                    medication_id=medication.id,
                    medication_name=medication.generic_name,
                    severity=InteractionSeverity.CONTRAINDICATED,
                    contraindicated=True,
                    match_type="direct",
                    description=f"Patient has documented allergy to {substance}"
                ))

        if matches:
            logger.debug(f"Allergy matches for {medication.generic_name}: {[m.substance for m in matches]}")
        return matches
