"""
Risk Classifier - turns raw interaction and allergy matches into a ranked SafetyReport
"""
from functools import cmp_to_key
from typing import Iterable, Optional, Sequence, Tuple

from medsafety.config import settings
from medsafety.models.safety import (
    NO_RISK, AlertKind, AllergyMatch, DrugAllergyAlert, DrugDrugAlert,
    InteractionMatch, InteractionSeverity, MedicationAdvisory, SafetyAlert, SafetyReport
)

_KIND_ORDER = {kind: index for index, kind in enumerate(AlertKind)}


def alert_rank(alert: SafetyAlert) -> Tuple[bool, int]:
    """Clinical rank: the contraindicated flag dominates the numeric level"""
    return (alert.contraindicated, int(alert.severity))


def compare_alerts(a: SafetyAlert, b: SafetyAlert) -> int:
    """
    Total order over alerts: negative when a ranks above b.

    Higher clinical rank first; equal ranks fall back to alert kind and then
    alert id so that ordering never depends on input order.
    """
    rank_a, rank_b = alert_rank(a), alert_rank(b)
    if rank_a != rank_b:
        return -1 if rank_a > rank_b else 1

    kind_a, kind_b = _KIND_ORDER[a.kind], _KIND_ORDER[b.kind]
    if kind_a != kind_b:
        return -1 if kind_a < kind_b else 1

    if a.alert_id != b.alert_id:
        return -1 if a.alert_id < b.alert_id else 1
    return 0


class RiskClassifier:
    """Pure classification; holds only the blocking threshold"""

    def __init__(self, blocking_threshold: Optional[int] = None):
        if blocking_threshold is None:
            blocking_threshold = settings.BLOCKING_SEVERITY_THRESHOLD
        self.blocking_threshold = InteractionSeverity.from_level(blocking_threshold)

    def is_blocking(self, severity: InteractionSeverity, contraindicated: bool) -> bool:
        return contraindicated or severity >= self.blocking_threshold

    def _interaction_alert(self, match: InteractionMatch) -> DrugDrugAlert:
        return DrugDrugAlert(
            alert_id=f"drug_drug:{match.rule_id}",
            severity=match.severity,
            contraindicated=match.contraindicated,
            blocking=self.is_blocking(match.severity, match.contraindicated),
            message=(
                f"{match.severity.label.capitalize()} interaction between "
                f"{match.medication_name} and {match.other_medication_name}: {match.description}"
            ),
            medication_id=match.medication_id,
            medication_name=match.medication_name,
            other_medication_id=match.other_medication_id,
            other_medication_name=match.other_medication_name,
            interaction_id=match.rule_id,
            interaction_type=match.interaction_type,
            management=match.management
        )

    def _allergy_alert(self, match: AllergyMatch) -> DrugAllergyAlert:
        return DrugAllergyAlert(
            alert_id=f"drug_allergy:{match.medication_id}:{match.substance}",
            severity=match.severity,
            contraindicated=match.contraindicated,
            blocking=self.is_blocking(match.severity, match.contraindicated),
            message=(
                f"{match.medication_name} conflicts with documented allergy to "
                f"{match.substance}: {match.description}"
            ),
            medication_id=match.medication_id,
            medication_name=match.medication_name,
            substance=match.substance,
            match_type=match.match_type,
            allergy_rule_id=match.rule_id
        )

    def to_alert(self, match) -> SafetyAlert:
        if isinstance(match, InteractionMatch):
            return self._interaction_alert(match)
        if isinstance(match, AllergyMatch):
            return self._allergy_alert(match)
        raise TypeError(f"Cannot classify match of type {type(match).__name__}")

    def rank(self, alerts: Iterable[SafetyAlert]) -> Tuple[SafetyAlert, ...]:
        return tuple(sorted(alerts, key=cmp_to_key(compare_alerts)))

    def classify(self, interaction_matches: Sequence[InteractionMatch],
                 allergy_matches: Sequence[AllergyMatch],
                 advisories: Iterable[MedicationAdvisory] = ()) -> SafetyReport:
        alerts = self.rank(
            self.to_alert(m) for m in list(interaction_matches) + list(allergy_matches)
        )

        overall = alerts[0].effective_severity.label if alerts else NO_RISK
        ordered_advisories = tuple(sorted(
            advisories, key=lambda a: (a.medication_id, a.kind.value, a.message)
        ))

        return SafetyReport(
            alerts=alerts,
            overall_risk_level=overall,
            requires_override=any(a.blocking for a in alerts),
            advisories=ordered_advisories
        )
