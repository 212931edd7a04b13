"""
Safety Models - severity scale, alerts, reports and workflow value types
"""
import enum
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from medsafety.database.models import OverrideReasonCode

NO_RISK = "none"


class InteractionSeverity(enum.IntEnum):
    """Ordinal clinical risk; numeric comparison is the ordering"""
    MINOR = 1
    MODERATE = 2
    MAJOR = 3
    CONTRAINDICATED = 4

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_level(cls, level: int) -> "InteractionSeverity":
        try:
            return cls(int(level))
        except (TypeError, ValueError):
            raise ValueError(f"Unknown severity level: {level!r}")


class AlertKind(enum.Enum):
    DRUG_DRUG = "drug_drug"
    DRUG_ALLERGY = "drug_allergy"


class AdvisoryKind(enum.Enum):
    CONTROLLED_SUBSTANCE = "controlled_substance"
    NARROW_THERAPEUTIC_INDEX = "narrow_therapeutic_index"
    DOSE_BELOW_RANGE = "dose_below_range"
    DOSE_ABOVE_RANGE = "dose_above_range"
    DUPLICATE_THERAPY = "duplicate_therapy"


class WorkflowState(enum.Enum):
    VALIDATING = "validating"
    EVALUATING = "evaluating"
    COMMITTING = "committing"
    BLOCKED = "blocked"
    COMMITTING_WITH_OVERRIDE = "committing_with_override"
    COMMITTED = "committed"
    REJECTED = "rejected"


# ==================== Raw matches ====================

@dataclass(frozen=True)
class InteractionMatch:
    """An active interaction rule hit between the candidate and an active medication"""
    rule_id: int
    medication_id: int
    medication_name: str
    other_medication_id: int
    other_medication_name: str
    severity: InteractionSeverity
    contraindicated: bool
    interaction_type: str
    description: str
    management: str = ""


@dataclass(frozen=True)
class AllergyMatch:
    """A patient allergy substance that matches the candidate medication"""
    substance: str
    medication_id: int
    medication_name: str
    severity: InteractionSeverity
    contraindicated: bool
    match_type: str  # ingredient, direct
    description: str
    rule_id: Optional[int] = None
    ingredient: Optional[str] = None


# ==================== Alerts ====================

@dataclass(frozen=True)
class DrugDrugAlert:
    kind: ClassVar[AlertKind] = AlertKind.DRUG_DRUG

    alert_id: str
    severity: InteractionSeverity
    contraindicated: bool
    blocking: bool
    message: str
    medication_id: int
    medication_name: str
    other_medication_id: int
    other_medication_name: str
    interaction_id: int
    interaction_type: str
    management: str = ""

    @property
    def effective_severity(self) -> InteractionSeverity:
        if self.contraindicated:
            return InteractionSeverity.CONTRAINDICATED
        return self.severity


@dataclass(frozen=True)
class DrugAllergyAlert:
    kind: ClassVar[AlertKind] = AlertKind.DRUG_ALLERGY

    alert_id: str
    severity: InteractionSeverity
    contraindicated: bool
    blocking: bool
    message: str
    medication_id: int
    medication_name: str
    substance: str
    match_type: str
    allergy_rule_id: Optional[int] = None

    @property
    def effective_severity(self) -> InteractionSeverity:
        if self.contraindicated:
            return InteractionSeverity.CONTRAINDICATED
        return self.severity


SafetyAlert = Union[DrugDrugAlert, DrugAllergyAlert]


def alert_to_dict(alert: SafetyAlert) -> Dict[str, Any]:
    """Serialize an alert; unknown alert types are an error, never skipped"""
    data = {
        'alert_id': alert.alert_id,
        'kind': alert.kind.value,
        'severity': alert.severity.label,
        'severity_level': int(alert.severity),
        'contraindicated': alert.contraindicated,
        'blocking': alert.blocking,
        'message': alert.message,
        'medication': {'id': alert.medication_id, 'name': alert.medication_name},
    }
    if isinstance(alert, DrugDrugAlert):
        data['interacting_medication'] = {
            'id': alert.other_medication_id,
            'name': alert.other_medication_name
        }
        data['interaction_id'] = alert.interaction_id
        data['interaction_type'] = alert.interaction_type
        data['management'] = alert.management
    elif isinstance(alert, DrugAllergyAlert):
        data['allergy_substance'] = alert.substance
        data['match_type'] = alert.match_type
        data['allergy_rule_id'] = alert.allergy_rule_id
    else:
        raise TypeError(f"Unsupported alert type: {type(alert).__name__}")
    return data


@dataclass(frozen=True)
class MedicationAdvisory:
    """Non-blocking note; never changes requires_override"""
    kind: AdvisoryKind
    medication_id: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'medication_id': self.medication_id,
            'message': self.message
        }


@dataclass(frozen=True)
class SafetyReport:
    """Ranked alerts (highest first) plus the overall classification"""
    alerts: Tuple[SafetyAlert, ...]
    overall_risk_level: str
    requires_override: bool
    advisories: Tuple[MedicationAdvisory, ...] = ()

    @property
    def blocking_alerts(self) -> List[SafetyAlert]:
        return [a for a in self.alerts if a.blocking]

    @property
    def blocking_alert_ids(self) -> List[str]:
        return [a.alert_id for a in self.alerts if a.blocking]

    @property
    def blocking_interaction_ids(self) -> List[int]:
        return [
            a.interaction_id for a in self.alerts
            if a.blocking and isinstance(a, DrugDrugAlert)
        ]

    @property
    def has_conflicts(self) -> bool:
        return len(self.alerts) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'alerts': [alert_to_dict(a) for a in self.alerts],
            'overall_risk_level': self.overall_risk_level,
            'requires_override': self.requires_override,
            'advisories': [a.to_dict() for a in self.advisories]
        }


# ==================== Workflow inputs / outputs ====================

@dataclass
class PrescriptionCandidate:
    """A prescription that is about to be written"""
    patient_id: Optional[int]
    medication_id: Optional[int]
    provider_id: Optional[int] = None
    dose: Optional[str] = None
    frequency: Optional[str] = None
    route: str = "PO"
    duration_days: Optional[int] = None
    quantity: Optional[int] = None
    refills: int = 0
    instructions: Optional[str] = None
    indication: Optional[str] = None
    prescribed_name: Optional[str] = None


@dataclass
class OverrideRequest:
    """A provider's documented decision to proceed despite blocking alerts"""
    override_reason: str
    clinical_justification: Optional[str] = None
    monitoring_plan: Optional[str] = None
    reason_code: OverrideReasonCode = OverrideReasonCode.OTHER


@dataclass(frozen=True)
class AlternativeContext:
    """Patient context that alternatives must not conflict with"""
    patient_id: Optional[int] = None
    excluding_prescription_id: Optional[int] = None


@dataclass
class PrescriptionOutcome:
    """Result of a committed prescribe call"""
    prescription: Any
    report: SafetyReport
    override: Any = None
    state: WorkflowState = WorkflowState.COMMITTED
    transitions: List[WorkflowState] = field(default_factory=list)

    @property
    def override_used(self) -> bool:
        return self.override is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'prescription': self.prescription.to_dict(),
            'safety_report': self.report.to_dict(),
            'override': self.override.to_dict() if self.override is not None else None,
            'override_used': self.override_used
        }
