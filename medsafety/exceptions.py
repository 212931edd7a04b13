"""
Error taxonomy for the medication safety engine
"""
from typing import Any, Dict, Optional


class MedicationSafetyError(Exception):
    """Base class for every error the engine reports to its callers"""

    code = "medication_safety_error"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'error': self.code,
            'message': self.message,
            'retryable': self.retryable,
            'details': self.details
        }


class ValidationError(MedicationSafetyError):
    """Malformed or missing input; nothing was evaluated"""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, {'field': field} if field else None)
        self.field = field


class NotFoundError(MedicationSafetyError):
    """A referenced patient, provider, medication or prescription does not exist"""

    code = "not_found"

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(
            f"{resource_type} {resource_id} not found",
            {'resource_type': resource_type, 'resource_id': resource_id}
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class SafetyAlertError(MedicationSafetyError):
    """
    Blocking risk found and no override supplied.

    Returned by PrescriptionWorkflow.prescribe rather than raised; it is the
    intended outcome for a high-risk prescription and carries the full report
    so the caller can re-submit with an override or pick an alternative.
    """

    code = "safety_alert"

    def __init__(self, report, candidate=None):
        blocking = [a.alert_id for a in report.blocking_alerts]
        super().__init__(
            f"Prescription blocked: {len(blocking)} blocking safety alert(s), "
            f"overall risk {report.overall_risk_level}",
            {'blocking_alert_ids': blocking}
        )
        self.report = report
        self.candidate = candidate

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['safety_report'] = self.report.to_dict()
        return data


class PersistenceError(MedicationSafetyError):
    """Transaction or storage failure after a successful decision"""

    code = "persistence_error"
    retryable = True


class ConcurrencyConflictError(MedicationSafetyError):
    """Per-patient serialization failed; retry the whole prescribe call"""

    code = "concurrency_conflict"
    retryable = True


class SafetyDataUnavailableError(MedicationSafetyError):
    """A catalog or registry lookup failed; never read as 'no interactions'"""

    code = "safety_data_unavailable"
    retryable = True
