"""
Prescription Workflow - validate, evaluate, then commit, block, or commit with override
"""
import dataclasses
import logging
from typing import Iterable, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from medsafety.config import settings
from medsafety.database.connection import DatabaseManager, db_manager
from medsafety.database.models import (
    Medication, OverrideReasonCode, Prescription, PrescriptionOverride, PrescriptionStatus
)
from medsafety.exceptions import (
    ConcurrencyConflictError, PersistenceError, SafetyAlertError, ValidationError
)
from medsafety.models.safety import (
    AlternativeContext, OverrideRequest, PrescriptionCandidate, PrescriptionOutcome,
    SafetyReport, WorkflowState
)
from medsafety.services.alternative_finder import AlternativeFinder
from medsafety.services.audit_service import AuditService
from medsafety.services.patient_locks import (
    PatientLockRegistry, acquire_transaction_lock, is_conflict_error
)
from medsafety.services.risk_classifier import RiskClassifier
from medsafety.services.safety_evaluator import SafetyEvaluator
from medsafety.services.validation import require_id, require_text

logger = logging.getLogger(__name__)


class PrescriptionWorkflow:
    """
    The prescribing state machine.

    Validating -> Evaluating -> Committing | Blocked | CommittingWithOverride,
    ending in Committed or Rejected. Evaluation and commit run under a
    per-patient lock inside one transaction, so two concurrent prescriptions
    for the same patient are always checked against each other.
    """

    def __init__(self, database: DatabaseManager = None,
                 locks: PatientLockRegistry = None,
                 classifier: RiskClassifier = None,
                 override_min_length: Optional[int] = None):
        self.database = database or db_manager
        self.locks = locks or PatientLockRegistry()
        self.classifier = classifier or RiskClassifier()
        self.override_min_length = (
            settings.OVERRIDE_REASON_MIN_LENGTH if override_min_length is None else override_min_length
        )

    # ==================== Read-only operations ====================

    def evaluate(self, candidate: PrescriptionCandidate) -> SafetyReport:
        """Pure evaluation; nothing is written"""
        with self.database.session_scope() as db:
            return SafetyEvaluator(db, self.classifier).evaluate(candidate)

    def evaluate_existing(self, prescription_id: int) -> SafetyReport:
        with self.database.session_scope() as db:
            return SafetyEvaluator(db, self.classifier).evaluate_existing(prescription_id)

    def check_interactions(self, medication_ids: Iterable[int],
                           patient_id: Optional[int] = None) -> SafetyReport:
        with self.database.session_scope() as db:
            return SafetyEvaluator(db, self.classifier).check_medication_list(medication_ids, patient_id)

    def find_alternatives(self, medication_id: int, context: Optional[AlternativeContext] = None,
                          therapeutic_class: Optional[str] = None) -> List[Medication]:
        with self.database.session_scope() as db:
            finder = AlternativeFinder(db, SafetyEvaluator(db, self.classifier))
            return finder.alternatives(medication_id, therapeutic_class, context)

    # ==================== Prescribing ====================

    def prescribe(self, candidate: PrescriptionCandidate,
                  override: Optional[OverrideRequest] = None
                  ) -> Union[PrescriptionOutcome, SafetyAlertError]:
        """
        Run the full workflow for one candidate prescription.

        Returns a PrescriptionOutcome when committed, or a SafetyAlertError
        (not raised) when blocking alerts were found and no override given.

        Raises:
            ValidationError: missing/malformed input or override reason too short
            NotFoundError: patient, provider or medication does not exist
            ConcurrencyConflictError: patient lock unavailable; retry the whole call
            PersistenceError: the commit failed; nothing was written
            SafetyDataUnavailableError: a safety lookup failed
        """
        transitions = [WorkflowState.VALIDATING]
        candidate, override = self._validate(candidate, override)

        try:
            with self.locks.hold(candidate.patient_id):
                return self._evaluate_and_commit(candidate, override, transitions)
        except SQLAlchemyError as e:
            if is_conflict_error(e):
                logger.warning(f"Serialization conflict prescribing for patient {candidate.patient_id}: {e}")
                raise ConcurrencyConflictError(
                    f"Concurrent update for patient {candidate.patient_id}; retry the prescription",
                    {'patient_id': candidate.patient_id}
                ) from e
            logger.exception(f"Failed to persist prescription for patient {candidate.patient_id}")
            raise PersistenceError(
                "Prescription could not be saved; nothing was committed",
                {'patient_id': candidate.patient_id}
            ) from e

    def _validate(self, candidate: PrescriptionCandidate, override: Optional[OverrideRequest]):
        cleaned = dataclasses.replace(
            candidate,
            patient_id=require_id(candidate.patient_id, "patient_id"),
            medication_id=require_id(candidate.medication_id, "medication_id"),
            provider_id=require_id(candidate.provider_id, "provider_id"),
            dose=require_text(candidate.dose, "dose"),
            frequency=require_text(candidate.frequency, "frequency")
        )
        for field in ("duration_days", "quantity", "refills"):
            value = getattr(cleaned, field)
            if value is not None and value < 0:
                raise ValidationError(f"{field} cannot be negative", field=field)

        if override is None:
            return cleaned, None

        reason = (override.override_reason or "").strip()
        if len(reason) < self.override_min_length:
            raise ValidationError(
                f"Override reason must be at least {self.override_min_length} characters long",
                field="override_reason"
            )
        reason_code = override.reason_code
        if not isinstance(reason_code, OverrideReasonCode):
            try:
                reason_code = OverrideReasonCode(reason_code)
            except ValueError:
                raise ValidationError(f"Unknown override reason code: {reason_code}", field="reason_code")

        return cleaned, dataclasses.replace(override, override_reason=reason, reason_code=reason_code)

    def _transition(self, transitions: List[WorkflowState], state: WorkflowState, patient_id: int):
        logger.debug(f"Prescription for patient {patient_id}: {transitions[-1].value} -> {state.value}")
        transitions.append(state)

    def _evaluate_and_commit(self, candidate: PrescriptionCandidate,
                             override: Optional[OverrideRequest],
                             transitions: List[WorkflowState]):
        blocked = None
        committed = None
        audit = None

        with self.database.session_scope() as db:
            acquire_transaction_lock(db, candidate.patient_id)

            evaluator = SafetyEvaluator(db, self.classifier)
            evaluator.lookup.require_patient(candidate.patient_id)
            evaluator.lookup.require_provider(candidate.provider_id)
            medication = evaluator.lookup.get_medication(candidate.medication_id)

            self._transition(transitions, WorkflowState.EVALUATING, candidate.patient_id)
            report = evaluator.evaluate(candidate)

            if report.requires_override and override is None:
                self._transition(transitions, WorkflowState.BLOCKED, candidate.patient_id)
                logger.warning(
                    f"Prescription of {medication.generic_name} for patient {candidate.patient_id} "
                    f"blocked: {report.blocking_alert_ids}"
                )
                blocked = SafetyAlertError(report, candidate)
            else:
                use_override = report.requires_override
                self._transition(
                    transitions,
                    WorkflowState.COMMITTING_WITH_OVERRIDE if use_override else WorkflowState.COMMITTING,
                    candidate.patient_id
                )
                if override is not None and not use_override:
                    logger.info(f"Override supplied for patient {candidate.patient_id} "
                                f"but no blocking alert; not recorded")

                prescription = Prescription(
                    patient_id=candidate.patient_id,
                    medication_id=medication.id,
                    provider_id=candidate.provider_id,
                    prescribed_name=candidate.prescribed_name or medication.generic_name,
                    dose=candidate.dose,
                    frequency=candidate.frequency,
                    route=candidate.route or 'PO',
                    duration_days=candidate.duration_days,
                    quantity=candidate.quantity,
                    refills=candidate.refills or 0,
                    instructions=candidate.instructions,
                    indication=candidate.indication,
                    status=PrescriptionStatus.ACTIVE,
                    overall_risk_level=report.overall_risk_level,
                    override_used=use_override
                )
                db.add(prescription)
                db.flush()

                override_row = None
                if use_override:
                    override_row = PrescriptionOverride(
                        prescription_id=prescription.id,
                        patient_id=candidate.patient_id,
                        medication_id=medication.id,
                        provider_id=candidate.provider_id,
                        alert_ids=report.blocking_alert_ids,
                        interaction_ids=report.blocking_interaction_ids,
                        reason_code=override.reason_code,
                        override_reason=override.override_reason,
                        clinical_justification=override.clinical_justification,
                        monitoring_plan=override.monitoring_plan
                    )
                    db.add(override_row)

                audit = AuditService(db)
                audit.record_prescription_committed(
                    prescription_id=prescription.id,
                    provider_id=candidate.provider_id,
                    patient_id=candidate.patient_id,
                    medication_id=medication.id,
                    overall_risk_level=report.overall_risk_level,
                    override_used=use_override,
                    alert_ids=report.blocking_alert_ids if use_override else []
                )
                db.flush()
                committed = PrescriptionOutcome(
                    prescription=prescription,
                    report=report,
                    override=override_row
                )

        if blocked is not None:
            self._transition(transitions, WorkflowState.REJECTED, candidate.patient_id)
            return blocked

        self._transition(transitions, WorkflowState.COMMITTED, candidate.patient_id)
        audit.after_commit()
        committed.transitions = list(transitions)
        logger.info(
            f"Prescription {committed.prescription.id} committed for patient {candidate.patient_id} "
            f"(risk={committed.report.overall_risk_level}, override={committed.override_used})"
        )
        return committed
