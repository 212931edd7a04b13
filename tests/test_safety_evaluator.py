"""
Tests for SafetyEvaluator: allergy and interaction scenarios, advisories, failure modes.
"""
import pytest
from sqlalchemy.exc import OperationalError

from medsafety.database.models import Prescription, PrescriptionStatus
from medsafety.exceptions import NotFoundError, SafetyDataUnavailableError, ValidationError
from medsafety.models.safety import AdvisoryKind, AlertKind, NO_RISK, PrescriptionCandidate
from medsafety.services.safety_evaluator import SafetyEvaluator, parse_dose


def candidate(patient_id, medication_id, dose=None):
    return PrescriptionCandidate(patient_id=patient_id, medication_id=medication_id, dose=dose)


class TestScenarios:

    def test_penicillin_allergy_blocks_amoxicillin(self, session, records):
        patient = records.patient()
        records.allergy(patient, "penicillin")

        report = SafetyEvaluator(session).evaluate(candidate(patient, records.medication_id("amoxicillin")))

        assert len(report.alerts) == 1
        assert report.alerts[0].kind is AlertKind.DRUG_ALLERGY
        assert report.requires_override is True

    def test_warfarin_patient_aspirin_candidate(self, session, records):
        patient = records.patient()
        records.prescription(patient, "warfarin")

        report = SafetyEvaluator(session).evaluate(candidate(patient, records.medication_id("aspirin")))

        assert len(report.alerts) == 1
        alert = report.alerts[0]
        assert alert.kind is AlertKind.DRUG_DRUG
        assert alert.blocking is True
        assert alert.other_medication_name == "warfarin"
        assert report.overall_risk_level == "contraindicated"
        assert report.requires_override is True

    def test_aspirin_patient_warfarin_candidate(self, session, records):
        patient = records.patient()
        records.prescription(patient, "aspirin")

        report = SafetyEvaluator(session).evaluate(candidate(patient, records.medication_id("warfarin")))

        assert len(report.alerts) == 1
        alert = report.alerts[0]
        assert alert.kind is AlertKind.DRUG_DRUG
        assert alert.blocking is True
        assert alert.other_medication_name == "aspirin"
        assert alert.alert_id == f"drug_drug:{records.interaction('warfarin', 'aspirin').id}"
        assert report.overall_risk_level == "contraindicated"
        assert report.requires_override is True

    def test_clean_patient(self, session, records):
        patient = records.patient()
        report = SafetyEvaluator(session).evaluate(candidate(patient, records.medication_id("metformin")))
        assert report.alerts == ()
        assert report.overall_risk_level == NO_RISK
        assert report.requires_override is False

    def test_moderate_interaction_does_not_block(self, session, records):
        patient = records.patient()
        records.prescription(patient, "aspirin")
        report = SafetyEvaluator(session).evaluate(candidate(patient, records.medication_id("clopidogrel")))
        assert report.overall_risk_level == "moderate"
        assert report.requires_override is False

    def test_inactive_prescriptions_ignored(self, session, records):
        patient = records.patient()
        records.prescription(patient, "warfarin", status=PrescriptionStatus.DISCONTINUED)
        records.prescription(patient, "warfarin", status=PrescriptionStatus.COMPLETED)
        report = SafetyEvaluator(session).evaluate(candidate(patient, records.medication_id("aspirin")))
        assert report.alerts == ()

    def test_evaluation_is_deterministic(self, session, records):
        patient = records.patient()
        records.prescription(patient, "warfarin")
        records.prescription(patient, "clopidogrel")
        records.allergy(patient, "aspirin")
        evaluator = SafetyEvaluator(session)
        aspirin = records.medication_id("aspirin")

        first = evaluator.evaluate(candidate(patient, aspirin))
        second = evaluator.evaluate(candidate(patient, aspirin))

        assert first == second
        assert first.alerts[0].alert_id.startswith("drug_drug:")
        assert len(first.alerts) == 3

    def test_evaluate_does_not_write(self, session, records):
        patient = records.patient()
        before = records.count(Prescription)
        SafetyEvaluator(session).evaluate(candidate(patient, records.medication_id("aspirin")))
        assert records.count(Prescription) == before


class TestInputErrors:

    def test_missing_patient_id(self, session, records):
        with pytest.raises(ValidationError):
            SafetyEvaluator(session).evaluate(candidate(None, records.medication_id("aspirin")))

    def test_missing_medication_id(self, session, records):
        with pytest.raises(ValidationError):
            SafetyEvaluator(session).evaluate(candidate(records.patient(), None))

    def test_blank_patient_id(self, session, records):
        with pytest.raises(ValidationError) as exc:
            SafetyEvaluator(session).evaluate(candidate(" ", records.medication_id("aspirin")))
        assert exc.value.field == "patient_id"

    def test_non_numeric_medication_id(self, session, records):
        with pytest.raises(ValidationError) as exc:
            SafetyEvaluator(session).evaluate(candidate(records.patient(), "abc"))
        assert exc.value.field == "medication_id"

    def test_numeric_string_ids_accepted(self, session, records):
        report = SafetyEvaluator(session).evaluate(
            candidate(str(records.patient()), str(records.medication_id("metformin")))
        )
        assert report.alerts == ()

    def test_unknown_patient(self, session, records):
        with pytest.raises(NotFoundError) as exc:
            SafetyEvaluator(session).evaluate(candidate(99999, records.medication_id("aspirin")))
        assert exc.value.resource_type == "patient"

    def test_unknown_medication(self, session, records):
        with pytest.raises(NotFoundError) as exc:
            SafetyEvaluator(session).evaluate(candidate(records.patient(), 99999))
        assert exc.value.resource_type == "medication"

    def test_lookup_failure_is_not_empty_result(self, session, records, monkeypatch):
        patient = records.patient()
        aspirin = records.medication_id("aspirin")
        evaluator = SafetyEvaluator(session)

        def broken_query(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection reset"))

        monkeypatch.setattr(session, "query", broken_query)
        with pytest.raises(SafetyDataUnavailableError) as exc:
            evaluator.evaluate(candidate(patient, aspirin))
        assert exc.value.retryable is True


class TestAdvisories:

    def _kinds(self, report):
        return {a.kind for a in report.advisories}

    def test_controlled_substance(self, session, records):
        report = SafetyEvaluator(session).evaluate(
            candidate(records.patient(), records.medication_id("oxycodone"))
        )
        assert AdvisoryKind.CONTROLLED_SUBSTANCE in self._kinds(report)
        assert report.requires_override is False

    def test_narrow_therapeutic_index(self, session, records):
        report = SafetyEvaluator(session).evaluate(
            candidate(records.patient(), records.medication_id("warfarin"))
        )
        assert AdvisoryKind.NARROW_THERAPEUTIC_INDEX in self._kinds(report)

    def test_dose_above_range(self, session, records):
        report = SafetyEvaluator(session).evaluate(
            candidate(records.patient(), records.medication_id("ibuprofen"), dose="1200mg")
        )
        assert AdvisoryKind.DOSE_ABOVE_RANGE in self._kinds(report)

    def test_dose_below_range(self, session, records):
        report = SafetyEvaluator(session).evaluate(
            candidate(records.patient(), records.medication_id("metformin"), dose="100 mg")
        )
        assert AdvisoryKind.DOSE_BELOW_RANGE in self._kinds(report)

    def test_duplicate_therapy(self, session, records):
        patient = records.patient()
        records.prescription(patient, "atorvastatin")
        report = SafetyEvaluator(session).evaluate(candidate(patient, records.medication_id("simvastatin")))
        assert AdvisoryKind.DUPLICATE_THERAPY in self._kinds(report)
        assert report.requires_override is False

    def test_duplicate_therapeutic_class(self, session, records):
        patient = records.patient()
        records.prescription(patient, "lisinopril")
        report = SafetyEvaluator(session).evaluate(candidate(patient, records.medication_id("amlodipine")))
        duplicates = [a for a in report.advisories if a.kind is AdvisoryKind.DUPLICATE_THERAPY]
        assert len(duplicates) == 1
        assert "lisinopril" in duplicates[0].message
        assert report.requires_override is False

    def test_unrelated_class_is_not_duplicate(self, session, records):
        patient = records.patient()
        records.prescription(patient, "metformin")
        report = SafetyEvaluator(session).evaluate(candidate(patient, records.medication_id("atorvastatin")))
        assert AdvisoryKind.DUPLICATE_THERAPY not in self._kinds(report)

    def test_parse_dose(self):
        assert parse_dose("2.5 mg") == 2.5
        assert parse_dose("one tablet") is None
        assert parse_dose(None) is None


class TestEvaluateExisting:

    def test_excludes_itself(self, session, records):
        patient = records.patient()
        records.prescription(patient, "warfarin")
        aspirin_rx = records.prescription(patient, "aspirin")

        report = SafetyEvaluator(session).evaluate_existing(aspirin_rx)

        assert len(report.alerts) == 1
        assert report.alerts[0].other_medication_name == "warfarin"

    def test_only_prescription(self, session, records):
        patient = records.patient()
        warfarin_rx = records.prescription(patient, "warfarin")
        assert SafetyEvaluator(session).evaluate_existing(warfarin_rx).alerts == ()

    def test_unknown_prescription(self, session):
        with pytest.raises(NotFoundError):
            SafetyEvaluator(session).evaluate_existing(424242)


class TestMedicationList:

    def test_check_list(self, session, records):
        ids = [records.medication_id(n) for n in ("warfarin", "aspirin", "acetaminophen")]
        report = SafetyEvaluator(session).check_medication_list(ids)
        assert len(report.alerts) == 1
        assert report.requires_override is True

    def test_check_list_with_allergy(self, session, records):
        patient = records.patient()
        records.allergy(patient, "sulfa")
        ids = [records.medication_id(n) for n in ("sulfamethoxazole/trimethoprim", "metformin")]
        report = SafetyEvaluator(session).check_medication_list(ids, patient)
        assert [a.kind for a in report.alerts] == [AlertKind.DRUG_ALLERGY]

    def test_unknown_medication_in_list(self, session, records):
        with pytest.raises(NotFoundError):
            SafetyEvaluator(session).check_medication_list([records.medication_id("aspirin"), 99999])
