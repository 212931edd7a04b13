"""
Tests for same-class alternative lookup.
"""
import pytest

from medsafety.exceptions import NotFoundError
from medsafety.models.safety import AlternativeContext
from medsafety.services.alternative_finder import AlternativeFinder


def names(medications):
    return [m.generic_name for m in medications]


class TestAlternatives:

    def test_same_class_sorted_by_name(self, session, records):
        result = AlternativeFinder(session).alternatives(records.medication_id("aspirin"))
        assert names(result) == ["celecoxib", "diclofenac", "ibuprofen", "naproxen"]
        assert all(m.therapeutic_class == "NSAID" for m in result)

    def test_blocking_alternatives_skipped_for_patient(self, session, records):
        patient = records.patient()
        records.prescription(patient, "warfarin")

        result = AlternativeFinder(session).alternatives(
            records.medication_id("aspirin"),
            context=AlternativeContext(patient_id=patient)
        )

        # ibuprofen, naproxen and diclofenac each carry a major interaction with warfarin
        assert names(result) == ["celecoxib"]

    def test_allergy_conflicts_skipped(self, session, records):
        patient = records.patient()
        records.allergy(patient, "Celebrex")

        result = AlternativeFinder(session).alternatives(
            records.medication_id("ibuprofen"),
            context=AlternativeContext(patient_id=patient)
        )
        assert "celecoxib" not in names(result)
        assert names(result) == ["aspirin", "diclofenac", "naproxen"]

    def test_non_blocking_conflicts_ranked_last(self, session, records):
        patient = records.patient()
        records.prescription(patient, "clopidogrel")

        result = AlternativeFinder(session).alternatives(
            records.medication_id("ibuprofen"),
            context=AlternativeContext(patient_id=patient)
        )
        # aspirin has a moderate interaction with clopidogrel
        assert names(result) == ["celecoxib", "diclofenac", "naproxen", "aspirin"]

    def test_explicit_class(self, session, records):
        result = AlternativeFinder(session).alternatives(
            records.medication_id("aspirin"), therapeutic_class="acid reducer"
        )
        assert names(result) == ["omeprazole", "pantoprazole"]

    def test_limit(self, session, records):
        result = AlternativeFinder(session, limit=2).alternatives(records.medication_id("aspirin"))
        assert names(result) == ["celecoxib", "diclofenac"]

    def test_class_with_single_member(self, session, records):
        assert AlternativeFinder(session).alternatives(records.medication_id("levothyroxine")) == []

    def test_unknown_medication(self, session):
        with pytest.raises(NotFoundError):
            AlternativeFinder(session).alternatives(99999)

    def test_unknown_patient(self, session, records):
        with pytest.raises(NotFoundError):
            AlternativeFinder(session).alternatives(
                records.medication_id("aspirin"), context=AlternativeContext(patient_id=99999)
            )
