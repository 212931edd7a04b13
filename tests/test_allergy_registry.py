"""
Tests for active allergy lookup and medication matching.
"""
from medsafety.database.models import Medication
from medsafety.models.safety import InteractionSeverity
from medsafety.services.allergy_registry import AllergyMatcher, AllergyRegistry, normalize_substance


class TestAllergyRegistry:

    def test_active_substances_normalized(self, session, records):
        patient = records.patient()
        records.allergy(patient, "  Penicillin ")
        records.allergy(patient, "SULFA")
        assert AllergyRegistry(session).active_substances(patient) == frozenset({"penicillin", "sulfa"})

    def test_inactive_allergy_ignored(self, session, records):
        patient = records.patient()
        records.allergy(patient, "penicillin", active=False)
        assert AllergyRegistry(session).active_substances(patient) == frozenset()

    def test_other_patients_not_visible(self, session, records):
        patient, other = records.patient(), records.patient()
        records.allergy(other, "penicillin")
        assert AllergyRegistry(session).active_substances(patient) == frozenset()

    def test_normalize_substance(self):
        assert normalize_substance(" Latex ") == "latex"
        assert normalize_substance(None) == ""


class TestAllergyMatcher:

    def _medication(self, session, name):
        return session.query(Medication).filter_by(generic_name=name).one()

    def test_ingredient_rule_match(self, session):
        amoxicillin = self._medication(session, "amoxicillin")
        matches = AllergyMatcher(session).match(amoxicillin, {"penicillin"})
        assert len(matches) == 1
        assert matches[0].match_type == "ingredient"
        assert matches[0].severity == InteractionSeverity.MAJOR
        assert matches[0].contraindicated is True

    def test_case_insensitive(self, session):
        amoxicillin = self._medication(session, "amoxicillin")
        matches = AllergyMatcher(session).match(amoxicillin, {"PeniCILLIN"})
        assert [m.substance for m in matches] == ["penicillin"]

    def test_direct_name_match(self, session):
        warfarin = self._medication(session, "warfarin")
        matches = AllergyMatcher(session).match(warfarin, {"Warfarin"})
        assert len(matches) == 1
        assert matches[0].match_type == "direct"
        assert matches[0].contraindicated is True

    def test_brand_name_match(self, session):
        ibuprofen = self._medication(session, "ibuprofen")
        matches = AllergyMatcher(session).match(ibuprofen, {"advil"})
        assert [m.match_type for m in matches] == ["direct"]

    def test_unrelated_substance(self, session):
        metformin = self._medication(session, "metformin")
        assert AllergyMatcher(session).match(metformin, {"penicillin", "latex"}) == []

    def test_no_substances(self, session):
        metformin = self._medication(session, "metformin")
        assert AllergyMatcher(session).match(metformin, []) == []
