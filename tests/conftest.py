"""
Shared fixtures: a seeded SQLite database per test plus small record factories.
"""
import itertools

import pytest

from medsafety.database.connection import DatabaseManager, create_initial_data
from medsafety.database.models import (
    Allergy, InteractionRule, Medication, Patient, Prescription, PrescriptionStatus, Provider
)

_uids = itertools.count(1)


class Records:
    """Creates and looks up rows in their own committed transactions"""

    def __init__(self, database: DatabaseManager):
        self.database = database

    def medication_id(self, generic_name: str) -> int:
        with self.database.session_scope() as db:
            return db.query(Medication).filter_by(generic_name=generic_name).one().id

    def patient(self, first_name: str = "Ada", last_name: str = "Lovelace") -> int:
        with self.database.session_scope() as db:
            patient = Patient(
                patient_uid=f"PAT-{next(_uids):05d}",
                first_name=first_name,
                last_name=last_name
            )
            db.add(patient)
            db.flush()
            return patient.id

    def provider(self, full_name: str = "Dr. Meredith Grey") -> int:
        with self.database.session_scope() as db:
            provider = Provider(full_name=full_name, department="Internal Medicine")
            db.add(provider)
            db.flush()
            return provider.id

    def allergy(self, patient_id: int, substance: str, active: bool = True) -> int:
        with self.database.session_scope() as db:
            allergy = Allergy(patient_id=patient_id, substance=substance, active=active)
            db.add(allergy)
            db.flush()
            return allergy.id

    def prescription(self, patient_id: int, generic_name: str, provider_id: int = None,
                     status: PrescriptionStatus = PrescriptionStatus.ACTIVE) -> int:
        medication_id = self.medication_id(generic_name)
        with self.database.session_scope() as db:
            prescription = Prescription(
                patient_id=patient_id,
                medication_id=medication_id,
                provider_id=provider_id,
                prescribed_name=generic_name,
                dose="5mg",
                frequency="QD",
                status=status
            )
            db.add(prescription)
            db.flush()
            return prescription.id

    def interaction(self, drug_a: str, drug_b: str) -> InteractionRule:
        id_a, id_b = self.medication_id(drug_a), self.medication_id(drug_b)
        with self.database.session_scope() as db:
            return (
                db.query(InteractionRule)
                .filter(
                    ((InteractionRule.medication_1_id == id_a) & (InteractionRule.medication_2_id == id_b))
                    | ((InteractionRule.medication_1_id == id_b) & (InteractionRule.medication_2_id == id_a))
                )
                .one()
            )

    def retire_interaction(self, drug_a: str, drug_b: str):
        rule_id = self.interaction(drug_a, drug_b).id
        with self.database.session_scope() as db:
            db.get(InteractionRule, rule_id).active = False

    def count(self, model) -> int:
        with self.database.session_scope() as db:
            return db.query(model).count()


@pytest.fixture
def database(tmp_path):
    """File-backed SQLite so worker threads get their own connections"""
    manager = DatabaseManager()
    manager.init_db(f"sqlite:///{tmp_path / 'medsafety.db'}")
    with manager.session_scope() as db:
        create_initial_data(db)
    yield manager
    manager.close()


@pytest.fixture
def session(database):
    db = database.get_session()
    yield db
    db.close()


@pytest.fixture
def records(database):
    return Records(database)


@pytest.fixture
def provider_id(records):
    return records.provider()
