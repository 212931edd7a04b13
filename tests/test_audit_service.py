"""
Tests for audit row emission and the JSONL mirror.
"""
import json

from medsafety.database.models import AuditLog
from medsafety.services.audit_service import PRESCRIPTION_COMMITTED, AuditService


def record(audit, records, patient, provider_id):
    return audit.record_prescription_committed(
        prescription_id=None,
        provider_id=provider_id,
        patient_id=patient,
        medication_id=records.medication_id("aspirin"),
        overall_risk_level="contraindicated",
        override_used=True,
        alert_ids=["drug_drug:1"]
    )


class TestAuditService:

    def test_row_commits_with_transaction(self, database, records, provider_id):
        patient = records.patient()
        with database.session_scope() as db:
            record(AuditService(db), records, patient, provider_id)

        with database.session_scope() as db:
            entry = db.query(AuditLog).one()
            assert entry.action == PRESCRIPTION_COMMITTED
            assert entry.details["overridden_alert_ids"] == ["drug_drug:1"]

    def test_row_rolls_back_with_transaction(self, database, records, provider_id):
        patient = records.patient()
        db = database.get_session()
        try:
            record(AuditService(db), records, patient, provider_id)
            db.flush()
            db.rollback()
        finally:
            db.close()
        assert records.count(AuditLog) == 0

    def test_file_mirror_after_commit(self, database, records, provider_id, tmp_path):
        patient = records.patient()
        log_dir = tmp_path / "audit"
        with database.session_scope() as db:
            audit = AuditService(db, log_path=log_dir, mirror_to_file=True)
            record(audit, records, patient, provider_id)
            db.flush()
            assert not log_dir.exists()
        audit.after_commit()

        files = list(log_dir.glob("audit_*.jsonl"))
        assert len(files) == 1
        lines = files[0].read_text().splitlines()
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["action"] == PRESCRIPTION_COMMITTED
        assert entry["patient_id"] == patient

    def test_mirror_disabled(self, database, records, provider_id, tmp_path):
        patient = records.patient()
        log_dir = tmp_path / "audit"
        with database.session_scope() as db:
            audit = AuditService(db, log_path=log_dir, mirror_to_file=False)
            record(audit, records, patient, provider_id)
        audit.after_commit()
        assert not log_dir.exists()
