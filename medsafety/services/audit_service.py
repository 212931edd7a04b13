"""
Audit Service - audit trail for committed prescribing decisions
"""
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from medsafety.config import settings
from medsafety.database.models import AuditLog

logger = logging.getLogger(__name__)

PRESCRIPTION_COMMITTED = "prescription_committed"


class AuditService:
    """
    Audit emission for the prescribing workflow

    Features:
    - Audit row written in the caller's transaction, so it commits or rolls
      back together with the prescription
    - Optional append-only JSONL mirror written after commit
    """

    def __init__(self, db: Session, log_path: Optional[Path] = None,
                 mirror_to_file: Optional[bool] = None):
        self.db = db
        self.log_path = log_path or settings.AUDIT_LOG_PATH
        self.mirror_to_file = settings.AUDIT_FILE_MIRROR if mirror_to_file is None else mirror_to_file
        self.enabled = settings.ENABLE_AUDIT_LOGGING
        self._pending: List[AuditLog] = []

    def record_prescription_committed(self, prescription_id: int, provider_id: int,
                                      patient_id: int, medication_id: int,
                                      overall_risk_level: str, override_used: bool,
                                      alert_ids: List[str] = None) -> Optional[AuditLog]:
        """Add the audit row for a committed prescription to the open transaction"""
        if not self.enabled:
            return None

        entry = AuditLog(
            action=PRESCRIPTION_COMMITTED,
            entity_type='prescription',
            entity_id=prescription_id,
            provider_id=provider_id,
            patient_id=patient_id,
            details={
                'medication_id': medication_id,
                'overall_risk_level': overall_risk_level,
                'override_used': override_used,
                'overridden_alert_ids': list(alert_ids or [])
            },
            timestamp=datetime.utcnow()
        )
        self.db.add(entry)
        self._pending.append(entry)
        return entry

    def after_commit(self):
        """Mirror entries of the committed transaction to the JSONL file"""
        pending, self._pending = self._pending, []
        if not self.mirror_to_file:
            return
        for entry in pending:
            self._write_to_file(entry)

    def _serialize(self, entry: AuditLog) -> Dict[str, Any]:
        return {
            'id': entry.id,
            'timestamp': entry.timestamp.isoformat(),
            'action': entry.action,
            'entity_type': entry.entity_type,
            'entity_id': entry.entity_id,
            'provider_id': entry.provider_id,
            'patient_id': entry.patient_id,
            'details': entry.details
        }

    def _write_to_file(self, entry: AuditLog):
        """Write audit entry to file for redundancy; the database row is authoritative"""
        try:
            self.log_path.mkdir(parents=True, exist_ok=True)
            log_file = self.log_path / f"audit_{entry.timestamp.strftime('%Y-%m-%d')}.jsonl"
            with open(log_file, 'a') as f:
                f.write(json.dumps(self._serialize(entry)) + '\n')
        except OSError as e:
            logger.error(f"Failed to write audit to file: {e}")
