"""
Database Models
SQLAlchemy models for the medication safety engine
"""
from datetime import datetime, date
import enum

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Date, Boolean, Float,
    ForeignKey, JSON, Enum as SQLEnum, Index, UniqueConstraint, CheckConstraint,
    event
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class PrescriptionStatus(enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    DISCONTINUED = "discontinued"
    ON_HOLD = "on_hold"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class AllergyType(enum.Enum):
    DRUG = "drug"
    FOOD = "food"
    ENVIRONMENTAL = "environmental"
    OTHER = "other"


class OverrideReasonCode(enum.Enum):
    PATIENT_TOLERANCE = "patient_tolerance"
    NO_ALTERNATIVES = "no_alternatives"
    BENEFIT_OUTWEIGHS_RISK = "benefit_outweighs_risk"
    MILD_REACTION_ACCEPTABLE = "mild_reaction_acceptable"
    MONITORING_IN_PLACE = "monitoring_in_place"
    PATIENT_PREFERENCE = "patient_preference"
    PREVIOUS_TOLERANCE = "previous_tolerance"
    EMERGENCY_SITUATION = "emergency_situation"
    OTHER = "other"


class Patient(Base):
    """Patient identity (demographics live in the records application)"""
    __tablename__ = 'patients'

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_uid = Column(String(50), unique=True, nullable=False, index=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    allergies = relationship("Allergy", back_populates="patient")
    prescriptions = relationship("Prescription", back_populates="patient")


class Provider(Base):
    """Prescribing provider"""
    __tablename__ = 'providers'

    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String(100), nullable=False)
    npi = Column(String(20), unique=True)
    department = Column(String(100))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Medication(Base):
    """Medication reference data, created by catalog import"""
    __tablename__ = 'medications'

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Names
    generic_name = Column(String(255), nullable=False, index=True)
    brand_name = Column(String(255), index=True)

    # Classification
    drug_class = Column(String(100))
    therapeutic_class = Column(String(100), index=True)

    # Dosage
    dosage_form = Column(String(50))
    strength = Column(String(100))
    typical_dose_min = Column(Float)
    typical_dose_max = Column(Float)
    typical_frequency = Column(String(50))

    # Regulatory
    controlled_substance = Column(Boolean, default=False)
    schedule = Column(String(10))  # C-I .. C-V

    # Status
    active = Column(Boolean, default=True)
    formulary = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Medication {self.generic_name}>"

    def to_dict(self):
        return {
            "id": self.id,
            "generic_name": self.generic_name,
            "brand_name": self.brand_name,
            "drug_class": self.drug_class,
            "therapeutic_class": self.therapeutic_class,
            "dosage_form": self.dosage_form,
            "strength": self.strength,
            "controlled_substance": bool(self.controlled_substance),
            "schedule": self.schedule
        }


class Allergy(Base):
    """Patient allergy record"""
    __tablename__ = 'allergies'

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey('patients.id'), nullable=False)
    substance = Column(String(255), nullable=False)
    allergy_type = Column(SQLEnum(AllergyType), default=AllergyType.DRUG)
    severity = Column(String(20))  # mild, moderate, severe, life_threatening
    reaction = Column(String(255))
    active = Column(Boolean, default=True)
    noted_at = Column(DateTime, default=datetime.utcnow)

    patient = relationship("Patient", back_populates="allergies")

    __table_args__ = (
        Index('idx_allergy_patient_active', 'patient_id', 'active'),
    )


class InteractionRule(Base):
    """Drug-drug interaction pair; symmetric, either medication may be stored first"""
    __tablename__ = 'drug_interactions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    medication_1_id = Column(Integer, ForeignKey('medications.id'), nullable=False)
    medication_2_id = Column(Integer, ForeignKey('medications.id'), nullable=False)

    severity_level = Column(Integer, nullable=False)  # 1=minor .. 4=contraindicated
    interaction_type = Column(String(50), nullable=False)  # pharmacodynamic, pharmacokinetic, ...
    contraindicated = Column(Boolean, default=False, nullable=False)

    description = Column(Text, nullable=False)
    mechanism = Column(Text)
    clinical_effect = Column(Text)
    management = Column(Text)
    evidence_level = Column(String(20))

    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    medication_1 = relationship("Medication", foreign_keys=[medication_1_id])
    medication_2 = relationship("Medication", foreign_keys=[medication_2_id])

    __table_args__ = (
        UniqueConstraint('medication_1_id', 'medication_2_id', name='unique_drug_pair'),
        CheckConstraint('medication_1_id != medication_2_id', name='no_self_interaction'),
        CheckConstraint('severity_level BETWEEN 1 AND 4', name='severity_level_range'),
        Index('idx_drug_interactions_med1', 'medication_1_id', 'active'),
        Index('idx_drug_interactions_med2', 'medication_2_id', 'active'),
    )

    def other_medication_id(self, medication_id: int) -> int:
        if self.medication_1_id == medication_id:
            return self.medication_2_id
        return self.medication_1_id


class DrugAllergyRule(Base):
    """Links a medication ingredient to the allergy substance it triggers"""
    __tablename__ = 'drug_allergy_interactions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    medication_id = Column(Integer, ForeignKey('medications.id'), nullable=False)
    allergy_substance = Column(String(255), nullable=False)
    ingredient = Column(String(255), nullable=False)

    severity_level = Column(Integer, nullable=False)  # 1=mild .. 4=life threatening
    reaction_type = Column(String(100))
    contraindicated = Column(Boolean, default=False, nullable=False)
    description = Column(Text, nullable=False)

    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('medication_id', 'allergy_substance', 'ingredient', name='unique_med_allergy_pair'),
        Index('idx_drug_allergy_lookup', 'medication_id', 'active'),
    )


class Prescription(Base):
    """Prescription row; status 'active' makes it part of the patient's active medication set"""
    __tablename__ = 'prescriptions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey('patients.id'), nullable=False)
    medication_id = Column(Integer, ForeignKey('medications.id'), nullable=False)
    provider_id = Column(Integer, ForeignKey('providers.id'))

    prescribed_name = Column(String(255), nullable=False)
    dose = Column(String(100), nullable=False)
    frequency = Column(String(100), nullable=False)
    route = Column(String(50), default='PO')
    duration_days = Column(Integer)
    quantity = Column(Integer)
    refills = Column(Integer, default=0)
    instructions = Column(Text)
    indication = Column(String(255))

    status = Column(SQLEnum(PrescriptionStatus), default=PrescriptionStatus.ACTIVE, nullable=False)

    # Safety decision at creation time
    overall_risk_level = Column(String(20), default="none")
    override_used = Column(Boolean, default=False, nullable=False)

    start_date = Column(Date, default=date.today)
    prescribed_at = Column(DateTime, default=datetime.utcnow)

    patient = relationship("Patient", back_populates="prescriptions")
    medication = relationship("Medication")
    override = relationship("PrescriptionOverride", back_populates="prescription", uselist=False)

    __table_args__ = (
        Index('idx_prescriptions_patient_status', 'patient_id', 'status'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "patient_id": self.patient_id,
            "medication_id": self.medication_id,
            "provider_id": self.provider_id,
            "prescribed_name": self.prescribed_name,
            "dose": self.dose,
            "frequency": self.frequency,
            "route": self.route,
            "duration_days": self.duration_days,
            "quantity": self.quantity,
            "refills": self.refills,
            "instructions": self.instructions,
            "indication": self.indication,
            "status": self.status.value if self.status else None,
            "overall_risk_level": self.overall_risk_level,
            "override_used": bool(self.override_used),
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "prescribed_at": self.prescribed_at.isoformat() if self.prescribed_at else None
        }


class PrescriptionOverride(Base):
    """Documented override of blocking alerts; written once with its prescription"""
    __tablename__ = 'prescription_overrides'

    id = Column(Integer, primary_key=True, autoincrement=True)
    prescription_id = Column(Integer, ForeignKey('prescriptions.id'), nullable=False, unique=True)
    patient_id = Column(Integer, ForeignKey('patients.id'), nullable=False)
    medication_id = Column(Integer, ForeignKey('medications.id'), nullable=False)
    provider_id = Column(Integer, ForeignKey('providers.id'), nullable=False)

    alert_ids = Column(JSON, nullable=False)  # alert ids from the SafetyReport
    interaction_ids = Column(JSON, nullable=False)  # InteractionRule ids among them
    reason_code = Column(SQLEnum(OverrideReasonCode), default=OverrideReasonCode.OTHER, nullable=False)
    override_reason = Column(Text, nullable=False)
    clinical_justification = Column(Text)
    monitoring_plan = Column(Text)

    override_date = Column(DateTime, default=datetime.utcnow, nullable=False)

    prescription = relationship("Prescription", back_populates="override")

    __table_args__ = (
        Index('idx_prescription_overrides_patient', 'patient_id'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "prescription_id": self.prescription_id,
            "alert_ids": list(self.alert_ids or []),
            "interaction_ids": list(self.interaction_ids or []),
            "reason_code": self.reason_code.value if self.reason_code else None,
            "override_reason": self.override_reason,
            "clinical_justification": self.clinical_justification,
            "monitoring_plan": self.monitoring_plan,
            "provider_id": self.provider_id,
            "override_date": self.override_date.isoformat() if self.override_date else None
        }


@event.listens_for(PrescriptionOverride, "before_update")
def _refuse_override_update(mapper, connection, target):
    raise ValueError(
        f"PrescriptionOverride {target.id} is immutable; amend by issuing a new prescription"
    )


class AuditLog(Base):
    """Audit trail of committed prescribing decisions"""
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True, autoincrement=True)

    action = Column(String(100), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer)

    provider_id = Column(Integer, ForeignKey('providers.id'))
    patient_id = Column(Integer, ForeignKey('patients.id'))

    details = Column(JSON)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_audit_timestamp', 'timestamp'),
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "provider_id": self.provider_id,
            "patient_id": self.patient_id,
            "details": self.details,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None
        }
