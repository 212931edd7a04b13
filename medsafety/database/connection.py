"""
Database Configuration
Supports SQLite (dev) and PostgreSQL (production)
"""
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from medsafety.config import settings
from medsafety.database.models import Base

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Database connection manager with support for multiple backends"""

    def __init__(self):
        self.engine = None
        self.SessionLocal = None
        self._initialized = False

    @property
    def dialect_name(self) -> str:
        if not self._initialized:
            self.init_db()
        return self.engine.dialect.name

    def init_db(self, database_url: str = None):
        """Initialize database connection"""
        if self._initialized:
            return

        if database_url is None:
            database_url = settings.DATABASE_URL

        # Handle PostgreSQL URL format from some cloud providers
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)

        if database_url.startswith("sqlite"):
            in_memory = database_url in ("sqlite://", "sqlite:///:memory:")
            engine_kwargs = {
                "connect_args": {
                    "check_same_thread": False,
                    # Busy wait for the write lock taken per prescribing transaction
                    "timeout": settings.PATIENT_LOCK_TIMEOUT_SECONDS,
                },
                "echo": settings.SQL_DEBUG
            }
            if in_memory:
                # One shared connection, otherwise every session sees an empty database
                engine_kwargs["poolclass"] = StaticPool
            else:
                db_path = make_url(database_url).database
                if db_path:
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(database_url, **engine_kwargs)

            @event.listens_for(self.engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()
        else:
            self.engine = create_engine(
                database_url,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
                echo=settings.SQL_DEBUG
            )

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine
        )

        Base.metadata.create_all(bind=self.engine)

        self._initialized = True
        safe_url = database_url.split('@')[-1] if '@' in database_url else database_url
        logger.info(f"Database initialized: {safe_url}")

    def get_session(self) -> Session:
        """Get a new database session"""
        if not self._initialized:
            self.init_db()
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations"""
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self):
        """Close database connection"""
        if self.engine:
            self.engine.dispose()
            self._initialized = False

    def init_database(self, seed: bool = None):
        """Initialize database with tables and, optionally, the reference catalog"""
        self.init_db()
        if seed is None:
            seed = settings.SEED_REFERENCE_DATA
        if seed:
            with self.session_scope() as db:
                create_initial_data(db)


# Global database manager instance
db_manager = DatabaseManager()


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency for database sessions"""
    db = db_manager.get_session()
    try:
        yield db
    finally:
        db.close()


# (generic, brand, drug class, therapeutic class, form, strength, dose min, dose max, frequency, controlled, schedule)
REFERENCE_MEDICATIONS = [
    ("lisinopril", "Prinivil", "ACE Inhibitor", "Antihypertensive", "tablet", "10mg", 5, 40, "QD", False, None),
    ("amlodipine", "Norvasc", "Calcium Channel Blocker", "Antihypertensive", "tablet", "5mg", 2.5, 10, "QD", False, None),
    ("metoprolol", "Lopressor", "Beta Blocker", "Antihypertensive", "tablet", "25mg", 25, 400, "BID", False, None),
    ("spironolactone", "Aldactone", "Potassium-sparing Diuretic", "Antihypertensive", "tablet", "25mg", 25, 100, "QD", False, None),
    ("atorvastatin", "Lipitor", "Statin", "Lipid Lowering", "tablet", "20mg", 10, 80, "QD", False, None),
    ("simvastatin", "Zocor", "Statin", "Lipid Lowering", "tablet", "20mg", 5, 40, "QD", False, None),
    ("warfarin", "Coumadin", "Vitamin K Antagonist", "Anticoagulant", "tablet", "5mg", 1, 10, "QD", False, None),
    ("clopidogrel", "Plavix", "P2Y12 Inhibitor", "Antiplatelet", "tablet", "75mg", 75, 75, "QD", False, None),
    ("metformin", "Glucophage", "Biguanide", "Antidiabetic", "tablet", "500mg", 500, 2000, "BID", False, None),
    ("glipizide", "Glucotrol", "Sulfonylurea", "Antidiabetic", "tablet", "5mg", 2.5, 20, "BID", False, None),
    ("insulin glargine", "Lantus", "Long-acting Insulin", "Antidiabetic", "injection", "100 units/ml", 10, 100, "QD", False, None),
    ("amoxicillin", "Amoxil", "Penicillin", "Antibiotic", "capsule", "500mg", 250, 1000, "TID", False, None),
    ("ampicillin", "Principen", "Penicillin", "Antibiotic", "capsule", "500mg", 250, 500, "QID", False, None),
    ("azithromycin", "Zithromax", "Macrolide", "Antibiotic", "tablet", "250mg", 250, 500, "QD", False, None),
    ("clarithromycin", "Biaxin", "Macrolide", "Antibiotic", "tablet", "500mg", 250, 500, "BID", False, None),
    ("ciprofloxacin", "Cipro", "Fluoroquinolone", "Antibiotic", "tablet", "500mg", 250, 750, "BID", False, None),
    ("doxycycline", "Vibramycin", "Tetracycline", "Antibiotic", "capsule", "100mg", 100, 200, "BID", False, None),
    ("sulfamethoxazole/trimethoprim", "Bactrim", "Sulfonamide", "Antibiotic", "tablet", "800mg/160mg", 800, 1600, "BID", False, None),
    ("acetaminophen", "Tylenol", "Analgesic", "Analgesic", "tablet", "500mg", 325, 1000, "QID", False, None),
    ("aspirin", "Bayer", "Salicylate", "NSAID", "tablet", "81mg", 81, 325, "QD", False, None),
    ("ibuprofen", "Advil", "Propionic Acid Derivative", "NSAID", "tablet", "400mg", 200, 800, "TID", False, None),
    ("naproxen", "Aleve", "Propionic Acid Derivative", "NSAID", "tablet", "220mg", 220, 660, "BID", False, None),
    ("diclofenac", "Voltaren", "Acetic Acid Derivative", "NSAID", "tablet", "50mg", 50, 150, "BID", False, None),
    ("celecoxib", "Celebrex", "COX-2 Inhibitor", "NSAID", "capsule", "200mg", 100, 400, "QD", False, None),
    ("oxycodone", "OxyContin", "Opioid", "Opioid Analgesic", "tablet", "5mg", 5, 80, "QID", True, "C-II"),
    ("tramadol", "Ultram", "Opioid-like", "Opioid Analgesic", "tablet", "50mg", 50, 400, "QID", True, "C-IV"),
    ("lorazepam", "Ativan", "Benzodiazepine", "Anxiolytic", "tablet", "0.5mg", 0.5, 6, "TID", True, "C-IV"),
    ("alprazolam", "Xanax", "Benzodiazepine", "Anxiolytic", "tablet", "0.25mg", 0.25, 4, "TID", True, "C-IV"),
    ("sertraline", "Zoloft", "SSRI", "Antidepressant", "tablet", "50mg", 25, 200, "QD", False, None),
    ("escitalopram", "Lexapro", "SSRI", "Antidepressant", "tablet", "10mg", 5, 20, "QD", False, None),
    ("omeprazole", "Prilosec", "PPI", "Acid Reducer", "capsule", "20mg", 10, 40, "QD", False, None),
    ("pantoprazole", "Protonix", "PPI", "Acid Reducer", "tablet", "40mg", 20, 40, "QD", False, None),
    ("levothyroxine", "Synthroid", "Thyroid Hormone", "Endocrine", "tablet", "50mcg", 25, 300, "QD", False, None),
    ("digoxin", "Lanoxin", "Cardiac Glycoside", "Antiarrhythmic", "tablet", "0.125mg", 0.125, 0.25, "QD", False, None),
    ("lithium", "Lithobid", "Mood Stabilizer", "Antimanic", "tablet", "300mg", 300, 1800, "TID", False, None),
]

# (drug a, drug b, severity 1..4, interaction type, contraindicated, description, management)
REFERENCE_INTERACTIONS = [
    ("warfarin", "aspirin", 4, "pharmacodynamic", True,
     "Increased risk of bleeding when aspirin is combined with warfarin",
     "Avoid combination. If unavoidable, use lowest aspirin dose and monitor INR closely"),
    ("warfarin", "ibuprofen", 3, "pharmacodynamic", False,
     "NSAIDs increase bleeding risk with warfarin",
     "Avoid if possible. Use acetaminophen for pain relief"),
    ("warfarin", "naproxen", 3, "pharmacodynamic", False,
     "NSAIDs increase bleeding risk with warfarin",
     "Avoid if possible. Use acetaminophen for pain relief"),
    ("warfarin", "diclofenac", 3, "pharmacodynamic", False,
     "NSAIDs increase bleeding risk with warfarin",
     "Avoid if possible. Use acetaminophen for pain relief"),
    ("warfarin", "clopidogrel", 3, "pharmacodynamic", False,
     "Increased bleeding risk with dual anticoagulant/antiplatelet therapy",
     "Monitor closely for signs of bleeding. Consider PPI for GI protection"),
    ("aspirin", "clopidogrel", 2, "pharmacodynamic", False,
     "Dual antiplatelet therapy increases bleeding risk",
     "Often prescribed together intentionally. Monitor for bleeding"),
    ("ibuprofen", "aspirin", 2, "pharmacodynamic", False,
     "Ibuprofen may reduce cardioprotective effect of low-dose aspirin",
     "Take aspirin 30 minutes before ibuprofen or use alternative analgesic"),
    ("lisinopril", "spironolactone", 3, "pharmacodynamic", False,
     "Risk of hyperkalemia",
     "Monitor potassium levels closely. Consider alternative"),
    ("lisinopril", "ibuprofen", 2, "pharmacodynamic", False,
     "NSAIDs may reduce the antihypertensive effect of ACE inhibitors and impair kidney function",
     "Monitor blood pressure and kidney function"),
    ("metoprolol", "amlodipine", 2, "pharmacodynamic", False,
     "Additive effects on heart rate and blood pressure",
     "Monitor heart rate and blood pressure closely. Start with lower doses"),
    ("lorazepam", "oxycodone", 4, "pharmacodynamic", True,
     "Concurrent use significantly increases risk of respiratory depression, sedation, and death",
     "Avoid concurrent use. If necessary, use lowest doses and monitor closely"),
    ("alprazolam", "tramadol", 3, "pharmacodynamic", False,
     "CNS and respiratory depression risk",
     "Avoid combination. If necessary, use lowest doses and monitor"),
    ("sertraline", "tramadol", 3, "pharmacodynamic", False,
     "Risk of serotonin syndrome",
     "Use alternative analgesic. Monitor for serotonin syndrome symptoms"),
    ("escitalopram", "tramadol", 3, "pharmacodynamic", False,
     "Risk of serotonin syndrome",
     "Avoid combination if possible"),
    ("sertraline", "ibuprofen", 2, "pharmacodynamic", False,
     "SSRIs combined with NSAIDs may increase risk of bleeding",
     "Monitor for signs of bleeding. Consider gastroprotection with PPI"),
    ("simvastatin", "clarithromycin", 4, "pharmacokinetic", True,
     "CYP3A4 inhibition dramatically increases simvastatin levels; severe myopathy risk",
     "Do not use together. Use alternative antibiotic"),
    ("atorvastatin", "clarithromycin", 3, "pharmacokinetic", False,
     "Increased statin levels and myopathy risk",
     "Use alternative antibiotic or temporarily hold statin"),
    ("atorvastatin", "azithromycin", 2, "pharmacokinetic", False,
     "Macrolide antibiotics may increase statin levels",
     "Monitor for muscle pain or weakness"),
    ("metformin", "ciprofloxacin", 2, "pharmacokinetic", False,
     "Fluoroquinolones may cause dysglycemia in patients on metformin",
     "Monitor blood glucose"),
    ("levothyroxine", "omeprazole", 1, "pharmacokinetic", False,
     "PPIs may reduce levothyroxine absorption",
     "Monitor thyroid levels. May need dose adjustment"),
    ("clopidogrel", "omeprazole", 2, "pharmacokinetic", False,
     "Omeprazole may reduce clopidogrel activation",
     "Use pantoprazole if a PPI is needed"),
    ("digoxin", "clarithromycin", 3, "pharmacokinetic", False,
     "Clarithromycin increases digoxin levels",
     "Monitor digoxin levels and for toxicity"),
]

# (medication, allergy substance, ingredient, severity 1..4, reaction type, contraindicated, description)
REFERENCE_ALLERGY_RULES = [
    ("amoxicillin", "penicillin", "amoxicillin", 3, "hypersensitivity", True,
     "Penicillin-allergic patients may have cross-reactivity with amoxicillin"),
    ("ampicillin", "penicillin", "ampicillin", 3, "hypersensitivity", True,
     "Cross-reactivity expected in penicillin-allergic patients"),
    ("sulfamethoxazole/trimethoprim", "sulfa", "sulfamethoxazole", 2, "hypersensitivity", True,
     "Sulfa-containing antibiotics contraindicated in patients with sulfa allergies"),
    ("celecoxib", "sulfa", "celecoxib", 2, "hypersensitivity", False,
     "Celecoxib contains a sulfonamide moiety"),
    ("ibuprofen", "aspirin", "ibuprofen", 2, "cross_sensitivity", False,
     "Cross-sensitivity between aspirin and other NSAIDs is common"),
    ("naproxen", "aspirin", "naproxen", 2, "cross_sensitivity", False,
     "NSAIDs may cause similar reactions in aspirin-sensitive patients"),
    ("diclofenac", "aspirin", "diclofenac", 2, "cross_sensitivity", False,
     "NSAIDs may cause similar reactions in aspirin-sensitive patients"),
    ("atorvastatin", "statin", "atorvastatin", 1, "muscle_toxicity", False,
     "Patients with previous statin-induced muscle symptoms may react to other statins"),
    ("simvastatin", "statin", "simvastatin", 1, "muscle_toxicity", False,
     "Patients with previous statin-induced muscle symptoms may react to other statins"),
]


def create_initial_data(db: Session):
    """Seed the reference catalog for a new database"""
    from medsafety.database.models import Medication, InteractionRule, DrugAllergyRule

    by_name = {m.generic_name: m for m in db.query(Medication).all()}

    for (generic, brand, drug_class, therapeutic_class, form, strength,
         dose_min, dose_max, frequency, controlled, schedule) in REFERENCE_MEDICATIONS:
        if generic in by_name:
            continue
        medication = Medication(
            generic_name=generic,
            brand_name=brand,
            drug_class=drug_class,
            therapeutic_class=therapeutic_class,
            dosage_form=form,
            strength=strength,
            typical_dose_min=dose_min,
            typical_dose_max=dose_max,
            typical_frequency=frequency,
            controlled_substance=controlled,
            schedule=schedule
        )
        db.add(medication)
        by_name[generic] = medication
    db.flush()

    existing_pairs = {
        frozenset((r.medication_1_id, r.medication_2_id))
        for r in db.query(InteractionRule).all()
    }
    for drug_a, drug_b, severity, interaction_type, contraindicated, description, management in REFERENCE_INTERACTIONS:
        med_a, med_b = by_name[drug_a], by_name[drug_b]
        if frozenset((med_a.id, med_b.id)) in existing_pairs:
            continue
        db.add(InteractionRule(
            medication_1_id=med_a.id,
            medication_2_id=med_b.id,
            severity_level=severity,
            interaction_type=interaction_type,
            contraindicated=contraindicated,
            description=description,
            management=management,
            evidence_level="established"
        ))

    existing_allergy_rules = {
        (r.medication_id, r.allergy_substance, r.ingredient)
        for r in db.query(DrugAllergyRule).all()
    }
    for medication_name, substance, ingredient, severity, reaction, contraindicated, description in REFERENCE_ALLERGY_RULES:
        medication = by_name[medication_name]
        if (medication.id, substance, ingredient) in existing_allergy_rules:
            continue
        db.add(DrugAllergyRule(
            medication_id=medication.id,
            allergy_substance=substance,
            ingredient=ingredient,
            severity_level=severity,
            reaction_type=reaction,
            contraindicated=contraindicated,
            description=description
        ))

    db.flush()
    logger.info(f"Reference catalog seeded: {len(by_name)} medications")
