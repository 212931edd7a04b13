"""
Interaction Catalog - symmetric drug-drug interaction lookup
"""
import logging
from typing import Iterable, List

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, joinedload

from medsafety.database.models import InteractionRule
from medsafety.services.reference_lookup import safety_data_lookup

logger = logging.getLogger(__name__)


class InteractionCatalog:
    """
    Read-only query over active InteractionRule rows.

    A pair stored as (A, B) is found whether A or B is the medication being
    checked. Retired rules (active = false) never appear.
    """

    def __init__(self, db: Session):
        self.db = db

    def lookup(self, medication_id: int, candidate_ids: Iterable[int]) -> List[InteractionRule]:
        """Rules between medication_id and any of candidate_ids, ordered by rule id"""
        others = sorted(set(candidate_ids) - {medication_id})
        if not others:
            return []

        with safety_data_lookup("interaction catalog"):
            rules = (
                self.db.query(InteractionRule)
                .options(
                    joinedload(InteractionRule.medication_1),
                    joinedload(InteractionRule.medication_2)
                )
                .filter(InteractionRule.active.is_(True))
                .filter(or_(
                    and_(InteractionRule.medication_1_id == medication_id,
                         InteractionRule.medication_2_id.in_(others)),
                    and_(InteractionRule.medication_2_id == medication_id,
                         InteractionRule.medication_1_id.in_(others))
                ))
                .order_by(InteractionRule.id)
                .all()
            )

        logger.debug(f"Interaction lookup for medication {medication_id} against {others}: {len(rules)} rule(s)")
        return rules

    def lookup_among(self, medication_ids: Iterable[int]) -> List[InteractionRule]:
        """Every active rule whose two medications are both in medication_ids"""
        ids = sorted(set(medication_ids))
        if len(ids) < 2:
            return []

        with safety_data_lookup("interaction catalog"):
            return (
                self.db.query(InteractionRule)
                .options(
                    joinedload(InteractionRule.medication_1),
                    joinedload(InteractionRule.medication_2)
                )
                .filter(
                    InteractionRule.active.is_(True),
                    InteractionRule.medication_1_id.in_(ids),
                    InteractionRule.medication_2_id.in_(ids)
                )
                .order_by(InteractionRule.id)
                .all()
            )
