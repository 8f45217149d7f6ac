"""Resolution of the weighted criteria that apply to an agent's calls.

Criteria are either global (no category, shown as "all") or tied to one
company category. Agents reference a primary category by id and may work in
further categories through ``user_categories``; their calls are evaluated
against the union. Agents created before categories existed only carry the
free-text ``custom_role_name``, which is normalized and looked up by key.
"""

from typing import List, Optional
import logging

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from .exceptions import StoreUnavailable
from .models import ALL_CATEGORIES, Category, Criterion, User

logger = logging.getLogger(__name__)


def normalize_category(name: Optional[str]) -> Optional[str]:
    """Trimmed, case-folded category key; None for blank input."""
    if name is None:
        return None
    key = name.strip().casefold()
    return key or None


def get_or_create_category(db: Session, company_id: int, name: str) -> Optional[Category]:
    """Return the company category for ``name``, creating it if needed.

    The "all" sentinel never gets a row: global criteria have no category.
    """
    key = normalize_category(name)
    if key is None or key == ALL_CATEGORIES:
        return None
    category = db.query(Category).filter(
        Category.company_id == company_id, Category.key == key
    ).first()
    if category is None:
        category = Category(company_id=company_id, name=name.strip(), key=key)
        db.add(category)
        db.flush()
    return category


class CriteriaSelector:
    def __init__(self, db: Session):
        self.db = db

    def select_criteria(self, company_id: int, agent_category: Optional[str]) -> List[Criterion]:
        """Active criteria for the category plus the global ones; every active criterion when no category."""
        key = normalize_category(agent_category)
        try:
            if key is None:
                return self._active(company_id).all()
            if key == ALL_CATEGORIES:
                return self._active(company_id).filter(Criterion.category_id.is_(None)).all()
            category = self.db.query(Category).filter(
                Category.company_id == company_id, Category.key == key
            ).first()
            if category is None:
                logger.info(f"Category '{agent_category}' unknown for company {company_id}; using global criteria only")
                return self._active(company_id).filter(Criterion.category_id.is_(None)).all()
            return self._for_category_ids(company_id, [category.id])
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Failed to load criteria for company {company_id}: {e}") from e

    def select_for_agent(self, agent: Optional[User], company_id: int) -> List[Criterion]:
        try:
            category_ids = self.agent_category_ids(agent)
            if category_ids:
                return self._for_category_ids(company_id, category_ids)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Failed to load criteria for company {company_id}: {e}") from e
        legacy = agent.custom_role_name if agent is not None else None
        return self.select_criteria(company_id, legacy)

    def _active(self, company_id: int):
        return self.db.query(Criterion).options(joinedload(Criterion.category_ref)).filter(
            Criterion.company_id == company_id,
            Criterion.is_active.is_(True),
        ).order_by(Criterion.id)

    @staticmethod
    def agent_category_ids(agent: Optional[User]) -> List[int]:
        if agent is None:
            return []
        ids = [agent.category_id] if agent.category_id is not None else []
        for category in agent.categories:
            if category.id not in ids:
                ids.append(category.id)
        return ids

    def _for_category_ids(self, company_id: int, category_ids: List[int]) -> List[Criterion]:
        return self._active(company_id).filter(
            or_(Criterion.category_id.in_(category_ids), Criterion.category_id.is_(None))
        ).all()
