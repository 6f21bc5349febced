"""
Module: warehouse_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors, plus
    the shared paging helper.
Architecture position: Kernel > Selectors.  May import from db/, domain/ and
    models/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit(), or session.flush().
    - DTO return convention: selectors return frozen dataclasses, never ORM
      instances.
"""

from abc import ABC

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from warehouse_kernel.domain.policy import DEFAULT_POLICY, StockPolicy


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs.  The caller owns the session.
    """

    def __init__(self, session: Session, policy: StockPolicy | None = None):
        self.session = session
        self.policy = policy or DEFAULT_POLICY

    def _clamp_paging(self, page, limit) -> tuple[int, int]:
        """Page is 1-based; limit is clamped to 1..policy.max_page_limit."""
        try:
            page = int(page) if page is not None else 1
        except (TypeError, ValueError):
            page = 1
        try:
            limit = int(limit) if limit is not None else self.policy.default_page_limit
        except (TypeError, ValueError):
            limit = self.policy.default_page_limit
        page = max(1, page)
        limit = min(max(1, limit), self.policy.max_page_limit)
        return page, limit

    def _count(self, query: Select) -> int:
        return self.session.execute(
            select(func.count()).select_from(query.order_by(None).subquery())
        ).scalar_one()
