"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor (session, clock, policy) and the unit
    of work every public service method runs inside.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Every service in ``warehouse_kernel/services/`` extends this class.

Invariants enforced:
    ALL_OR_NOTHING -- a public operation commits once on success and rolls
        back everything on any exception.  Services that call each other on
        the same session nest: only the outermost unit of work commits, the
        inner ones flush.
    With ``auto_commit=False`` the outermost unit of work flushes too and
    the caller (e.g. ``session_scope()``) owns commit/rollback.

Failure modes:
    - Any exception raised inside ``_unit_of_work`` rolls the session back
      (outermost level only) and is re-raised unchanged.

Audit relevance:
    Rollbacks are logged as ``transaction_rolled_back`` with the operation
    name and exception details.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from warehouse_kernel.domain.clock import Clock, SystemClock
from warehouse_kernel.domain.policy import DEFAULT_POLICY, StockPolicy
from warehouse_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.base")

# Session.info key holding the current unit-of-work nesting depth
_UOW_DEPTH_KEY = "warehouse_kernel.uow_depth"


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller.  Public methods
        wrap their work in ``self._unit_of_work(name)``.

    Non-goals:
        - Does NOT provide query-only (read) methods -- those belong
          in ``warehouse_kernel/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: StockPolicy | None = None,
        auto_commit: bool = True,
    ):
        """
        Args:
            session: SQLAlchemy session for database operations.
            clock: Time source; defaults to SystemClock.
            policy: Tunable rules; defaults to DEFAULT_POLICY.
            auto_commit: If False, never commit; the caller owns the
                transaction boundary.
        """
        self.session = session
        self.clock = clock or SystemClock()
        self.policy = policy or DEFAULT_POLICY
        self.auto_commit = auto_commit

    @contextmanager
    def _unit_of_work(self, operation: str, **context) -> Iterator[None]:
        """Run a block as one transaction (or as part of the enclosing one)."""
        depth = self.session.info.get(_UOW_DEPTH_KEY, 0)
        self.session.info[_UOW_DEPTH_KEY] = depth + 1
        outermost = depth == 0
        try:
            with LogContext.bind(operation=operation if outermost else None, **context):
                yield
                if outermost and self.auto_commit:
                    self.session.commit()
                else:
                    self.session.flush()
        except Exception:
            if outermost and self.auto_commit:
                self.session.rollback()
                logger.warning(
                    "transaction_rolled_back",
                    extra={"operation": operation},
                    exc_info=True,
                )
            raise
        finally:
            self.session.info[_UOW_DEPTH_KEY] = depth
