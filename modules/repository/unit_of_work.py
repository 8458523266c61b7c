"""
Repository Module - Unit of Work
==================================
One session per logical request. Caches exactly one repository per
entity type, flushes all staged changes atomically in save(), and
translates SQLAlchemy failures into the data-layer error taxonomy.

Lifecycle: CREATED -> ACTIVE (session opened on first use) -> DISPOSED.
"""

import enum
import logging
from typing import Callable, Dict, Optional, Type, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from common.exceptions import InvalidArgument, InvalidOperation, ConcurrencyConflict, PersistenceError
from config.database import SessionLocal
from modules.repository.base import Repository
from modules.catalog.repository import ProductRepository
from modules.customer.repository import CustomerRepository
from modules.order.repository import OrderRepository

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger("shop.uow")


def _modified(session: Session) -> list:
    return [o for o in session.dirty if session.is_modified(o, include_collections=False)]


class UnitOfWorkState(str, enum.Enum):
    CREATED = "Created"
    ACTIVE = "Active"
    DISPOSED = "Disposed"


class Transaction:
    """
    Explicit transaction spanning several save() calls.
    As a context manager: commits on clean exit, rolls back on exception.
    """

    def __init__(self, uow: "UnitOfWork", isolation_level: Optional[str] = None):
        self._uow = uow
        self.isolation_level = isolation_level
        self.is_active = True

    def commit(self) -> None:
        if not self.is_active:
            raise InvalidOperation("Transaction is no longer active")
        try:
            self._uow._commit()
        finally:
            self._close()

    def rollback(self) -> None:
        if not self.is_active:
            return
        try:
            self._uow._rollback()
        finally:
            self._close()

    def _close(self) -> None:
        self.is_active = False
        if self._uow._transaction is self:
            self._uow._transaction = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if not self.is_active:
            return False
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        return False


class UnitOfWork:

    def __init__(self, session_factory: sessionmaker = None):
        self._session_factory = session_factory or SessionLocal
        self._session: Optional[Session] = None
        self._repositories: Dict[Type, Repository] = {}
        self._specialized: Dict[str, object] = {}
        self._transaction: Optional[Transaction] = None
        self.state = UnitOfWorkState.CREATED

    # ==========================================
    # Lifecycle
    # ==========================================

    def _ensure_usable(self) -> None:
        if self.state == UnitOfWorkState.DISPOSED:
            raise InvalidOperation("Unit of work has been disposed")

    @property
    def session(self) -> Session:
        self._ensure_usable()
        if self._session is None:
            self._session = self._session_factory()
            self.state = UnitOfWorkState.ACTIVE
        return self._session

    def close(self) -> None:
        """Release the session. Uncommitted work is rolled back. Safe to call twice."""
        if self.state == UnitOfWorkState.DISPOSED:
            return
        try:
            if self._session is not None:
                self._session.close()
        finally:
            self._repositories.clear()
            self._specialized.clear()
            self._transaction = None
            self._session = None
            self.state = UnitOfWorkState.DISPOSED

    def __enter__(self):
        self._ensure_usable()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # ==========================================
    # Repositories
    # ==========================================

    def repository(self, model: Type[T]) -> Repository[T]:
        """The one generic repository for this entity type in this unit."""
        if model is None:
            raise InvalidArgument("model is required")
        session = self.session
        repo = self._repositories.get(model)
        if repo is None:
            repo = Repository(model, session)
            self._repositories[model] = repo
        return repo

    def _specialized_repository(self, name: str, factory: Callable):
        self._ensure_usable()
        repo = self._specialized.get(name)
        if repo is None:
            repo = factory(self)
            self._specialized[name] = repo
        return repo

    @property
    def products(self) -> ProductRepository:
        return self._specialized_repository("products", ProductRepository)

    @property
    def customers(self) -> CustomerRepository:
        return self._specialized_repository("customers", CustomerRepository)

    @property
    def orders(self) -> OrderRepository:
        return self._specialized_repository("orders", OrderRepository)

    # ==========================================
    # Change tracking
    # ==========================================

    def has_changes(self) -> bool:
        if self._session is None:
            return False
        s = self._session
        return bool(s.new or s.deleted or _modified(s))

    def change_tracker_summary(self) -> str:
        """Debug view of staged entities grouped by state."""
        self._ensure_usable()
        if self._session is None:
            return "No tracked entities."
        s = self._session
        tracked = len(s.identity_map) + len(s.new)
        if not tracked:
            return "No tracked entities."
        modified = len(_modified(s))
        lines = [f"Tracked entities: {tracked}"]
        for label, count in (("Added", len(s.new)), ("Modified", modified), ("Deleted", len(s.deleted))):
            if count:
                lines.append(f"  {label}: {count}")
        return "\n".join(lines)

    def detach_all(self) -> None:
        """Drop every staged add/update/delete without touching the database."""
        self._ensure_usable()
        if self._session is None:
            return
        s = self._session
        staged = list(s.new) + list(s.deleted) + _modified(s)
        for obj in staged:
            if obj in s:
                s.expunge(obj)
        logger.debug(f"Detached {len(staged)} staged entities")

    # ==========================================
    # Save / transactions
    # ==========================================

    def save(self) -> int:
        """
        Flush all staged changes as one atomic write.
        Outside an explicit transaction the write is committed immediately.
        Returns the number of entities written.
        """
        self._ensure_usable()
        if self._session is None:
            return 0
        s = self._session
        written = len(s.new) + len(s.deleted) + len(_modified(s))
        try:
            s.flush()
            if self._transaction is None:
                s.commit()
        except StaleDataError as exc:
            self._abort()
            logger.warning(f"Concurrency conflict on save: {exc}")
            raise ConcurrencyConflict() from exc
        except SQLAlchemyError as exc:
            self._abort()
            logger.error("Persistence failure on save", exc_info=True)
            raise PersistenceError() from exc
        if written:
            logger.info(f"Saved {written} change(s)")
        return written

    def begin_transaction(self, isolation_level: Optional[str] = None) -> Transaction:
        """Open an explicit transaction boundary spanning several save() calls."""
        self._ensure_usable()
        if self._transaction is not None and self._transaction.is_active:
            raise InvalidOperation("A transaction is already open on this unit of work")
        s = self.session

        if isolation_level:
            if s.in_transaction():
                if self.has_changes():
                    raise InvalidOperation("Save staged changes before opening a transaction with an isolation level")
                # End the implicit read transaction so the isolation level applies from the first statement
                s.commit()
            s.connection(execution_options={"isolation_level": isolation_level})
        elif not s.in_transaction():
            s.begin()

        self._transaction = Transaction(self, isolation_level)
        logger.debug(f"Transaction started (isolation={isolation_level or 'default'})")
        return self._transaction

    def run_in_transaction(self, operation: Callable[[], R], isolation_level: Optional[str] = None) -> R:
        """Run operation inside a transaction: commit on success, roll back and re-raise on any failure."""
        if operation is None:
            raise InvalidArgument("operation is required")
        tx = self.begin_transaction(isolation_level)
        try:
            result = operation()
        except BaseException:
            tx.rollback()
            raise
        tx.commit()
        return result

    def _commit(self) -> None:
        try:
            self._session.commit()
        except StaleDataError as exc:
            self._abort()
            raise ConcurrencyConflict() from exc
        except SQLAlchemyError as exc:
            self._abort()
            logger.error("Persistence failure on commit", exc_info=True)
            raise PersistenceError() from exc
        logger.debug("Transaction committed")

    def _rollback(self) -> None:
        if self._session is not None:
            self._session.rollback()
        logger.info("Transaction rolled back")

    def _abort(self) -> None:
        """Roll back after a failed flush and close any explicit transaction."""
        if self._session is not None:
            self._session.rollback()
        if self._transaction is not None:
            self._transaction.is_active = False
            self._transaction = None

    def __repr__(self):
        return f"<UnitOfWork {self.state.value}>"

