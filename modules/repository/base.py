"""
Repository Module - Generic Repository
========================================
CRUD + composable queries for any mapped entity type.

Writes are staged on the session only; UnitOfWork.save() flushes and
commits them. Reads return EntityQuery objects (unexecuted) or
detached entities.
"""

import logging
from typing import Callable, Dict, Generic, Iterable, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import inspect
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from common.exceptions import InvalidArgument, ConcurrencyConflict
from modules.repository.query import EntityQuery, OrderKey, release

T = TypeVar("T")

logger = logging.getLogger("shop.repository")

# model -> check(session, entity_id); raises InvalidArgument to refuse a delete
_DELETE_GUARDS: Dict[Type, Callable[[Session, int], None]] = {}


def delete_guard(model: Type):
    """Register a pre-delete check that every repository of this model runs."""
    def register(check):
        _DELETE_GUARDS[model] = check
        return check
    return register


class Repository(Generic[T]):
    """Generic repository over one entity type, bound to one session."""

    def __init__(self, model: Type[T], session: Session):
        if session is None:
            raise InvalidArgument("session is required")
        self.model = model
        self.session = session

    def __repr__(self):
        return f"<Repository {self.model.__name__}>"

    # ==========================================
    # Queries (unexecuted)
    # ==========================================

    def get_all(self) -> EntityQuery[T]:
        return EntityQuery(self.session, self.model)

    def get_where(self, predicate) -> EntityQuery[T]:
        if predicate is None:
            raise InvalidArgument("Filter predicate is required")
        return self.get_all().where(predicate)

    def get_with_related(self, *relation_paths: str) -> EntityQuery[T]:
        return self.get_all().include(*relation_paths)

    def get_where_with_related(self, predicate, *relation_paths: str) -> EntityQuery[T]:
        if predicate is None:
            raise InvalidArgument("Filter predicate is required")
        return self.get_all().include(*relation_paths).where(predicate)

    def get_advanced(
        self,
        predicate=None,
        order_key: Optional[OrderKey] = None,
        ascending: bool = True,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        include: Sequence[str] = (),
    ) -> EntityQuery[T]:
        """includes -> filter -> ordering -> skip -> take, all optional."""
        query = self.get_all()
        if include:
            query = query.include(*include)
        if predicate is not None:
            query = query.where(predicate)
        if order_key is not None:
            query = query.order_by(order_key, ascending)
        if skip is not None:
            query = query.skip(skip)
        if take is not None:
            query = query.take(take)
        return query

    def ordered_page(
        self,
        order_key: OrderKey,
        ascending: bool = True,
        skip: Optional[int] = None,
        take: Optional[int] = None,
        *relation_paths: str,
        predicate=None,
    ) -> EntityQuery[T]:
        if order_key is None:
            raise InvalidArgument("Order key is required")
        return self.get_advanced(predicate, order_key, ascending, skip, take, relation_paths)

    # ==========================================
    # Executing reads
    # ==========================================

    def get_by_id(self, entity_id: int, *relation_paths: str) -> Optional[T]:
        """Primary-key lookup (identity map first). Returns None when absent."""
        if entity_id is None:
            return None
        if relation_paths:
            pk = self.get_all().primary_key
            return self.get_all().include(*relation_paths).where(pk == entity_id).first()
        entity = self.session.get(self.model, entity_id)
        if entity is not None:
            release(self.session, [entity])
        return entity

    def exists(self, predicate) -> bool:
        return self.get_where(predicate).exists()

    def count(self, predicate=None) -> int:
        query = self.get_all() if predicate is None else self.get_where(predicate)
        return query.count()

    def get_paged(
        self, page_number: int, page_size: int, order_key: OrderKey, ascending: bool = True,
    ) -> List[T]:
        if page_number is None or page_number < 1:
            raise InvalidArgument("Page number must be greater than 0")
        if page_size is None or page_size < 1:
            raise InvalidArgument("Page size must be greater than 0")
        if order_key is None:
            raise InvalidArgument("Order key is required")
        return self.get_advanced(
            order_key=order_key,
            ascending=ascending,
            skip=(page_number - 1) * page_size,
            take=page_size,
        ).all()

    # ==========================================
    # Staged writes
    # ==========================================

    def reset_identity(self, entity: T) -> None:
        """Clear primary key and version so the store assigns fresh ones."""
        mapper = inspect(self.model)
        for column in mapper.primary_key:
            setattr(entity, mapper.get_property_by_column(column).key, None)
        if mapper.version_id_col is not None:
            setattr(entity, mapper.get_property_by_column(mapper.version_id_col).key, None)

    def add(self, entity: T) -> T:
        """Stage an insert. Any client-supplied identity is discarded."""
        if entity is None:
            raise InvalidArgument("entity is required")
        state = inspect(entity)
        if state.pending:
            return entity
        if not state.transient:
            raise InvalidArgument(f"{self.model.__name__} is already persisted; use update()")
        self.reset_identity(entity)
        self.session.add(entity)
        logger.debug(f"Staged insert of {self.model.__name__}")
        return entity

    def add_range(self, entities: Iterable[T]) -> List[T]:
        if entities is None:
            raise InvalidArgument("entities are required")
        return [self.add(e) for e in entities]

    def update(self, entity: T) -> T:
        """
        Stage a full-row update keyed by identity.
        Detached entities are re-attached so their own change history (and
        loaded version) drive the UPDATE; transient ones are merged by key.
        """
        if entity is None:
            raise InvalidArgument("entity is required")
        state = inspect(entity)

        if state.session_id is not None and state.session is self.session:
            return entity

        if state.detached and self.session.identity_map.get(state.key) is None:
            self.session.add(entity)
            logger.debug(f"Staged update of {self.model.__name__} {state.identity}")
            return entity

        if state.transient and inspect(self.model).primary_key_from_instance(entity)[0] is None:
            raise InvalidArgument(f"{self.model.__name__} has no identity; use add()")

        try:
            merged = self.session.merge(entity)
        except StaleDataError as exc:
            raise ConcurrencyConflict() from exc
        if inspect(merged).pending:
            self.session.expunge(merged)
            raise InvalidArgument(f"{self.model.__name__} does not exist")
        logger.debug(f"Staged update of {self.model.__name__} {inspect(merged).identity}")
        return merged

    def update_range(self, entities: Iterable[T]) -> List[T]:
        if entities is None:
            raise InvalidArgument("entities are required")
        return [self.update(e) for e in entities]

    def delete(self, entity: T) -> None:
        if entity is None:
            raise InvalidArgument("entity is required")
        state = inspect(entity)

        if state.pending and state.session is self.session:
            # Never written: dropping the staged insert is the whole delete
            self.session.expunge(entity)
            return

        self._check_delete(inspect(self.model).primary_key_from_instance(entity)[0])

        target = entity
        if state.transient:
            key = inspect(self.model).primary_key_from_instance(entity)[0]
            target = self.session.get(self.model, key) if key is not None else None
            if target is None:
                raise InvalidArgument(f"{self.model.__name__} does not exist")
        elif state.detached:
            attached = self.session.identity_map.get(state.key)
            if attached is None:
                self.session.add(entity)
            else:
                target = attached

        self.session.delete(target)
        logger.debug(f"Staged delete of {self.model.__name__} {inspect(target).identity}")

    def delete_by_id(self, entity_id: int) -> bool:
        """Stage removal of the row with this id. False (nothing staged) when absent."""
        if entity_id is None:
            return False
        entity = self.session.get(self.model, entity_id)
        if entity is None:
            return False
        self._check_delete(entity_id)
        self.session.delete(entity)
        logger.debug(f"Staged delete of {self.model.__name__} {entity_id}")
        return True

    def _check_delete(self, entity_id) -> None:
        guard = _DELETE_GUARDS.get(self.model)
        if guard is not None and entity_id is not None:
            guard(self.session, entity_id)

    def delete_range(self, entities: Iterable[T]) -> None:
        if entities is None:
            raise InvalidArgument("entities are required")
        for entity in list(entities):
            self.delete(entity)


class SpecializedRepository:
    """
    Named queries for one entity type, composed over the unit's cached
    generic repository. Anything not defined here is forwarded to it.
    """

    model: Type = None

    def __init__(self, uow):
        self._uow = uow
        self.entities: Repository = uow.repository(self.model)

    def __getattr__(self, name):
        if name in ("entities", "_uow"):
            raise AttributeError(name)
        return getattr(self.entities, name)

    def __repr__(self):
        return f"<{type(self).__name__}>"
