"""
Repository Module - Query Builder
===================================
EntityQuery: an unexecuted, composable query over one entity type.

Every builder method returns a new EntityQuery; nothing touches the
database until all()/first()/count()/exists() is called. Results are
read-only by default: materialized entities are expunged from the
session so later mutations only reach the database through
Repository.update().
"""

import re
from typing import Any, Generic, List, Optional, Sequence, Tuple, Type, TypeVar, Union

from sqlalchemy import func, inspect, select
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.attributes import InstrumentedAttribute

from common.exceptions import InvalidArgument
from common.helpers import normalize_name

T = TypeVar("T")

OrderKey = Union[str, InstrumentedAttribute, Any]

_PATH_SEPARATORS = re.compile(r"[./]")


# ==========================================
# Attribute / relation resolution
# ==========================================

def resolve_column(model: Type, key: OrderKey):
    """Map 'OrderDate' / 'order_date' / Order.order_date to a column attribute."""
    if key is None:
        raise InvalidArgument("Order key is required")
    if not isinstance(key, str):
        return key
    wanted = normalize_name(key)
    for attr in inspect(model).column_attrs:
        if normalize_name(attr.key) == wanted:
            return getattr(model, attr.key)
    raise InvalidArgument(f"'{key}' is not a property of {model.__name__}")


def resolve_relationship(model: Type, name: str):
    """Return the RelationshipProperty of model matching name (case/underscore-insensitive)."""
    wanted = normalize_name(name)
    for rel in inspect(model).relationships:
        if normalize_name(rel.key) == wanted:
            return rel
    raise InvalidArgument(f"'{name}' is not a navigation property of {model.__name__}")


def split_relation_path(path: str) -> List[str]:
    if not path or not str(path).strip():
        raise InvalidArgument("Relation path is required")
    return [p for p in _PATH_SEPARATORS.split(str(path).strip()) if p]


def relation_loader(model: Type, path: str):
    """'orders.order_items' -> selectinload(Customer.orders).selectinload(Order.order_items)."""
    option = None
    current = model
    for segment in split_relation_path(path):
        rel = resolve_relationship(current, segment)
        attr = getattr(current, rel.key)
        option = selectinload(attr) if option is None else option.selectinload(attr)
        current = rel.mapper.class_
    return option


# ==========================================
# Detaching read results
# ==========================================

def has_staged_changes(session: Session, obj) -> bool:
    return (
        obj in session.new
        or obj in session.deleted
        or session.is_modified(obj, include_collections=False)
    )


def release(session: Session, entities: Sequence) -> None:
    """Expunge clean entities (and their loaded relations) so reads stay untracked."""
    for obj in entities:
        if obj in session and not has_staged_changes(session, obj):
            session.expunge(obj)


# ==========================================
# EntityQuery
# ==========================================

class EntityQuery(Generic[T]):

    def __init__(
        self,
        session: Session,
        model: Type[T],
        criteria: Tuple = (),
        includes: Tuple = (),
        ordering: Tuple = (),
        offset: Optional[int] = None,
        limit: Optional[int] = None,
        columns: Tuple = (),
        tracked: bool = False,
    ):
        self.session = session
        self.model = model
        self._criteria = tuple(criteria)
        self._includes = tuple(includes)
        self._ordering = tuple(ordering)      # (column, ascending) pairs
        self._offset = offset
        self._limit = limit
        self._columns = tuple(columns)
        self._tracked = tracked

    def _copy(self, **changes) -> "EntityQuery[T]":
        state = dict(
            criteria=self._criteria,
            includes=self._includes,
            ordering=self._ordering,
            offset=self._offset,
            limit=self._limit,
            columns=self._columns,
            tracked=self._tracked,
        )
        state.update(changes)
        return EntityQuery(self.session, self.model, **state)

    @property
    def primary_key(self):
        return getattr(self.model, inspect(self.model).primary_key[0].key)

    @property
    def is_windowed(self) -> bool:
        return self._offset is not None or self._limit is not None

    def _narrowed(self) -> "EntityQuery[T]":
        """Freeze the current window into a key subquery so later steps apply within it."""
        if not self.is_windowed:
            return self
        pk = self.primary_key
        window = self._build(columns=(pk,))
        return self._copy(criteria=(pk.in_(window),), offset=None, limit=None)

    # ------------------------------------------
    # Builders
    # ------------------------------------------

    def where(self, *criteria) -> "EntityQuery[T]":
        if not criteria or any(c is None for c in criteria):
            raise InvalidArgument("Filter predicate is required")
        base = self._narrowed()
        return base._copy(criteria=base._criteria + tuple(criteria))

    def include(self, *paths: str) -> "EntityQuery[T]":
        options = tuple(relation_loader(self.model, p) for p in paths)
        return self._copy(includes=self._includes + options)

    def order_by(self, key: OrderKey, ascending: bool = True) -> "EntityQuery[T]":
        column = resolve_column(self.model, key)
        return self._narrowed()._copy(ordering=((column, ascending),))

    def then_by(self, key: OrderKey, ascending: bool = True) -> "EntityQuery[T]":
        if not self._ordering:
            return self.order_by(key, ascending)
        column = resolve_column(self.model, key)
        return self._copy(ordering=self._ordering + ((column, ascending),))

    def skip(self, count: int) -> "EntityQuery[T]":
        if count is None or count < 0:
            raise InvalidArgument("skip must be greater than or equal to 0")
        limit = None if self._limit is None else max(self._limit - count, 0)
        return self._copy(offset=((self._offset or 0) + count) or None, limit=limit)

    def take(self, count: int) -> "EntityQuery[T]":
        if count is None or count <= 0:
            raise InvalidArgument("take must be greater than 0")
        limit = count if self._limit is None else min(self._limit, count)
        return self._copy(limit=limit)

    def select(self, *fields: OrderKey) -> "EntityQuery[T]":
        """Column projection. all() then returns dicts instead of entities."""
        if not fields:
            raise InvalidArgument("At least one field is required")
        return self._copy(columns=tuple(resolve_column(self.model, f) for f in fields))

    def as_tracking(self) -> "EntityQuery[T]":
        """Keep materialized entities attached to the session."""
        return self._copy(tracked=True)

    # ------------------------------------------
    # Statement
    # ------------------------------------------

    def _order_clauses(self) -> List:
        clauses = [col.asc() if asc else col.desc() for col, asc in self._ordering]
        if clauses:
            pk = self.primary_key
            if not any(col is pk for col, _ in self._ordering):
                clauses.append(pk.asc())
        return clauses

    def _build(self, columns: Tuple = ()):
        columns = columns or self._columns
        stmt = select(*columns) if columns else select(self.model)
        if self._criteria:
            stmt = stmt.where(*self._criteria)
        if self._includes and not columns:
            stmt = stmt.options(*self._includes)
        order = self._order_clauses()
        if order:
            stmt = stmt.order_by(*order)
        if self._offset:
            stmt = stmt.offset(self._offset)
        if self._limit is not None:
            stmt = stmt.limit(self._limit)
        return stmt

    @property
    def statement(self):
        return self._build()

    # ------------------------------------------
    # Execution
    # ------------------------------------------

    def all(self) -> List:
        if self._columns:
            return [dict(row._mapping) for row in self.session.execute(self._build())]
        entities = list(self.session.scalars(self._build()).all())
        if not self._tracked:
            release(self.session, entities)
        return entities

    def first(self) -> Optional[T]:
        rows = self.take(1).all()
        return rows[0] if rows else None

    def count(self) -> int:
        keys = self._copy(includes=(), columns=(), ordering=self._ordering if self.is_windowed else ())
        inner = keys._build(columns=(self.primary_key,)).subquery()
        return self.session.scalar(select(func.count()).select_from(inner))

    def exists(self) -> bool:
        keys = self._copy(includes=(), columns=(), ordering=self._ordering if self.is_windowed else ())
        return bool(self.session.scalar(select(keys._build(columns=(self.primary_key,)).exists())))

    def __iter__(self):
        return iter(self.all())

    def __repr__(self):
        return f"<EntityQuery {self.model.__name__}>"


def contains_text(session: Session, column, text: str):
    """Case-sensitive substring match. SQLite LIKE ignores case, so use instr() there."""
    if session.get_bind().dialect.name == "sqlite":
        return func.instr(column, text) > 0
    return column.contains(text, autoescape=True)
