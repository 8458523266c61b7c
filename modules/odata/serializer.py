"""
OData Module - Entity Serializer
==================================
Shapes detached entities into JSON-ready dicts.

Only relations named in the expansion tree AND actually loaded are
emitted, so serializing never triggers a lazy load.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import inspect

from common.helpers import as_utc
from modules.order.models import Order

# Derived values emitted when the relation they depend on is loaded
COMPUTED = {
    Order: (("total_value", "order_items"), ("item_count", "order_items")),
}


def pascal_case(key: str) -> str:
    """order_date -> OrderDate"""
    return "".join(part[:1].upper() + part[1:] for part in key.split("_"))


def entity_to_dict(
    entity,
    expand: Optional[Dict[str, Dict]] = None,
    select: Optional[Sequence[str]] = None,
    pascal: bool = False,
) -> Dict[str, Any]:
    state = inspect(entity)
    mapper = state.mapper
    name = pascal_case if pascal else (lambda k: k)

    data: Dict[str, Any] = {}
    for attr in mapper.column_attrs:
        if select and attr.key not in select:
            continue
        if attr.key in state.unloaded:
            continue
        value = getattr(entity, attr.key)
        if isinstance(value, datetime):
            value = as_utc(value)
        data[name(attr.key)] = value

    for key, relation in (COMPUTED.get(mapper.class_) or ()):
        if relation not in state.unloaded and (not select or key in select):
            data[name(key)] = getattr(entity, key)

    for key, child_tree in (expand or {}).items():
        if key in state.unloaded:
            continue
        value = getattr(entity, key)
        if value is None:
            data[name(key)] = None
        elif isinstance(value, (list, tuple, set)):
            data[name(key)] = [entity_to_dict(v, child_tree, pascal=pascal) for v in value]
        else:
            data[name(key)] = entity_to_dict(value, child_tree, pascal=pascal)
    return data


def entities_to_list(
    entities: Iterable,
    expand: Optional[Dict[str, Dict]] = None,
    select: Optional[Sequence[str]] = None,
    pascal: bool = False,
) -> List[Dict[str, Any]]:
    return [entity_to_dict(e, expand, select, pascal) for e in entities]
