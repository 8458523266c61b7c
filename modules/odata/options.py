"""
OData Module - Query Options
==============================
Parses $filter/$orderby/$select/$expand/$top/$skip/$count from a query
string, checks them against the configured limits, and applies them to
an EntityQuery. Every check runs before any SQL is issued.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

from sqlalchemy.orm import Session

from common.exceptions import InvalidArgument, QueryOptionError
from common.helpers import safe_int
from config.settings import (
    ODATA_DEFAULT_TOP,
    ODATA_MAX_EXPANSION_DEPTH,
    ODATA_MAX_ORDERBY_FIELDS,
    ODATA_MAX_TOP,
)
from modules.odata.parser import parse_filter
from modules.repository.query import EntityQuery, resolve_column, resolve_relationship

logger = logging.getLogger("shop.odata")

SUPPORTED = {"$filter", "$orderby", "$select", "$expand", "$top", "$skip", "$count"}

# Expansion tree: attribute key -> nested tree
ExpandTree = Dict[str, Dict]


@dataclass
class QueryLimits:
    max_top: int = ODATA_MAX_TOP
    default_top: int = ODATA_DEFAULT_TOP
    max_expansion_depth: int = ODATA_MAX_EXPANSION_DEPTH
    max_orderby_fields: int = ODATA_MAX_ORDERBY_FIELDS


@dataclass
class QueryOptions:
    criteria: Any = None
    orderby: List[Tuple[Any, bool]] = field(default_factory=list)
    select: List[str] = field(default_factory=list)
    expand: ExpandTree = field(default_factory=dict)
    top: Optional[int] = None
    skip: Optional[int] = None
    count: bool = False

    @property
    def relation_paths(self) -> List[str]:
        return expand_paths(self.expand)


# ==========================================
# Splitting helpers
# ==========================================

def split_top_level(text: str, sep: str = ",") -> List[str]:
    """Split on sep, ignoring separators nested inside parentheses."""
    parts, depth, current = [], 0, []
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise QueryOptionError(f"Unbalanced parentheses in '{text}'")
        if ch == sep and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    if depth != 0:
        raise QueryOptionError(f"Unbalanced parentheses in '{text}'")
    parts.append("".join(current).strip())
    return [p for p in parts if p]


def expand_depth(tree: ExpandTree) -> int:
    if not tree:
        return 0
    return 1 + max(expand_depth(child) for child in tree.values())


def expand_paths(tree: ExpandTree, prefix: str = "") -> List[str]:
    """Leaf paths of an expansion tree: {'orders': {'order_items': {}}} -> ['orders.order_items']."""
    paths = []
    for name, child in tree.items():
        path = f"{prefix}.{name}" if prefix else name
        if child:
            paths.extend(expand_paths(child, path))
        else:
            paths.append(path)
    return paths


# ==========================================
# Individual options
# ==========================================

def parse_orderby(model: Type, text: str, max_fields: int) -> List[Tuple[Any, bool]]:
    items = split_top_level(text)
    if not items:
        raise QueryOptionError("$orderby must not be empty")
    if len(items) > max_fields:
        raise QueryOptionError(f"$orderby allows at most {max_fields} properties")

    ordering = []
    for item in items:
        words = item.split()
        if len(words) > 2 or (len(words) == 2 and words[1].lower() not in ("asc", "desc")):
            raise QueryOptionError(f"Invalid $orderby item '{item}'")
        try:
            column = resolve_column(model, words[0])
        except InvalidArgument:
            raise QueryOptionError(f"Unknown property '{words[0]}' on {model.__name__}")
        ascending = len(words) == 1 or words[1].lower() == "asc"
        ordering.append((column, ascending))
    return ordering


def parse_select(model: Type, text: str) -> List[str]:
    items = split_top_level(text)
    if not items:
        raise QueryOptionError("$select must not be empty")
    if "*" in items:
        return []

    keys = ["id"]
    for item in items:
        try:
            key = resolve_column(model, item).key
        except InvalidArgument:
            raise QueryOptionError(f"Unknown property '{item}' on {model.__name__}")
        if key not in keys:
            keys.append(key)
    return keys


def parse_expand(model: Type, text: str) -> ExpandTree:
    """Nav, Nav/Child and Nav($expand=Child) forms; nested forms may repeat."""
    tree: ExpandTree = {}
    for item in split_top_level(text):
        nested = None
        if item.endswith(")") and "(" in item:
            head, _, inner = item.partition("(")
            item, nested = head.strip(), inner[:-1]

        current_model, node = model, tree
        for segment in [s.strip() for s in item.split("/")]:
            if not segment:
                raise QueryOptionError(f"Invalid $expand path '{item}'")
            try:
                rel = resolve_relationship(current_model, segment)
            except InvalidArgument:
                raise QueryOptionError(f"Unknown navigation property '{segment}' on {current_model.__name__}")
            node = node.setdefault(rel.key, {})
            current_model = rel.mapper.class_

        if nested is not None:
            _merge(node, _parse_nested(current_model, nested))
    return tree


def _parse_nested(model: Type, text: str) -> ExpandTree:
    tree: ExpandTree = {}
    for option in split_top_level(text, ";"):
        name, sep, value = option.partition("=")
        if not sep or name.strip().lower() != "$expand":
            raise QueryOptionError(f"Unsupported nested option '{option}' (only $expand is allowed)")
        _merge(tree, parse_expand(model, value))
    return tree


def _merge(target: ExpandTree, source: ExpandTree) -> None:
    for key, child in source.items():
        _merge(target.setdefault(key, {}), child)


def _non_negative(name: str, raw: str) -> int:
    value = safe_int(raw)
    if value is None or value < 0:
        raise QueryOptionError(f"{name} must be a non-negative integer")
    return value


# ==========================================
# Entry points
# ==========================================

def parse_query_options(
    model: Type,
    params: Mapping[str, str],
    session: Optional[Session] = None,
    limits: Optional[QueryLimits] = None,
) -> QueryOptions:
    """Validate and parse raw query-string options for one entity set."""
    limits = limits or QueryLimits()
    raw = {k.lower(): v for k, v in params.items() if k.startswith("$")}

    unknown = sorted(set(raw) - SUPPORTED)
    if unknown:
        raise QueryOptionError(f"Unsupported query option(s): {', '.join(unknown)}")

    options = QueryOptions()
    if "$filter" in raw:
        options.criteria = parse_filter(model, raw["$filter"], session)
    if "$orderby" in raw:
        options.orderby = parse_orderby(model, raw["$orderby"], limits.max_orderby_fields)
    if "$select" in raw:
        options.select = parse_select(model, raw["$select"])
    if "$expand" in raw:
        options.expand = parse_expand(model, raw["$expand"])
        depth = expand_depth(options.expand)
        if depth > limits.max_expansion_depth:
            raise QueryOptionError(
                f"$expand depth {depth} exceeds the maximum of {limits.max_expansion_depth}"
            )
    if "$top" in raw:
        options.top = _non_negative("$top", raw["$top"])
        if options.top > limits.max_top:
            raise QueryOptionError(f"$top must not exceed {limits.max_top}")
    elif limits.default_top:
        options.top = min(limits.default_top, limits.max_top)
    if "$skip" in raw:
        options.skip = _non_negative("$skip", raw["$skip"])
    if "$count" in raw:
        flag = raw["$count"].strip().lower()
        if flag not in ("true", "false"):
            raise QueryOptionError("$count must be true or false")
        options.count = flag == "true"

    logger.debug(f"{model.__name__} options: {dict(raw)}")
    return options


def apply_query_options(query: EntityQuery, options: QueryOptions) -> Tuple[list, Optional[int]]:
    """
    Run query with the options applied: expand -> filter -> (count) -> orderby -> skip -> top.
    Returns (entities, total) where total is the filtered count before paging, or None
    when $count was not requested.
    """
    if options.expand:
        query = query.include(*options.relation_paths)
    if options.criteria is not None:
        query = query.where(options.criteria)

    total = query.count() if options.count else None

    if options.orderby:
        first, *rest = options.orderby
        query = query.order_by(*first)
        for column, ascending in rest:
            query = query.then_by(column, ascending)
    elif options.top is not None or options.skip:
        query = query.order_by(query.primary_key)

    if options.top == 0:
        return [], total
    if options.skip:
        query = query.skip(options.skip)
    if options.top is not None:
        query = query.take(options.top)
    return query.all(), total
