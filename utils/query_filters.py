import operator
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter


# Operators Shared By SQL And Firestore Queries
class FilterOp(str, Enum):
    EQ = "=="
    NE = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    IN = "in"
    ARRAY_CONTAINS = "array-contains"


_COMPARATORS = {
    FilterOp.EQ: operator.eq,
    FilterOp.NE: operator.ne,
    FilterOp.LT: operator.lt,
    FilterOp.LE: operator.le,
    FilterOp.GT: operator.gt,
    FilterOp.GE: operator.ge,
}


@dataclass(frozen=True)
class QueryFilter:
    field: str
    op: FilterOp
    value: Any

    def matches(self, record: Dict[str, Any]) -> bool:
        # Firestore never matches documents that lack the filtered field
        if self.field not in record or record[self.field] is None:
            return False
        actual = record[self.field]

        if self.op == FilterOp.IN:
            return actual in self.value
        if self.op == FilterOp.ARRAY_CONTAINS:
            return isinstance(actual, (list, tuple, set)) and self.value in actual
        try:
            return _COMPARATORS[self.op](actual, self.value)
        except TypeError:
            return False


@dataclass(frozen=True)
class RecordQuery:
    """
    An ordered list of filter predicates plus ordering and paging.

    Filters are applied in the order they were added, against a SQLModel
    select, a Firestore collection, or plain dict records.
    """

    filters: Tuple[QueryFilter, ...] = ()
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None
    offset: int = 0

    def where(self, field_name: str, op: FilterOp | str, value: Any) -> "RecordQuery":
        return replace(
            self, filters=self.filters + (QueryFilter(field_name, FilterOp(op), value),)
        )

    def where_if(
        self, condition: bool, field_name: str, op: FilterOp | str, value: Any
    ) -> "RecordQuery":
        return self.where(field_name, op, value) if condition else self

    def order(self, field_name: str, descending: bool = False) -> "RecordQuery":
        return replace(self, order_by=field_name, descending=descending)

    def take(self, count: Optional[int]) -> "RecordQuery":
        return replace(self, limit=count)

    def skip(self, count: int) -> "RecordQuery":
        return replace(self, offset=max(0, count))

    def without_paging(self) -> "RecordQuery":
        return replace(self, limit=None, offset=0)

    # --- SQL ---

    def apply_to_statement(self, statement, model):
        for f in self.filters:
            column = getattr(model, f.field)
            if f.op == FilterOp.IN:
                statement = statement.where(column.in_(list(f.value)))
            elif f.op == FilterOp.ARRAY_CONTAINS:
                raise ValueError(
                    f"'{f.op.value}' is not supported on relational column '{f.field}'"
                )
            else:
                statement = statement.where(_COMPARATORS[f.op](column, f.value))

        if self.order_by:
            column = getattr(model, self.order_by)
            statement = statement.order_by(column.desc() if self.descending else column)
        if self.offset:
            statement = statement.offset(self.offset)
        if self.limit is not None:
            statement = statement.limit(self.limit)
        return statement

    # --- Firestore ---

    def apply_to_firestore(self, collection_ref):
        query = collection_ref
        for f in self.filters:
            query = query.where(filter=FieldFilter(f.field, f.op.value, f.value))

        if self.order_by:
            direction = (
                firestore.Query.DESCENDING if self.descending else firestore.Query.ASCENDING
            )
            query = query.order_by(self.order_by, direction=direction)
        if self.offset:
            query = query.offset(self.offset)
        if self.limit is not None:
            query = query.limit(self.limit)
        return query

    # --- In memory ---

    def matches(self, record: Dict[str, Any]) -> bool:
        return all(f.matches(record) for f in self.filters)

    def run(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        rows = [r for r in records if self.matches(r)]
        if self.order_by:
            with_value = [r for r in rows if r.get(self.order_by) is not None]
            rows = sorted(
                with_value, key=lambda r: r[self.order_by], reverse=self.descending
            )
        rows = rows[self.offset:]
        if self.limit is not None:
            rows = rows[: self.limit]
        return rows

    def cache_key(self, collection: str) -> str:
        parts = [collection]
        parts.extend(f"{f.field}{f.op.value}{f.value!r}" for f in self.filters)
        if self.order_by:
            parts.append(f"order={self.order_by}_{'desc' if self.descending else 'asc'}")
        if self.limit is not None:
            parts.append(f"limit={self.limit}")
        if self.offset:
            parts.append(f"offset={self.offset}")
        return "|".join(parts)
