"""
Cassandra Thrift Wire Shapes

Plain dataclasses mirroring the Thrift structures exchanged with the store.
Clients returned by a connection provider may hand back their own generated
Thrift objects instead: the reader only reads these attribute names.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Column:
    """A regular column as returned by the store."""
    name: bytes
    value: bytes
    timestamp: int
    ttl: Optional[int] = None


@dataclass
class CounterColumn:
    """A counter column carrying the coordinator's resolved total."""
    name: bytes
    value: int


@dataclass
class SuperColumn:
    name: bytes
    columns: List[Column] = field(default_factory=list)


@dataclass
class CounterSuperColumn:
    name: bytes
    columns: List[CounterColumn] = field(default_factory=list)


@dataclass
class ColumnOrSuperColumn:
    """Tagged union: exactly one of the four fields is expected to be set."""
    column: Optional[Column] = None
    super_column: Optional[SuperColumn] = None
    counter_column: Optional[CounterColumn] = None
    counter_super_column: Optional[CounterSuperColumn] = None


@dataclass
class KeySlice:
    key: bytes
    columns: List[ColumnOrSuperColumn] = field(default_factory=list)


@dataclass
class ColumnParent:
    column_family: str
    super_column: Optional[bytes] = None


@dataclass
class SliceRange:
    start: bytes = b""
    finish: bytes = b""
    reversed: bool = False
    count: int = 2147483647


@dataclass
class SlicePredicate:
    """Which columns to fetch: explicit names, or a contiguous slice range."""
    column_names: Optional[List[bytes]] = None
    slice_range: Optional[SliceRange] = None


@dataclass
class IndexExpression:
    """Secondary-index filter expression (op is EQ, GTE, GT, LTE or LT)."""
    column_name: bytes
    op: str
    value: bytes


@dataclass
class KeyRange:
    """
    Range of rows to fetch, bounded either by keys or by tokens.

    The store treats start_token as exclusive and start_key as inclusive.
    """
    count: int = 100
    start_key: Optional[bytes] = None
    end_key: Optional[bytes] = None
    start_token: Optional[str] = None
    end_token: Optional[str] = None
    row_filter: Optional[List[IndexExpression]] = None


@dataclass
class CfDef:
    keyspace: str
    name: str
    comparator_type: Optional[str] = "BytesType"
    subcomparator_type: Optional[str] = None
    column_type: str = "Standard"


@dataclass
class KsDef:
    name: str
    cf_defs: List[CfDef] = field(default_factory=list)


def is_empty_predicate(predicate: Optional[SlicePredicate]) -> bool:
    """
    Return True when the predicate selects every column of a row.

    Only such predicates make a zero-column row meaningful as a ghost: with
    explicit names or a bounded slice, an empty row just means no column matched.
    """
    if predicate is None:
        return True

    slice_range = getattr(predicate, "slice_range", None)
    if getattr(predicate, "column_names", None) is not None and slice_range is None:
        return False

    if slice_range is None:
        return True

    if slice_range.start:
        return False
    if slice_range.finish:
        return False

    return True
