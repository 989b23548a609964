"""
Cassandra Column Unmarshaling

Converts the store's tagged ColumnOrSuperColumn responses into a uniform
column representation:

- Column: a named value with its write timestamp
- SuperColumn: a named, ordered group of Columns

Counter columns are returned as plain Columns holding the 8-byte big-endian
total the coordinator already resolved, with timestamp 0. The total is trusted
as-is; per-shard counter state is never reconstructed.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple, Union

from cassandra.marshal import int64_pack

from .cassandra_errors import ProtocolError


COUNTER_TIMESTAMP = 0


@dataclass(frozen=True)
class Column:
    name: bytes
    value: bytes
    timestamp: int


@dataclass(frozen=True)
class SuperColumn:
    name: bytes
    subcolumns: Tuple[Column, ...]


ColumnEntry = Union[Column, SuperColumn]

# (row key, column name -> entry in comparator order)
RowColumnPair = Tuple[bytes, Dict[bytes, ColumnEntry]]


def unmarshal_simple(column) -> Column:
    return Column(name=column.name, value=column.value, timestamp=column.timestamp)


def unmarshal_counter(column) -> Column:
    return Column(name=column.name, value=int64_pack(column.value), timestamp=COUNTER_TIMESTAMP)


def _unmarshal_super(super_column, unmarshal_sub: Callable, sub_comparator) -> SuperColumn:
    subcolumns = sorted_columns(
        (unmarshal_sub(column) for column in super_column.columns or []),
        sub_comparator,
    )
    return SuperColumn(name=super_column.name, subcolumns=tuple(subcolumns.values()))


def unmarshal(cosc, sub_comparator=None) -> ColumnEntry:
    """
    Convert one ColumnOrSuperColumn into a Column or SuperColumn.

    The populated case is looked up in the order counter, counter super,
    super, simple.

    Args:
        cosc: ColumnOrSuperColumn as returned by the store
        sub_comparator: ColumnComparator ordering super column members
                        (byte order when None)

    Returns:
        Column or SuperColumn

    Raises:
        ProtocolError: If none of the four cases is populated
    """
    counter_column = getattr(cosc, "counter_column", None)
    if counter_column is not None:
        return unmarshal_counter(counter_column)

    counter_super_column = getattr(cosc, "counter_super_column", None)
    if counter_super_column is not None:
        return _unmarshal_super(counter_super_column, unmarshal_counter, sub_comparator)

    super_column = getattr(cosc, "super_column", None)
    if super_column is not None:
        return _unmarshal_super(super_column, unmarshal_simple, sub_comparator)

    column = getattr(cosc, "column", None)
    if column is not None:
        return unmarshal_simple(column)

    raise ProtocolError(f"ColumnOrSuperColumn has none of its cases set: {cosc!r}")


def sorted_columns(entries: Iterable[ColumnEntry], comparator=None) -> Dict[bytes, ColumnEntry]:
    """
    Key entries by name, ordered by the comparator.

    A later entry with the same name replaces an earlier one.

    Args:
        entries: Unmarshaled columns
        comparator: ColumnComparator for the names (byte order when None)

    Returns:
        Dict of name -> entry whose iteration order is the comparator order
    """
    by_name = {}
    for entry in entries:
        by_name[entry.name] = entry

    sort_key: Optional[Callable] = comparator.sort_key if comparator is not None else None
    return {name: by_name[name] for name in sorted(by_name, key=sort_key)}
