"""
In-memory store clients for exercising the range reader without a cluster.

- InMemoryStore serves range and paged slices from a dict of rows the way a
  ByteOrderedPartitioner cluster would (token = hex of the key, start token
  exclusive, start key inclusive).
- ScriptedStore hands back pre-built pages in order, for exact control over
  what each call returns.

Both record every call in `calls` and count close() calls.
"""

import binascii
from typing import Dict, List, Optional, Sequence, Tuple

from .cassandra_thrift import (
    CfDef,
    Column,
    ColumnOrSuperColumn,
    KeySlice,
    KsDef,
)


BYTE_ORDERED_PARTITIONER = "org.apache.cassandra.dht.ByteOrderedPartitioner"
RANDOM_PARTITIONER = "org.apache.cassandra.dht.RandomPartitioner"


def make_row(key: bytes, columns: Sequence[Tuple[bytes, bytes]], timestamp: int = 1) -> KeySlice:
    """Build a KeySlice of simple columns from (name, value) pairs, in the given order."""
    return KeySlice(
        key=key,
        columns=[ColumnOrSuperColumn(column=Column(name, value, timestamp)) for name, value in columns],
    )


def make_ghost(key: bytes) -> KeySlice:
    return KeySlice(key=key, columns=[])


class KeyTokenPartitioner:
    """Partitioner stand-in returning fixed tokens per key."""

    def __init__(self, tokens: Dict[bytes, str]):
        self.tokens = tokens

    def token_for(self, key: bytes) -> str:
        return self.tokens[key]


class _RecordingClient:
    def __init__(self, partitioner: str, keyspace: str, column_family: str,
                 comparator_type: str, subcomparator_type: Optional[str]):
        self.partitioner = partitioner
        self.keyspace = keyspace
        self.column_family = column_family
        self.comparator_type = comparator_type
        self.subcomparator_type = subcomparator_type
        self.calls: List[Tuple] = []
        self.close_count = 0

    def describe_partitioner(self) -> str:
        self.calls.append(("describe_partitioner",))
        return self.partitioner

    def describe_keyspace(self, keyspace: str) -> KsDef:
        self.calls.append(("describe_keyspace", keyspace))
        cf_def = CfDef(
            keyspace=keyspace,
            name=self.column_family,
            comparator_type=self.comparator_type,
            subcomparator_type=self.subcomparator_type,
        )
        return KsDef(name=keyspace, cf_defs=[cf_def])

    def close(self) -> None:
        self.close_count += 1

    def slice_calls(self) -> List[Tuple]:
        return [call for call in self.calls if call[0] in ("get_range_slices", "get_paged_slice")]


class InMemoryStore(_RecordingClient):
    """
    Rows held as {key: {column name: value}}; an empty dict is a ghost row.
    Column names are served in byte order.
    """

    def __init__(self, rows: Dict[bytes, Dict[bytes, bytes]], keyspace: str = "ks",
                 column_family: str = "cf", comparator_type: str = "BytesType",
                 timestamp: int = 1):
        super().__init__(BYTE_ORDERED_PARTITIONER, keyspace, column_family, comparator_type, None)
        self.rows = rows
        self.timestamp = timestamp

    @staticmethod
    def token(key: bytes) -> str:
        return binascii.hexlify(key).decode("ascii")

    def _in_range(self, key: bytes, key_range) -> bool:
        token = self.token(key)
        if key_range.end_token and token > key_range.end_token:
            return False
        if key_range.start_key is not None:
            return key >= key_range.start_key
        return not key_range.start_token or token > key_range.start_token

    def get_range_slices(self, column_parent, predicate, key_range, consistency_level) -> List[KeySlice]:
        self.calls.append(("get_range_slices", key_range))
        page = []
        for key in sorted(self.rows):
            if not self._in_range(key, key_range):
                continue
            page.append(make_row(key, sorted(self.rows[key].items()), self.timestamp))
            if len(page) == key_range.count:
                break
        return page

    def get_paged_slice(self, column_family, key_range, start_column, consistency_level) -> List[KeySlice]:
        self.calls.append(("get_paged_slice", key_range, start_column))
        page = []
        remaining = key_range.count
        for key in sorted(self.rows):
            if not self._in_range(key, key_range):
                continue
            names = sorted(self.rows[key])
            if key == key_range.start_key:
                names = [name for name in names if name >= start_column]
            names = names[:remaining]
            page.append(make_row(key, [(name, self.rows[key][name]) for name in names], self.timestamp))
            remaining -= len(names)
            if remaining <= 0:
                break
        return page


class ScriptedStore(_RecordingClient):
    """
    Returns the given pages in order, then empty pages.

    fail_on: index of the slice call (0-based) that raises fail_with instead.
    """

    def __init__(self, range_pages: Sequence[List[KeySlice]] = (),
                 paged_pages: Sequence[List[KeySlice]] = (),
                 partitioner: str = BYTE_ORDERED_PARTITIONER, keyspace: str = "ks",
                 column_family: str = "cf", comparator_type: str = "BytesType",
                 subcomparator_type: Optional[str] = None,
                 fail_on: Optional[int] = None, fail_with: Optional[Exception] = None):
        super().__init__(partitioner, keyspace, column_family, comparator_type, subcomparator_type)
        self.range_pages = list(range_pages)
        self.paged_pages = list(paged_pages)
        self.fail_on = fail_on
        self.fail_with = fail_with or ConnectionResetError("connection reset by peer")

    def _maybe_fail(self) -> None:
        if self.fail_on is not None and len(self.slice_calls()) - 1 == self.fail_on:
            raise self.fail_with

    def get_range_slices(self, column_parent, predicate, key_range, consistency_level) -> List[KeySlice]:
        self.calls.append(("get_range_slices", key_range, predicate))
        self._maybe_fail()
        return self.range_pages.pop(0) if self.range_pages else []

    def get_paged_slice(self, column_family, key_range, start_column, consistency_level) -> List[KeySlice]:
        self.calls.append(("get_paged_slice", key_range, start_column))
        self._maybe_fail()
        return self.paged_pages.pop(0) if self.paged_pages else []


def provider_for(client):
    """Connection provider that always hands back the given client and records its arguments."""
    def provider(host, port, keyspace, credentials):
        provider.calls.append((host, port, keyspace, credentials))
        return client
    provider.calls = []
    return provider
