"""
Tests for cassandra_reader.py: static and wide row iteration and the record reader.
"""

import itertools
import struct
from dataclasses import replace

import pytest

from cassandra_to_dbx.cassandra_config import InputSplit
from cassandra_to_dbx.cassandra_errors import ConfigurationError, ProtocolError, TransportError
from cassandra_to_dbx.cassandra_reader import (
    RangeRecordReader,
    StaticRowIterator,
    WideRowIterator,
    create_row_iterator,
)
from cassandra_to_dbx.cassandra_schema import ColumnComparator, Partitioner, SchemaContext
from cassandra_to_dbx.cassandra_thrift import IndexExpression, SlicePredicate, SliceRange
from cassandra_to_dbx.testing import (
    BYTE_ORDERED_PARTITIONER,
    InMemoryStore,
    KeyTokenPartitioner,
    ScriptedStore,
    make_ghost,
    make_row,
    provider_for,
)


def byte_ordered_schema(comparator_type="BytesType"):
    return SchemaContext(
        partitioner=Partitioner(BYTE_ORDERED_PARTITIONER),
        comparator=ColumnComparator.parse(comparator_type),
    )


def token_schema(tokens):
    return SchemaContext(
        partitioner=KeyTokenPartitioner(tokens),
        comparator=ColumnComparator.parse("BytesType"),
    )


def keys(pairs):
    return [key for key, _ in pairs]


class TestStaticRowIterator:
    def test_ghost_row_is_dropped_and_resume_starts_at_last_row_token(self, connect, config):
        store = ScriptedStore(range_pages=[[
            make_row(b"a", [(b"c1", b"1"), (b"c2", b"2")]),
            make_ghost(b"b"),
        ]])
        schema = token_schema({b"a": "100", b"b": "400"})
        split = InputSplit(start_token="0", end_token="1000", locations=["h1"])

        pairs = list(StaticRowIterator(connect(store), schema, split, config))

        assert keys(pairs) == [b"a"]
        assert list(pairs[0][1]) == [b"c1", b"c2"]
        starts = [call[1].start_token for call in store.slice_calls()]
        assert starts == ["0", "400"]

    def test_all_ghost_pages_do_not_end_iteration(self, connect, config):
        store = ScriptedStore(range_pages=[
            [make_ghost(b"g1"), make_ghost(b"g2")],
            [make_ghost(b"g3"), make_ghost(b"g4")],
            [make_row(b"live", [(b"c", b"v")]), make_ghost(b"g5")],
        ])
        tokens = {b"g1": "1", b"g2": "2", b"g3": "3", b"g4": "4", b"live": "5", b"g5": "6"}
        split = InputSplit(start_token="0", end_token="1000", locations=["h1"])

        pairs = list(StaticRowIterator(connect(store), token_schema(tokens), split, config))

        assert keys(pairs) == [b"live"]
        starts = [call[1].start_token for call in store.slice_calls()]
        assert starts == ["0", "2", "4", "6"]

    def test_ghost_count_matches_emitted_pairs(self, connect, config):
        rows = {b"a": {b"c": b"1"}, b"b": {}, b"c": {b"c": b"3"}, b"d": {}, b"e": {b"c": b"5"}}
        store = InMemoryStore(rows)
        split = InputSplit(start_token="", end_token="ff", locations=["h1"])

        pairs = list(StaticRowIterator(connect(store), byte_ordered_schema(), split, config))

        assert keys(pairs) == [b"a", b"c", b"e"]

    def test_explicit_predicate_keeps_empty_rows(self, connect, config, split):
        store = InMemoryStore({b"a": {b"x": b"1"}, b"b": {}})
        config = replace(config, predicate=SlicePredicate(column_names=[b"x"]))

        pairs = list(StaticRowIterator(connect(store), byte_ordered_schema(), split, config))

        assert keys(pairs) == [b"a", b"b"]
        assert pairs[1][1] == {}

    def test_all_columns_predicate_is_sent_when_none_configured(self, connect, config, split):
        store = ScriptedStore()

        list(StaticRowIterator(connect(store), byte_ordered_schema(), split, config))

        predicate = store.slice_calls()[0][2]
        assert predicate == SlicePredicate(slice_range=SliceRange())

    def test_page_request_carries_batch_size_end_token_and_filter(self, connect, config, split):
        store = ScriptedStore()
        row_filter = [IndexExpression(b"age", "GT", b"\x10")]
        config = replace(config, batch_size=7, row_filter=row_filter)

        list(StaticRowIterator(connect(store), byte_ordered_schema(), split, config))

        key_range = store.slice_calls()[0][1]
        assert key_range.count == 7
        assert key_range.end_token == "ff"
        assert key_range.row_filter == row_filter

    def test_terminates_over_many_pages(self, connect, config, split):
        rows = {bytes([c]): {b"col": bytes([c])} for c in b"abcdefg"}
        store = InMemoryStore(rows)

        pairs = list(StaticRowIterator(connect(store), byte_ordered_schema(), split, config))

        assert keys(pairs) == sorted(rows)
        # four pages of rows, then an empty page
        assert len(store.slice_calls()) == 5

    def test_stops_without_fetching_when_last_token_is_split_end(self, connect, config):
        store = InMemoryStore({b"a": {b"x": b"1"}, b"b": {b"x": b"2"}, b"c": {b"x": b"3"}})
        split = InputSplit(start_token="", end_token=InMemoryStore.token(b"c"), locations=["h1"])

        pairs = list(StaticRowIterator(connect(store), byte_ordered_schema(), split, config))

        assert keys(pairs) == [b"a", b"b", b"c"]
        assert len(store.slice_calls()) == 2

    def test_rows_are_in_token_order_and_columns_in_comparator_order(self, connect, config):
        def long_name(n):
            return struct.pack(">q", n)

        store = ScriptedStore(range_pages=[[
            make_row(b"a", [(long_name(9), b""), (long_name(-2), b""), (long_name(0), b"")]),
            make_row(b"b", [(long_name(1), b"")]),
        ]])
        schema = SchemaContext(
            partitioner=KeyTokenPartitioner({b"a": "10", b"b": "20"}),
            comparator=ColumnComparator.parse("LongType"),
        )
        split = InputSplit(start_token="0", end_token="1000", locations=["h1"])

        pairs = list(StaticRowIterator(connect(store), schema, split, config))

        assert keys(pairs) == [b"a", b"b"]
        assert list(pairs[0][1]) == [long_name(-2), long_name(0), long_name(9)]

    def test_rows_read_grows_by_one_per_pair(self, connect, config, split):
        store = InMemoryStore({bytes([c]): {b"x": b""} for c in b"abcde"})
        iterator = StaticRowIterator(connect(store), byte_ordered_schema(), split, config)

        counts = [iterator.rows_read()]
        for _ in iterator:
            counts.append(iterator.rows_read())

        assert counts == [0, 1, 2, 3, 4, 5]

    def test_stays_exhausted(self, connect, config, split):
        store = InMemoryStore({b"a": {b"x": b""}})
        iterator = StaticRowIterator(connect(store), byte_ordered_schema(), split, config)

        assert len(list(iterator)) == 1
        calls = len(store.slice_calls())
        assert next(iterator, None) is None
        assert len(store.slice_calls()) == calls

    def test_non_advancing_page_is_a_protocol_error(self, connect, config):
        store = ScriptedStore(range_pages=[[make_row(b"a", [(b"x", b"")])]])
        split = InputSplit(start_token="5", end_token="1000", locations=["h1"])

        with pytest.raises(ProtocolError):
            list(StaticRowIterator(connect(store), token_schema({b"a": "5"}), split, config))

    def test_refill_failure_ends_iteration_with_transport_error(self, connect, config):
        store = ScriptedStore(
            range_pages=[[make_row(b"a", [(b"x", b"")]), make_row(b"b", [(b"x", b"")])]],
            fail_on=1,
        )
        split = InputSplit(start_token="0", end_token="1000", locations=["h1"])
        iterator = StaticRowIterator(connect(store), token_schema({b"a": "1", b"b": "2"}), split, config)

        assert keys([next(iterator), next(iterator)]) == [b"a", b"b"]
        with pytest.raises(TransportError) as excinfo:
            next(iterator)
        assert excinfo.value.operation == "get_range_slices"

    def test_no_fetch_after_refill_failure(self, connect, config):
        store = ScriptedStore(
            range_pages=[
                [make_row(b"a", [(b"x", b"")]), make_row(b"b", [(b"x", b"")])],
                [make_row(b"c", [(b"x", b"")])],
            ],
            fail_on=1,
        )
        split = InputSplit(start_token="0", end_token="1000", locations=["h1"])
        tokens = {b"a": "1", b"b": "2", b"c": "3"}
        iterator = StaticRowIterator(connect(store), token_schema(tokens), split, config)

        list(itertools.islice(iterator, 2))
        with pytest.raises(TransportError):
            next(iterator)

        assert next(iterator, None) is None
        assert len(store.slice_calls()) == 2
        assert iterator.rows_read() == 2

    def test_bounded_slice_keeps_empty_rows(self, connect, config, split):
        store = InMemoryStore({b"a": {b"x": b"1"}, b"b": {}, b"c": {b"y": b"2"}})
        predicate = SlicePredicate(slice_range=SliceRange(start=b"c"))
        config = replace(config, predicate=predicate)

        pairs = list(StaticRowIterator(connect(store), byte_ordered_schema(), split, config))

        assert keys(pairs) == [b"a", b"b", b"c"]
        assert pairs[1][1] == {}

    def test_unbounded_slice_range_drops_ghosts(self, connect, config, split):
        store = InMemoryStore({b"a": {b"x": b"1"}, b"b": {}})
        config = replace(config, predicate=SlicePredicate(slice_range=SliceRange()))

        pairs = list(StaticRowIterator(connect(store), byte_ordered_schema(), split, config))

        assert keys(pairs) == [b"a"]


class TestWideRowIterator:
    def wide(self, config):
        return replace(config, wide_rows=True)

    def test_emits_every_column_once_across_pages(self, connect, config, split):
        rows = {
            b"a": {b"c1": b"1", b"c2": b"2", b"c3": b"3", b"c4": b"4", b"c5": b"5"},
            b"b": {b"c1": b"6", b"c2": b"7", b"c3": b"8"},
            b"c": {},
            b"d": {b"c1": b"9"},
        }
        store = InMemoryStore(rows)

        pairs = list(WideRowIterator(connect(store), byte_ordered_schema(), split, self.wide(config)))

        emitted = [(key, name) for key, columns in pairs for name in columns]
        expected = [(key, name) for key in sorted(rows) for name in sorted(rows[key])]
        assert emitted == expected
        assert all(len(columns) == 1 for _, columns in pairs)

    def test_boundary_column_is_not_emitted_twice(self, connect, config, split):
        store = ScriptedStore(paged_pages=[
            [make_row(b"a", [(b"c1", b"1"), (b"c2", b"2")])],
            [make_row(b"a", [(b"c2", b"2"), (b"c3", b"3")])],
            [make_row(b"a", [(b"c3", b"3")])],
        ])

        pairs = list(WideRowIterator(connect(store), byte_ordered_schema(), split, self.wide(config)))

        assert [name for _, columns in pairs for name in columns] == [b"c1", b"c2", b"c3"]
        calls = store.slice_calls()
        assert len(calls) == 3
        assert calls[0][1].start_token == "" and calls[0][2] == b""
        assert calls[1][1].start_key == b"a" and calls[1][2] == b"c2"
        assert calls[2][1].start_key == b"a" and calls[2][2] == b"c3"

    def test_same_column_name_in_next_row_is_kept(self, connect, config, split):
        store = ScriptedStore(paged_pages=[
            [make_row(b"a", [(b"x", b"1")])],
            [make_row(b"b", [(b"x", b"2"), (b"y", b"3")])],
        ])

        pairs = list(WideRowIterator(connect(store), byte_ordered_schema(), split, self.wide(config)))

        assert [(key, name) for key, columns in pairs for name in columns] == [
            (b"a", b"x"), (b"b", b"x"), (b"b", b"y"),
        ]

    def test_empty_first_page_ends_iteration(self, connect, config, split):
        store = ScriptedStore(paged_pages=[[make_ghost(b"a")]])

        assert list(WideRowIterator(connect(store), byte_ordered_schema(), split, self.wide(config))) == []
        assert len(store.slice_calls()) == 1

    def test_rows_read_counts_columns(self, connect, config, split):
        store = InMemoryStore({b"a": {b"c1": b"", b"c2": b"", b"c3": b""}, b"b": {b"c1": b""}})
        iterator = WideRowIterator(connect(store), byte_ordered_schema(), split, self.wide(config))

        counts = [iterator.rows_read() for _ in iterator]

        assert counts == [1, 2, 3, 4]

    def test_no_fetch_after_paged_slice_failure(self, connect, config, split):
        store = ScriptedStore(
            paged_pages=[
                [make_row(b"a", [(b"c1", b"1"), (b"c2", b"2")])],
                [make_row(b"a", [(b"c2", b"2"), (b"c3", b"3")])],
            ],
            fail_on=1,
        )
        iterator = WideRowIterator(connect(store), byte_ordered_schema(), split, self.wide(config))

        list(itertools.islice(iterator, 2))
        with pytest.raises(TransportError) as excinfo:
            next(iterator)

        assert excinfo.value.operation == "get_paged_slice"
        assert next(iterator, None) is None
        assert len(store.slice_calls()) == 2

    def test_single_column_batches_are_rejected(self, connect, config, split):
        with pytest.raises(ConfigurationError):
            create_row_iterator(connect(ScriptedStore()), byte_ordered_schema(), split,
                                replace(config, wide_rows=True, batch_size=1))


def test_create_row_iterator_picks_strategy(connect, config, split):
    connection = connect(ScriptedStore())
    schema = byte_ordered_schema()

    assert isinstance(create_row_iterator(connection, schema, split, config), StaticRowIterator)
    assert isinstance(create_row_iterator(connection, schema, split, replace(config, wide_rows=True)),
                      WideRowIterator)


class TestRangeRecordReader:
    def test_reads_split_from_local_replica(self, config, split):
        store = InMemoryStore({b"a": {b"x": b"1"}, b"b": {}, b"c": {b"y": b"2"}})
        provider = provider_for(store)
        reader = RangeRecordReader()

        reader.initialize(split, replace(config, split_size=4), provider, local_addresses={"10.0.0.6"})
        records = list(reader.records())
        reader.close()

        assert provider.calls == [("10.0.0.6", 9160, "ks", None)]
        assert keys(records) == [b"a", b"c"]
        assert reader.get_progress() == 0.5
        assert store.close_count == 1

    def test_falls_back_to_first_replica(self, config, split):
        provider = provider_for(InMemoryStore({}))
        reader = RangeRecordReader()

        reader.initialize(split, config, provider, local_addresses=set())

        assert provider.calls[0][0] == "10.0.0.5"

    def test_credentials_are_passed_to_provider(self, config, split):
        provider = provider_for(InMemoryStore({}))
        reader = RangeRecordReader()

        reader.initialize(split, replace(config, username="reader", password="secret"), provider,
                          local_addresses=set())

        assert provider.calls[0][3] == {"username": "reader", "password": "secret"}

    def test_record_builder_shapes_current_value(self, config, split):
        store = InMemoryStore({b"a": {b"x": b"1"}})
        reader = RangeRecordReader(record_builder=lambda pair: (pair[0], len(pair[1])))
        reader.initialize(split, config, provider_for(store), local_addresses=set())

        assert reader.next_key_value() is True
        assert reader.get_current_key() is None
        assert reader.get_current_value() == (b"a", 1)
        assert reader.next_key_value() is False

    def test_wide_row_progress_can_exceed_one(self, config, split):
        store = InMemoryStore({b"a": {b"c1": b"", b"c2": b"", b"c3": b"", b"c4": b"", b"c5": b""}})
        reader = RangeRecordReader()
        reader.initialize(split, replace(config, wide_rows=True, split_size=2), provider_for(store),
                          local_addresses=set())

        list(reader.records())

        assert reader.rows_read() == 5
        assert reader.get_progress() == 2.5

    def test_progress_is_zero_before_initialize(self):
        assert RangeRecordReader().get_progress() == 0.0

    def test_reading_before_initialize_fails(self):
        with pytest.raises(RuntimeError):
            RangeRecordReader().next_key_value()

    def test_close_is_idempotent(self, config, split):
        store = InMemoryStore({})
        reader = RangeRecordReader()
        reader.close()
        reader.initialize(split, config, provider_for(store), local_addresses=set())

        reader.close()
        reader.close()

        assert store.close_count == 1

    def test_connect_failure_is_a_transport_error(self, config, split):
        def refuse(host, port, keyspace, credentials):
            raise ConnectionRefusedError("refused")
        reader = RangeRecordReader()

        with pytest.raises(TransportError) as excinfo:
            reader.initialize(split, config, refuse, local_addresses=set())

        assert excinfo.value.operation == "connect"
        assert excinfo.value.host == "10.0.0.5"
        reader.close()
