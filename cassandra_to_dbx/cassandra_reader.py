"""
Cassandra Token-Range Reader

Streams the rows of one token-range split as (key, columns) pairs, one page
of at most batch_size rows in memory at a time.

Two iteration strategies share the same SchemaContext:

- StaticRowIterator: one pair per row holding all of the row's columns.
  Pages are fetched with get_range_slices, resuming after the token of the
  last row of the previous page. Ghost rows (no live columns, left behind by
  deletes) are dropped when the predicate selects all columns.

- WideRowIterator: one pair per column, for rows too wide to fetch whole.
  Pages are fetched with get_paged_slice, resuming at the last emitted
  (row key, column name). The store includes that boundary column again at the
  head of the next page; it is skipped so no column is emitted twice.

Both are plain Python iterators: lazy, finite and not restartable. The only
blocking point is the store call made when a page runs out. Any failure ends
the iteration; nothing is retried.
"""

from typing import Callable, Iterator, List, Optional, Protocol

from .cassandra_columns import RowColumnPair, sorted_columns, unmarshal
from .cassandra_config import InputSplit, ReaderConfig
from .cassandra_conn import ConnectionProvider, StoreConnection
from .cassandra_endpoint import select_endpoint
from .cassandra_errors import ConfigurationError, ProtocolError
from .cassandra_schema import SchemaContext, load_schema_context
from .cassandra_thrift import ColumnParent, KeyRange, SlicePredicate, SliceRange, is_empty_predicate


class RowIterator(Protocol):
    """What the record reader needs from an iteration strategy."""

    def __iter__(self) -> Iterator[RowColumnPair]: ...

    def __next__(self) -> RowColumnPair: ...

    def rows_read(self) -> int: ...


class StaticRowIterator:
    """Emits one (key, all columns) pair per live row of the split."""

    def __init__(
        self,
        connection: StoreConnection,
        schema: SchemaContext,
        split: InputSplit,
        config: ReaderConfig,
    ) -> None:
        self._connection = connection
        self._schema = schema
        self._split = split
        self._column_parent = ColumnParent(config.column_family)
        # The store needs an explicit predicate; an empty slice range means all columns
        self._predicate = config.predicate or SlicePredicate(slice_range=SliceRange())
        self._filter_ghosts = is_empty_predicate(config.predicate)
        self._row_filter = config.row_filter
        self._consistency_level = config.consistency_level
        self._batch_size = config.batch_size
        self.verbose = config.verbose

        self._rows: List = []
        self._position = 0
        self._last_token: Optional[str] = None
        self._exhausted = False
        self._total_read = 0

    def rows_read(self) -> int:
        """Number of rows emitted so far."""
        return self._total_read

    def __iter__(self) -> 'StaticRowIterator':
        return self

    def __next__(self) -> RowColumnPair:
        if not self._maybe_refill():
            raise StopIteration

        row = self._rows[self._position]
        self._position += 1
        try:
            columns = sorted_columns(
                (unmarshal(cosc, self._schema.sub_comparator) for cosc in row.columns or []),
                self._schema.comparator,
            )
        except Exception:
            self._stop()
            raise
        self._total_read += 1
        return row.key, columns

    def _stop(self) -> None:
        """End the iteration for good; nothing is fetched after a failure."""
        self._exhausted = True
        self._rows, self._position = [], 0

    def _maybe_refill(self) -> bool:
        """Make sure a row is available at the current position; False once the split is done."""
        if self._position < len(self._rows):
            return True

        self._rows, self._position = [], 0
        ghost_pages = 0
        while not self._exhausted:
            try:
                page = self._fetch_page()
            except Exception:
                self._stop()
                raise
            if page is None:
                self._exhausted = True
                break

            rows = page
            if self._filter_ghosts:
                rows = [row for row in page if row.columns]

            if rows:
                self._rows = rows
                return True

            # All ghosts: keep paging from the end of this page
            ghost_pages += 1
            if self.verbose:
                print(f"👻 Skipped page of {len(page)} deleted rows ({ghost_pages} in a row)")
        return False

    def _fetch_page(self) -> Optional[List]:
        """Fetch the next page of rows, or None once the split is exhausted."""
        if self._last_token is None:
            start_token = self._split.start_token
        else:
            start_token = self._last_token
            if start_token == self._split.end_token:
                # reached end of the split
                return None

        key_range = KeyRange(
            count=self._batch_size,
            start_token=start_token,
            end_token=self._split.end_token,
            row_filter=self._row_filter,
        )
        rows = self._connection.get_range_slices(
            self._column_parent, self._predicate, key_range, self._consistency_level
        )
        if self.verbose:
            print(f"📥 Read {len(rows or [])} rows after token {start_token}")

        # nothing new? reached the end
        if not rows:
            return None

        last_token = self._schema.partitioner.token_for(rows[-1].key)
        if last_token == start_token:
            raise ProtocolError(
                f"Range slice starting after token {start_token} did not advance past it"
            )
        self._last_token = last_token
        return rows

    def __repr__(self):
        return (f"StaticRowIterator({self._column_parent.column_family}, "
                f"tokens={self._split.start_token}->{self._split.end_token}, batch={self._batch_size})")


class WideRowIterator:
    """Emits one (key, {name: column}) pair per column of the split."""

    def __init__(
        self,
        connection: StoreConnection,
        schema: SchemaContext,
        split: InputSplit,
        config: ReaderConfig,
    ) -> None:
        self._connection = connection
        self._schema = schema
        self._split = split
        self._column_family = config.column_family
        self._row_filter = config.row_filter
        self._consistency_level = config.consistency_level
        self._batch_size = config.batch_size
        self.verbose = config.verbose

        self._page_pairs: Iterator[RowColumnPair] = iter(())
        # Low-water mark: last emitted (row key, column name)
        self._last_key: Optional[bytes] = None
        self._last_column = b""
        self._exhausted = False
        self._total_read = 0

    def rows_read(self) -> int:
        """Number of columns emitted so far."""
        return self._total_read

    def __iter__(self) -> 'WideRowIterator':
        return self

    def __next__(self) -> RowColumnPair:
        pair = self._next_pair()
        if pair is None:
            raise StopIteration

        self._total_read += 1
        key, columns = pair
        self._last_key = key
        self._last_column = next(iter(columns))
        return pair

    def _next_pair(self) -> Optional[RowColumnPair]:
        if self._exhausted:
            return None

        try:
            return self._advance()
        except Exception:
            # Fatal for this iteration: nothing is fetched after a failure
            self._exhausted = True
            self._page_pairs = iter(())
            raise

    def _advance(self) -> Optional[RowColumnPair]:
        pair = next(self._page_pairs, None)
        if pair is not None:
            return pair

        page_pairs = self._iter_columns(self._fetch_page())
        pair = next(page_pairs, None)
        if pair is not None and self._is_low_water_mark(pair):
            pair = next(page_pairs, None)

        if pair is None:
            self._exhausted = True
            self._page_pairs = iter(())
            return None

        self._page_pairs = page_pairs
        return pair

    def _is_low_water_mark(self, pair: RowColumnPair) -> bool:
        key, columns = pair
        return key == self._last_key and next(iter(columns)) == self._last_column

    def _iter_columns(self, rows: List) -> Iterator[RowColumnPair]:
        """Walk rows in order, and the columns of each row in order, one pair per column."""
        for row in rows:
            for cosc in row.columns or []:
                entry = unmarshal(cosc, self._schema.sub_comparator)
                yield row.key, {entry.name: entry}

    def _fetch_page(self) -> List:
        if self._last_key is None:
            key_range = KeyRange(
                count=self._batch_size,
                start_token=self._split.start_token,
                end_token=self._split.end_token,
                row_filter=self._row_filter,
            )
        else:
            key_range = KeyRange(
                count=self._batch_size,
                start_key=self._last_key,
                end_token=self._split.end_token,
                row_filter=self._row_filter,
            )

        rows = self._connection.get_paged_slice(
            self._column_family, key_range, self._last_column, self._consistency_level
        ) or []
        if self.verbose:
            n = sum(len(row.columns or []) for row in rows)
            print(f"📥 Read {n} columns in {len(rows)} rows starting with "
                  f"{self._last_key!r}/{self._last_column!r}")
        return rows

    def __repr__(self):
        return (f"WideRowIterator({self._column_family}, "
                f"tokens={self._split.start_token}->{self._split.end_token}, batch={self._batch_size})")


def create_row_iterator(
    connection: StoreConnection,
    schema: SchemaContext,
    split: InputSplit,
    config: ReaderConfig,
) -> RowIterator:
    """
    Create the iteration strategy selected by config.wide_rows.

    Raises:
        ConfigurationError: If wide rows are requested with batch_size < 2
    """
    if config.wide_rows:
        if config.batch_size < 2:
            # A one-column page would only ever hold the repeated boundary column
            raise ConfigurationError("wide row reads need batch_size >= 2")
        return WideRowIterator(connection, schema, split, config)
    return StaticRowIterator(connection, schema, split, config)


class RangeRecordReader:
    """
    Record reader for one split, driven by a host framework.

    Lifecycle:
        reader = RangeRecordReader(record_builder)
        reader.initialize(split, config, connection_provider)
        while reader.next_key_value():
            record = reader.get_current_value()
        reader.close()

    Example:
        >>> reader = RangeRecordReader()
        >>> reader.initialize(split, config, my_thrift_provider)
        >>> try:
        ...     for key, columns in reader.records():
        ...         print(key, list(columns))
        ... finally:
        ...     reader.close()
    """

    def __init__(self, record_builder: Optional[Callable[[RowColumnPair], object]] = None) -> None:
        self._record_builder = record_builder
        self._connection: Optional[StoreConnection] = None
        self._iter: Optional[RowIterator] = None
        self._config: Optional[ReaderConfig] = None
        self._current = None

    def initialize(
        self,
        split: InputSplit,
        config: ReaderConfig,
        connection_provider: ConnectionProvider,
        local_addresses=None,
    ) -> None:
        """
        Connect to a replica of the split and prepare iteration.

        Args:
            split: Token range and replica locations to read
            config: Processed ReaderConfig
            connection_provider: Builds an authenticated client for (host, port, keyspace, credentials)
            local_addresses: Addresses of this machine (default: discovered from the interfaces)

        Raises:
            ConfigurationError: If the split has no locations or schema metadata is unusable
            TransportError: If connecting or describing the schema fails
        """
        self._config = config

        # only need to connect once
        if self._connection is None or not self._connection.is_open:
            host = select_endpoint(split.locations, local_addresses)
            if config.verbose:
                print(f"🎯 Reading split {split.start_token}->{split.end_token} from {host}")
            self._connection = StoreConnection(
                connection_provider,
                host,
                config.rpc_port,
                config.keyspace,
                credentials=config.credentials,
                verbose=config.verbose,
            )
            self._connection.open()

        schema = load_schema_context(self._connection, config.keyspace, config.column_family)
        self._iter = create_row_iterator(self._connection, schema, split, config)
        if config.verbose:
            print(f"📖 Created {self._iter!r}")

    def next_key_value(self) -> bool:
        """Advance to the next record. Returns False when the split is exhausted."""
        if self._iter is None:
            raise RuntimeError("RangeRecordReader.initialize() must be called before reading")

        pair = next(self._iter, None)
        if pair is None:
            self._current = None
            return False

        self._current = self._record_builder(pair) if self._record_builder else pair
        return True

    def get_current_key(self) -> None:
        """Records carry their row key in the value; there is no separate key."""
        return None

    def get_current_value(self):
        return self._current

    def records(self) -> Iterator:
        """Yield every remaining record of the split."""
        while self.next_key_value():
            yield self._current

    def rows_read(self) -> int:
        return self._iter.rows_read() if self._iter is not None else 0

    def get_progress(self) -> float:
        """
        Fraction of the split read so far: rows read / estimated split size.

        In wide row mode every column counts as a row, so this can exceed 1.0.
        """
        if self._iter is None or self._config is None or self._config.split_size <= 0:
            return 0.0
        return float(self._iter.rows_read()) / self._config.split_size

    def close(self) -> None:
        """Close the connection. Safe to call more than once, or before initialize()."""
        if self._connection is not None:
            self._connection.close()
