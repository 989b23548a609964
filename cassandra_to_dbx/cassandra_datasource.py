"""
PySpark Data Source for Cassandra Token Ranges

Registers a Python Data Source that reads a column family split by split:
each token-range split becomes one Spark input partition, read on an executor
by a RangeRecordReader.

Usage (Databricks / Spark 4):
    >>> from cassandra_to_dbx.cassandra_datasource import CassandraRangeDataSource
    >>> spark.dataSource.register(CassandraRangeDataSource)
    >>> df = (spark.read.format("cassandra_range")
    ...       .option("keyspace", "titan")
    ...       .option("column_family", "edgestore")
    ...       .option("connection_provider", "my_thrift:connect")
    ...       .option("splits", json.dumps([
    ...           {"start_token": "0", "end_token": "1000", "locations": ["10.0.0.5"]}]))
    ...       .load())

Options:
    keyspace, column_family (required)
    splits: JSON list of {"start_token", "end_token", "locations"} (required)
    connection_provider: "module:callable" building a client for
                         (host, port, keyspace, credentials) (required)
    predicate, row_filter: JSON, same layout as the configuration file
    consistency_level, batch_size, split_size, wide_rows, rpc_port,
    username, password, verbose
"""

import importlib
import json
from typing import Any, Dict, Iterator, List, Tuple

from pyspark.sql.datasource import DataSource, DataSourceReader, InputPartition

from .cassandra_columns import RowColumnPair, SuperColumn
from .cassandra_config import InputSplit, process_config, process_split
from .cassandra_conn import ConnectionProvider
from .cassandra_errors import ConfigurationError
from .cassandra_reader import RangeRecordReader


RECORD_SCHEMA = (
    "key binary, "
    "columns array<struct<"
    "name: binary, value: binary, timestamp: bigint, "
    "subcolumns: array<struct<name: binary, value: binary, timestamp: bigint>>>>"
)

_CONFIG_OPTIONS = (
    "consistency_level", "batch_size", "split_size", "wide_rows",
)
_CONNECTION_OPTIONS = ("rpc_port", "username", "password")


def build_record(pair: RowColumnPair) -> Tuple:
    """
    Default record builder: one row of RECORD_SCHEMA per (key, columns) pair.

    Super columns carry their members in subcolumns and have no value or
    timestamp of their own.
    """
    key, columns = pair
    entries = []
    for entry in columns.values():
        if isinstance(entry, SuperColumn):
            subcolumns = [(sub.name, sub.value, sub.timestamp) for sub in entry.subcolumns]
            entries.append((entry.name, None, None, subcolumns))
        else:
            entries.append((entry.name, entry.value, entry.timestamp, None))
    return key, entries


def resolve_connection_provider(reference: str) -> ConnectionProvider:
    """
    Import a connection provider named as "package.module:callable".

    Raises:
        ConfigurationError: If the reference is malformed or cannot be imported
    """
    if not reference or ":" not in reference:
        raise ConfigurationError(
            f"connection_provider must look like 'module:callable', got {reference!r}"
        )
    module_name, attribute = reference.split(":", 1)
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import connection provider module '{module_name}': {e}") from e

    provider = getattr(module, attribute, None)
    if not callable(provider):
        raise ConfigurationError(f"'{reference}' is not a callable connection provider")
    return provider


def options_to_config(options: Dict[str, str]) -> Dict[str, Any]:
    """
    Translate flat Data Source options into the configuration file layout
    understood by process_config().
    """
    input_config: Dict[str, Any] = {
        "keyspace": options.get("keyspace"),
        "column_family": options.get("column_family"),
    }
    for name in _CONFIG_OPTIONS:
        if options.get(name) is not None:
            input_config[name] = options[name]
    for name in ("predicate", "row_filter"):
        if options.get(name):
            try:
                input_config[name] = json.loads(options[name])
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Option '{name}' is not valid JSON: {e}") from e

    connection_config = {
        name: options[name] for name in _CONNECTION_OPTIONS if options.get(name) is not None
    }
    return {
        "cassandra": connection_config,
        "input": input_config,
        "verbose": options.get("verbose", False),
    }


class TokenRangePartition(InputPartition):
    """One token-range split of the ring, read by a single Spark task."""

    def __init__(self, partition_id: int, split: InputSplit):
        self.partition_id = partition_id
        self.split = split

    def __repr__(self):
        return (f"TokenRangePartition(id={self.partition_id}, "
                f"start={self.split.start_token}, end={self.split.end_token}, "
                f"locations={self.split.locations})")


class CassandraRangeReader(DataSourceReader):
    """Plans one partition per split and reads each with a RangeRecordReader."""

    def __init__(self, options: Dict[str, str]):
        self.options = options
        self.config = process_config(options_to_config(options))

    def partitions(self) -> List[TokenRangePartition]:
        raw_splits = self.options.get("splits")
        if not raw_splits:
            raise ConfigurationError("Option 'splits' is required")
        try:
            splits = json.loads(raw_splits)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Option 'splits' is not valid JSON: {e}") from e
        if not isinstance(splits, list) or not splits:
            raise ConfigurationError("Option 'splits' must be a non-empty JSON list")
        return [TokenRangePartition(i, process_split(split)) for i, split in enumerate(splits)]

    def read(self, partition: TokenRangePartition) -> Iterator[Tuple]:
        provider = resolve_connection_provider(self.options.get("connection_provider"))
        reader = RangeRecordReader(record_builder=build_record)
        try:
            reader.initialize(partition.split, self.config, provider)
            yield from reader.records()
        finally:
            reader.close()


class CassandraRangeDataSource(DataSource):
    """
    Spark Data Source reading a Cassandra column family by token range.

    Format name: "cassandra_range".
    """

    @classmethod
    def name(cls) -> str:
        return "cassandra_range"

    def schema(self) -> str:
        return RECORD_SCHEMA

    def reader(self, schema) -> CassandraRangeReader:
        return CassandraRangeReader(self.options)
