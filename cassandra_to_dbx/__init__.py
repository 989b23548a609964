"""
Cassandra to Databricks Range Reader

This package streams the rows of a Cassandra column family, one token-range
split at a time, over the Thrift API and exposes them to Spark through a
Python Data Source.
"""

# Configuration
from .cassandra_config import (
    ConsistencyLevel,
    InputSplit,
    ReaderConfig,
    load_and_process_config,
    process_config,
    process_split,
)

# Errors
from .cassandra_errors import (
    ReaderError,
    ConfigurationError,
    TransportError,
    ProtocolError,
)

# Columns and schema metadata
from .cassandra_columns import Column, SuperColumn, unmarshal
from .cassandra_schema import ColumnComparator, Partitioner, SchemaContext, load_schema_context

# Connection and endpoint selection
from .cassandra_conn import StoreConnection
from .cassandra_endpoint import select_endpoint

# Readers
from .cassandra_reader import (
    RangeRecordReader,
    StaticRowIterator,
    WideRowIterator,
    create_row_iterator,
)

# Spark Data Source
from .cassandra_datasource import CassandraRangeDataSource, build_record

__all__ = [
    # Configuration
    'ConsistencyLevel',
    'InputSplit',
    'ReaderConfig',
    'load_and_process_config',
    'process_config',
    'process_split',

    # Errors
    'ReaderError',
    'ConfigurationError',
    'TransportError',
    'ProtocolError',

    # Columns and schema metadata
    'Column',
    'SuperColumn',
    'unmarshal',
    'ColumnComparator',
    'Partitioner',
    'SchemaContext',
    'load_schema_context',

    # Connection and endpoint selection
    'StoreConnection',
    'select_endpoint',

    # Readers
    'RangeRecordReader',
    'StaticRowIterator',
    'WideRowIterator',
    'create_row_iterator',

    # Spark Data Source
    'CassandraRangeDataSource',
    'build_record',
]

__version__ = '0.1.0'
