"""
Cassandra Range Reader Configuration Loader

This module loads and processes configuration for reading a token-range split
of a Cassandra column family into Databricks.
"""

import binascii
import json
import warnings
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, List, Optional

from .cassandra_errors import ConfigurationError
from .cassandra_thrift import IndexExpression, SlicePredicate, SliceRange


DEFAULT_RPC_PORT = 9160
DEFAULT_BATCH_SIZE = 4096
DEFAULT_SPLIT_SIZE = 64 * 1024
MAX_SLICE_COUNT = 2147483647

INDEX_OPERATORS = ("EQ", "GTE", "GT", "LTE", "LT")


class ConsistencyLevel(str, Enum):
    """
    Read consistency levels understood by the store.
    """
    ONE = "ONE"
    TWO = "TWO"
    THREE = "THREE"
    QUORUM = "QUORUM"
    LOCAL_QUORUM = "LOCAL_QUORUM"
    EACH_QUORUM = "EACH_QUORUM"
    ALL = "ALL"
    ANY = "ANY"
    LOCAL_ONE = "LOCAL_ONE"

    def __str__(self):
        """Return the string value for compatibility with client libraries."""
        return self.value

    @classmethod
    def from_string(cls, level_str: str) -> 'ConsistencyLevel':
        """
        Convert string to ConsistencyLevel enum.

        Args:
            level_str: Consistency level name (case-insensitive)

        Returns:
            ConsistencyLevel enum value

        Raises:
            ConfigurationError: If level_str is not a valid consistency level
        """
        try:
            return cls(str(level_str).upper())
        except ValueError:
            valid_levels = [c.value for c in cls]
            raise ConfigurationError(
                f"Invalid consistency level '{level_str}'. Valid levels: {valid_levels}"
            )


@dataclass
class InputSplit:
    """A token range of the ring together with the replicas that own it."""
    start_token: str
    end_token: str
    locations: List[str]


@dataclass
class ReaderConfig:
    """Complete configuration for reading one column family."""
    keyspace: str
    column_family: str
    predicate: Optional[SlicePredicate] = None
    row_filter: Optional[List[IndexExpression]] = None
    consistency_level: ConsistencyLevel = ConsistencyLevel.ONE
    batch_size: int = DEFAULT_BATCH_SIZE
    split_size: int = DEFAULT_SPLIT_SIZE
    wide_rows: bool = False
    rpc_port: int = DEFAULT_RPC_PORT
    username: Optional[str] = None
    password: Optional[str] = None
    verbose: bool = False

    @property
    def credentials(self) -> Optional[Dict[str, str]]:
        """Login credentials for the connection provider, or None for anonymous access."""
        if self.username is None:
            return None
        return {"username": self.username, "password": self.password}


def _to_bytes(value: Any, what: str) -> bytes:
    """
    Convert a configured bytes value.

    Accepts raw bytes, a UTF-8 string, or {"hex": "..."} for binary names.
    """
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, dict) and "hex" in value:
        try:
            return binascii.unhexlify(value["hex"])
        except (binascii.Error, TypeError) as e:
            raise ConfigurationError(f"Invalid hex value for {what}: {value['hex']!r}") from e
    raise ConfigurationError(f"Unsupported value for {what}: {value!r}")


def _positive_int(value: Any, what: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{what} must be an integer, got {value!r}") from e
    if number <= 0:
        raise ConfigurationError(f"{what} must be positive, got {number}")
    return number


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def process_predicate(predicate: Optional[Dict[str, Any]]) -> Optional[SlicePredicate]:
    """
    Build a SlicePredicate from its configuration dict.

    Args:
        predicate: {"column_names": [...]} and/or {"slice_range": {...}}, or None

    Returns:
        SlicePredicate, or None when no predicate is configured (all columns)
    """
    if predicate is None:
        return None

    column_names = predicate.get("column_names")
    names = None
    if column_names is not None:
        names = [_to_bytes(name, "predicate column name") for name in column_names]

    slice_range = None
    if predicate.get("slice_range") is not None:
        raw_range = predicate["slice_range"]
        slice_range = SliceRange(
            start=_to_bytes(raw_range.get("start"), "slice_range.start"),
            finish=_to_bytes(raw_range.get("finish"), "slice_range.finish"),
            reversed=_to_bool(raw_range.get("reversed", False)),
            count=_positive_int(raw_range.get("count", MAX_SLICE_COUNT), "slice_range.count"),
        )

    if names is None and slice_range is None:
        warnings.warn(
            "predicate has neither column_names nor slice_range - reading all columns.",
            UserWarning
        )
        return None

    return SlicePredicate(column_names=names, slice_range=slice_range)


def process_row_filter(row_filter: Optional[List[Dict[str, Any]]]) -> Optional[List[IndexExpression]]:
    """
    Build secondary-index filter expressions from their configuration dicts.
    """
    if not row_filter:
        return None

    expressions = []
    for raw in row_filter:
        op = str(raw.get("op", "EQ")).upper()
        if op not in INDEX_OPERATORS:
            raise ConfigurationError(
                f"Invalid row_filter operator '{op}'. Valid operators: {list(INDEX_OPERATORS)}"
            )
        if "column_name" not in raw:
            raise ConfigurationError(f"row_filter expression is missing column_name: {raw}")
        expressions.append(IndexExpression(
            column_name=_to_bytes(raw["column_name"], "row_filter.column_name"),
            op=op,
            value=_to_bytes(raw.get("value"), "row_filter.value"),
        ))
    return expressions


def load_config(config_file: str) -> Dict[str, Any]:
    """
    Load configuration from a JSON file.

    Args:
        config_file: Path to the JSON configuration file.

    Returns:
        Dictionary containing the configuration

    Raises:
        ConfigurationError: If the file cannot be read or is not valid JSON
    """
    try:
        with open(config_file, 'r') as f:
            config = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Error loading config file {config_file}: {e}") from e
    return config


def process_config(config: Dict[str, Any]) -> ReaderConfig:
    """
    Process configuration by extracting values and applying defaults.

    This function:
    - Extracts keyspace and column family (both required)
    - Builds the slice predicate and secondary-index filters
    - Parses the consistency level
    - Validates batch and split sizes

    Args:
        config: Raw configuration dictionary

    Returns:
        Processed configuration as a ReaderConfig dataclass instance

    Raises:
        ConfigurationError: If a required key is missing or a value is invalid
    """
    input_config = config.get("input") or {}
    connection_config = config.get("cassandra") or {}

    for required in ("keyspace", "column_family"):
        if not input_config.get(required):
            raise ConfigurationError(f"input.{required} is required")

    username = connection_config.get("username")
    password = connection_config.get("password")
    if password is not None and username is None:
        warnings.warn(
            "cassandra.password is set without cassandra.username - connecting anonymously.",
            UserWarning
        )

    return ReaderConfig(
        keyspace=input_config["keyspace"],
        column_family=input_config["column_family"],
        predicate=process_predicate(input_config.get("predicate")),
        row_filter=process_row_filter(input_config.get("row_filter")),
        consistency_level=ConsistencyLevel.from_string(input_config.get("consistency_level", "ONE")),
        batch_size=_positive_int(input_config.get("batch_size", DEFAULT_BATCH_SIZE), "input.batch_size"),
        split_size=_positive_int(input_config.get("split_size", DEFAULT_SPLIT_SIZE), "input.split_size"),
        wide_rows=_to_bool(input_config.get("wide_rows", False)),
        rpc_port=_positive_int(connection_config.get("rpc_port", DEFAULT_RPC_PORT), "cassandra.rpc_port"),
        username=username,
        password=password,
        verbose=_to_bool(config.get("verbose", False)),
    )


def process_split(split: Dict[str, Any]) -> InputSplit:
    """
    Build an InputSplit from {"start_token", "end_token", "locations"}.

    Raises:
        ConfigurationError: If a token is missing or no location is listed
    """
    for required in ("start_token", "end_token"):
        if split.get(required) is None:
            raise ConfigurationError(f"split.{required} is required")

    locations = split.get("locations") or []
    if isinstance(locations, str):
        locations = [loc.strip() for loc in locations.split(",") if loc.strip()]
    if not locations:
        raise ConfigurationError("split.locations must list at least one endpoint")

    return InputSplit(
        start_token=str(split["start_token"]),
        end_token=str(split["end_token"]),
        locations=list(locations),
    )


def load_and_process_config(config_file: str) -> ReaderConfig:
    """
    Load and process configuration in one step.

    Args:
        config_file: Path to the JSON configuration file.

    Returns:
        Fully processed configuration as a ReaderConfig dataclass instance
    """
    return process_config(load_config(config_file))
