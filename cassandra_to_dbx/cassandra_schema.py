"""
Cassandra Schema Metadata

Partitioner and column-name comparators for one column family, fetched once
per reader and shared by both iteration strategies.

Type strings are parsed with cassandra-driver (cassandra.cqltypes); hash
partitioner tokens are computed with its Murmur3Token / MD5Token.
"""

import binascii
import functools
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from cassandra.cqltypes import lookup_casstype
from cassandra.marshal import int64_unpack, uint16_unpack
from cassandra.metadata import MD5Token, Murmur3Token

from .cassandra_errors import ConfigurationError, ProtocolError


PROTOCOL_VERSION = 4

# Column names of these types compare as unsigned bytes
_BYTE_ORDERED_TYPES = {"BytesType", "AsciiType", "UTF8Type"}

# Column names of these types compare by their decoded value
_VALUE_ORDERED_TYPES = {
    "LongType", "Int32Type", "IntegerType", "DecimalType", "DoubleType", "FloatType",
    "DateType", "TimestampType", "BooleanType", "CounterColumnType",
}

_UUID_TYPES = {"UUIDType", "TimeUUIDType"}


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def _compare_bytes(a: bytes, b: bytes) -> int:
    return _cmp(a, b)


def _deserialize(casstype, name: bytes):
    try:
        return casstype.deserialize(name, PROTOCOL_VERSION)
    except Exception as e:
        raise ProtocolError(
            f"Column name {name!r} is not a valid {casstype.cassname} value: {e}"
        ) from e


def _value_compare(casstype) -> Callable[[bytes, bytes], int]:
    def compare(a: bytes, b: bytes) -> int:
        # Empty names sort before every value
        if not a or not b:
            return _cmp(len(a), len(b))
        return _cmp(_deserialize(casstype, a), _deserialize(casstype, b))
    return compare


def _uuid_compare(a: bytes, b: bytes) -> int:
    if not a or not b:
        return _cmp(len(a), len(b))
    try:
        ua, ub = uuid.UUID(bytes=a), uuid.UUID(bytes=b)
    except ValueError as e:
        raise ProtocolError(f"Column name is not a UUID: {e}") from e
    if ua.version == 1 and ub.version == 1:
        by_time = _cmp(ua.time, ub.time)
        if by_time:
            return by_time
    return _compare_bytes(a, b)


def _lexical_uuid_compare(a: bytes, b: bytes) -> int:
    """Signed most-significant long first, then signed least-significant long."""
    if not a or not b:
        return _cmp(len(a), len(b))
    if len(a) != 16 or len(b) != 16:
        raise ProtocolError(f"LexicalUUIDType column name is not 16 bytes: {a!r} / {b!r}")
    return _cmp((int64_unpack(a[:8]), int64_unpack(a[8:])),
                (int64_unpack(b[:8]), int64_unpack(b[8:])))


def _split_composite(name: bytes) -> List[bytes]:
    """Split a CompositeType name into its components (2-byte length, bytes, end-of-component byte)."""
    components = []
    pos = 0
    while pos < len(name):
        if pos + 2 > len(name):
            raise ProtocolError(f"Truncated composite column name: {name!r}")
        length = uint16_unpack(name[pos:pos + 2])
        start = pos + 2
        end = start + length
        if end + 1 > len(name):
            raise ProtocolError(f"Truncated composite column name: {name!r}")
        components.append(name[start:end])
        pos = end + 1
    return components


def _composite_compare(subtypes) -> Callable[[bytes, bytes], int]:
    component_compares = [_build_compare(subtype) for subtype in subtypes]

    def compare(a: bytes, b: bytes) -> int:
        parts_a, parts_b = _split_composite(a), _split_composite(b)
        for i, (part_a, part_b) in enumerate(zip(parts_a, parts_b)):
            compare_part = component_compares[i] if i < len(component_compares) else _compare_bytes
            result = compare_part(part_a, part_b)
            if result:
                return result
        return _cmp(len(parts_a), len(parts_b))
    return compare


def _build_compare(casstype) -> Callable[[bytes, bytes], int]:
    name = casstype.cassname
    if name == "ReversedType":
        inner = _build_compare(casstype.subtypes[0])
        return lambda a, b: -inner(a, b)
    if name == "CompositeType":
        return _composite_compare(casstype.subtypes)
    if name in _UUID_TYPES:
        return _uuid_compare
    if name == "LexicalUUIDType":
        return _lexical_uuid_compare
    if name in _VALUE_ORDERED_TYPES:
        return _value_compare(casstype)
    return _compare_bytes


class ColumnComparator:
    """
    Total order over column names, as defined by the column family's comparator type.

    Unknown types fall back to unsigned byte order, which is also the order
    of BytesType, AsciiType and UTF8Type.
    """

    def __init__(self, casstype):
        self.casstype = casstype
        self._compare = _build_compare(casstype)
        self.sort_key = functools.cmp_to_key(self.compare)

    @classmethod
    def parse(cls, type_string: str) -> 'ColumnComparator':
        """
        Build a comparator from a marshal type string such as
        'org.apache.cassandra.db.marshal.UTF8Type' or 'CompositeType(UTF8Type,LongType)'.

        Raises:
            ConfigurationError: If the type string cannot be parsed
        """
        if not type_string or not isinstance(type_string, str):
            raise ConfigurationError(f"Missing comparator type: {type_string!r}")
        try:
            casstype = lookup_casstype(type_string)
        except (ValueError, KeyError, IndexError, AssertionError) as e:
            raise ConfigurationError(f"Unable to parse comparator type '{type_string}': {e}") from e
        if casstype.cassname in ("ReversedType", "CompositeType") and not casstype.subtypes:
            raise ConfigurationError(f"Comparator type '{type_string}' is missing its parameters")
        return cls(casstype)

    @property
    def type_name(self) -> str:
        return self.casstype.cassname

    def compare(self, a: bytes, b: bytes) -> int:
        return self._compare(a, b)

    def __repr__(self):
        return f"ColumnComparator({self.type_name})"


def _murmur3_token(key: bytes) -> str:
    return str(Murmur3Token.from_key(key).value)


def _md5_token(key: bytes) -> str:
    return str(MD5Token.from_key(key).value)


def _bytes_token(key: bytes) -> str:
    return binascii.hexlify(key).decode("ascii")


def _string_token(key: bytes) -> str:
    try:
        return key.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolError(f"Row key {key!r} is not valid UTF-8 for OrderPreservingPartitioner") from e


_TOKEN_FUNCTIONS: Dict[str, Callable[[bytes], str]] = {
    "Murmur3Partitioner": _murmur3_token,
    "RandomPartitioner": _md5_token,
    "ByteOrderedPartitioner": _bytes_token,
    "OrderPreservingPartitioner": _string_token,
}


class Partitioner:
    """
    Maps row keys to token strings for the cluster's partitioner.

    Token strings use the server's own notation, so they can be sent back as
    KeyRange.start_token and compared with split boundaries.
    """

    def __init__(self, class_name: str):
        if not class_name or not isinstance(class_name, str):
            raise ConfigurationError(f"Missing partitioner class name: {class_name!r}")
        self.class_name = class_name
        self.name = class_name.rsplit(".", 1)[-1]
        try:
            self._token_fn = _TOKEN_FUNCTIONS[self.name]
        except KeyError:
            raise ConfigurationError(
                f"Unsupported partitioner '{class_name}'. Supported: {sorted(_TOKEN_FUNCTIONS)}"
            )
        if self.name == "Murmur3Partitioner":
            # Murmur3 hashing needs the driver's murmur3 extension
            try:
                self._token_fn(b"")
            except Exception as e:
                raise ConfigurationError(f"Murmur3 hashing is unavailable: {e}") from e

    def token_for(self, key: bytes) -> str:
        return self._token_fn(key)

    def __repr__(self):
        return f"Partitioner({self.name})"


@dataclass(frozen=True)
class SchemaContext:
    """Schema metadata shared by the static and wide row iterators."""
    partitioner: Partitioner
    comparator: ColumnComparator
    sub_comparator: Optional[ColumnComparator] = None


def load_schema_context(connection, keyspace: str, column_family: str) -> SchemaContext:
    """
    Fetch partitioner and comparators for a column family.

    Args:
        connection: StoreConnection (or any client offering describe_partitioner
                    and describe_keyspace)
        keyspace: Keyspace name
        column_family: Column family name

    Returns:
        SchemaContext

    Raises:
        ConfigurationError: If the column family is unknown or its metadata
                            cannot be parsed
        TransportError: If a describe call fails
    """
    partitioner = Partitioner(connection.describe_partitioner())

    ks_def = connection.describe_keyspace(keyspace)
    cf_defs = getattr(ks_def, "cf_defs", None) or []
    cf_def = next((cf for cf in cf_defs if cf.name == column_family), None)
    if cf_def is None:
        raise ConfigurationError(
            f"Column family '{column_family}' not found in keyspace '{keyspace}'. "
            f"Available: {[cf.name for cf in cf_defs]}"
        )

    comparator = ColumnComparator.parse(cf_def.comparator_type)
    sub_comparator = None
    if getattr(cf_def, "subcomparator_type", None):
        sub_comparator = ColumnComparator.parse(cf_def.subcomparator_type)

    return SchemaContext(partitioner=partitioner, comparator=comparator, sub_comparator=sub_comparator)
