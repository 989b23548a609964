"""
Cassandra Range Reader Errors

Every error raised by the reader is fatal for the split being read: nothing is
retried and no partial output is salvaged. Retrying or reassigning the split is
left to the host framework.
"""

from typing import Optional


class ReaderError(Exception):
    """Base class for all range reader failures."""


class ConfigurationError(ReaderError, ValueError):
    """
    Raised when the reader cannot be configured.

    Covers invalid configuration values as well as schema metadata that is
    missing or cannot be parsed (unknown partitioner, missing column family,
    unparsable comparator).
    """


class TransportError(ReaderError):
    """
    Raised when a call to the store fails (connect, login, describe or query).

    Attributes:
        operation: Name of the client call that failed
        host: Host the connection was bound to, if known
    """
    def __init__(self, operation: str, cause: Exception, host: Optional[str] = None):
        self.operation = operation
        self.host = host
        self.cause = cause

        where = f" on {host}" if host else ""
        super().__init__(f"{operation} failed{where}: {cause}")


class ProtocolError(ReaderError):
    """Raised when the store answers with a response shape the reader cannot accept."""
