"""
Cassandra Connection Utilities

This module provides the connection handle used by a range reader.

The transport itself (Thrift socket, framing, login, set_keyspace) is built by
a connection provider supplied by the caller:

    provider(host, port, keyspace, credentials) -> client

The handle holds exactly one client for its whole lifetime, opens it lazily on
first use, and turns every client failure into a TransportError.
"""

from typing import Any, Callable, Dict, List, Optional

from .cassandra_errors import TransportError


ConnectionProvider = Callable[[str, int, str, Optional[Dict[str, str]]], Any]


class StoreConnection:
    """
    Lazily opened, reusable connection to one store endpoint.

    Lifecycle:
    - open(): creates the client through the provider (no-op when already open)
    - close(): closes the client if any; safe to call any number of times
    """

    def __init__(
        self,
        connection_provider: ConnectionProvider,
        host: str,
        port: int,
        keyspace: str,
        credentials: Optional[Dict[str, str]] = None,
        verbose: bool = False,
    ) -> None:
        self._provider = connection_provider
        self.host = host
        self.port = port
        self.keyspace = keyspace
        self._credentials = credentials
        self.verbose = verbose
        self._client = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def open(self):
        """
        Open the connection if it is not open yet.

        Returns:
            The underlying client

        Raises:
            TransportError: If the provider fails to connect or log in
        """
        if self._client is not None:
            return self._client

        try:
            self._client = self._provider(self.host, self.port, self.keyspace, self._credentials)
        except Exception as e:
            raise TransportError("connect", e, host=self.host) from e

        if self.verbose:
            print(f"✅ Connected to {self.host}:{self.port} (keyspace: {self.keyspace})")
        return self._client

    def close(self) -> None:
        """Close the connection. Does nothing if it was never opened or is already closed."""
        client, self._client = self._client, None
        if client is None:
            return
        close = getattr(client, "close", None)
        if close is not None:
            close()
        if self.verbose:
            print(f"🔌 Connection to {self.host} closed")

    def _call(self, operation: str, *args):
        client = self.open()
        try:
            return getattr(client, operation)(*args)
        except Exception as e:
            raise TransportError(operation, e, host=self.host) from e

    def describe_partitioner(self) -> str:
        return self._call("describe_partitioner")

    def describe_keyspace(self, keyspace: str):
        return self._call("describe_keyspace", keyspace)

    def get_range_slices(self, column_parent, predicate, key_range, consistency_level) -> List:
        return self._call("get_range_slices", column_parent, predicate, key_range, consistency_level)

    def get_paged_slice(self, column_family: str, key_range, start_column: bytes, consistency_level) -> List:
        return self._call("get_paged_slice", column_family, key_range, start_column, consistency_level)

    def __enter__(self) -> 'StoreConnection':
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self):
        state = "open" if self.is_open else "closed"
        return f"StoreConnection({self.host}:{self.port}/{self.keyspace}, {state})"
