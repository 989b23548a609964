import pytest

from cassandra_to_dbx.cassandra_config import InputSplit, ReaderConfig
from cassandra_to_dbx.cassandra_conn import StoreConnection
from cassandra_to_dbx.testing import provider_for


@pytest.fixture()
def split():
    # Whole byte-ordered ring up to b"\xff"
    return InputSplit(start_token="", end_token="ff", locations=["10.0.0.5", "10.0.0.6"])


@pytest.fixture()
def config():
    return ReaderConfig(keyspace="ks", column_family="cf", batch_size=2)


@pytest.fixture()
def connect():
    """Open a StoreConnection around a fake client."""
    def _connect(client):
        return StoreConnection(provider_for(client), "10.0.0.5", 9160, "ks")
    return _connect
