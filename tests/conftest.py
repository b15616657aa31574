from unittest.mock import MagicMock

import pytest
from cassandra.cluster import NoHostAvailable

from metrics_cassandra import cassandra as cassandra_module
from metrics_cassandra.cassandra import Cassandra


class ClusterFactory:
    """Stands in for cassandra.cluster.Cluster and records every cluster built."""

    def __init__(self):
        self.built = []
        self.unreachable = 0  # how many of the first clusters refuse connections

    def __call__(self, **kwargs):
        cluster = MagicMock(name=f"cluster-{len(self.built)}")
        cluster.build_kwargs = kwargs
        if len(self.built) < self.unreachable:
            cluster.connect.side_effect = NoHostAvailable("Unable to connect to any servers", {})
        self.built.append(cluster)
        return cluster


@pytest.fixture
def clusters(monkeypatch):
    factory = ClusterFactory()
    monkeypatch.setattr(cassandra_module, "Cluster", factory)
    return factory


@pytest.fixture
def make_client(clusters):
    def _make(**overrides):
        params = dict(
            addresses=["10.0.0.1"],
            keyspace="metrics",
            table="jvm.heap",
            ttl=86400,
            port=9042,
            consistency="LOCAL_ONE",
        )
        params.update(overrides)
        return Cassandra(**params)
    return _make


@pytest.fixture
def client(make_client):
    return make_client()
