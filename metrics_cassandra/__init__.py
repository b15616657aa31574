"""
Metrics reporter that persists metric snapshots to Apache Cassandra.
"""
from .cassandra import Cassandra, StatementKind, sanitize
from .collector import Collector, Sample
from .errors import (
    MetricsCassandraError,
    ConfigurationError,
    ConnectivityError,
    WriteError,
    TeardownError
)
from .reporter import CassandraReporter

__all__ = [
    'Cassandra',
    'CassandraReporter',
    'Collector',
    'Sample',
    'StatementKind',
    'sanitize',
    'MetricsCassandraError',
    'ConfigurationError',
    'ConnectivityError',
    'WriteError',
    'TeardownError',
]
