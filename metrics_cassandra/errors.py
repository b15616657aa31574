"""
Errors raised by the Cassandra metrics reporter.
"""


class MetricsCassandraError(Exception):
    """Base class for all reporter errors."""


class ConfigurationError(MetricsCassandraError):
    """Invalid reporter configuration (consistency level, contact points, port, TTL)."""


class ConnectivityError(MetricsCassandraError):
    """No Cassandra host could be reached, or no session is open."""


class WriteError(MetricsCassandraError):
    """A statement could not be prepared or submitted."""


class TeardownError(MetricsCassandraError):
    """Releasing the session or cluster failed."""
