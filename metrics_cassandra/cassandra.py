"""
Cassandra client for persisting metric samples.

Every sample is written twice:
- the values table keeps (name, timestamp, value) rows, expiring after the configured TTL
- the ``<table>_names`` table keeps the last time each metric name was seen

Writes are submitted with ``execute_async`` and never awaited, so ``send`` returns
as soon as the driver has accepted both statements.
"""
import logging
import re
from datetime import datetime
from enum import Enum
from typing import Dict, List, Tuple

from cassandra import ConsistencyLevel, DriverException, OperationTimedOut
from cassandra.cluster import Cluster, ExecutionProfile, EXEC_PROFILE_DEFAULT, NoHostAvailable
from cassandra.policies import DowngradingConsistencyRetryPolicy, RoundRobinPolicy, TokenAwarePolicy
from cassandra.query import PreparedStatement, SimpleStatement
from retrying import retry

from .errors import ConfigurationError, ConnectivityError, TeardownError, WriteError

logger = logging.getLogger(__name__)

UNSAFE = re.compile(r'[.\s]+')

# One attempt on the existing cluster, one on a rebuilt cluster
CONNECT_ATTEMPTS = 2

# Synchronous failures raised by the driver while preparing or submitting
DRIVER_ERRORS = (DriverException, NoHostAvailable, OperationTimedOut)

CREATE_VALUES_TABLE = (
    "CREATE TABLE IF NOT EXISTS %s ("
    "  name VARCHAR,"
    "  timestamp TIMESTAMP,"
    "  value DOUBLE,"
    "  PRIMARY KEY (name, timestamp))"
    "  WITH bloom_filter_fp_chance=0.100000 AND"
    "  compaction = {'class':'LeveledCompactionStrategy'}"
)

CREATE_NAMES_TABLE = (
    "CREATE TABLE IF NOT EXISTS %s_names ("
    "  name VARCHAR,"
    "  last_updated TIMESTAMP,"
    "  PRIMARY KEY (name))"
    "  WITH bloom_filter_fp_chance=0.100000 AND"
    "  compaction = {'class':'LeveledCompactionStrategy'}"
)


class StatementKind(Enum):
    """Write statements prepared for every table, valued by their CQL template."""
    VALUES_INSERT = "INSERT INTO %s (name, timestamp, value) VALUES (?, ?, ?) USING TTL ?"
    NAMES_UPDATE = "UPDATE %s_names SET last_updated = ? WHERE name = ?"

    def cql(self, table_name: str) -> str:
        return self.value % table_name


def sanitize(s: str) -> str:
    """
    Collapse every run of dots and whitespace into a single underscore.

    Args:
        s (str): Raw table name

    Returns:
        str: Identifier safe to embed in CQL
    """
    return UNSAFE.sub('_', s)


def _is_no_host_available(exception: Exception) -> bool:
    return isinstance(exception, NoHostAvailable)


class Cassandra:
    """Client that writes metric samples to a Cassandra cluster."""

    def __init__(
        self,
        addresses: List[str],
        keyspace: str,
        table: str,
        ttl: int,
        port: int,
        consistency: str
    ):
        """
        Create a new client. The cluster is built here but not contacted until ``connect``.

        Args:
            addresses (list): Contact points of the Cassandra cluster
            keyspace (str): Keyspace for metrics
            table (str): Name of the metric table, sanitized before use
            ttl (int): TTL for entries in seconds, 0 for no expiry
            port (int): Native transport port of the contact points
            consistency (str): Consistency level to attain, e.g. 'LOCAL_ONE'

        Raises:
            ConfigurationError: If any argument is invalid
        """
        if not addresses:
            raise ConfigurationError("At least one Cassandra contact point is required")
        if not isinstance(port, int) or not 0 < port < 65536:
            raise ConfigurationError(f"Invalid Cassandra port: {port!r}")
        if not isinstance(ttl, int) or ttl < 0:
            raise ConfigurationError(f"Invalid TTL: {ttl!r}")

        level = ConsistencyLevel.name_to_value.get(str(consistency).upper())
        if level is None:
            raise ConfigurationError(
                f"Unknown consistency level '{consistency}', expected one of "
                f"{sorted(ConsistencyLevel.name_to_value)}"
            )

        self.addresses = list(addresses)
        self.port = port
        self.keyspace = keyspace
        self.table = table
        self.ttl = ttl
        self.consistency = level

        self.cluster = self._build()
        self.session = None

        self.initialized = False
        self.failures = 0
        self.prepared_statements: Dict[Tuple[StatementKind, str], PreparedStatement] = {}

    def _build(self) -> Cluster:
        """Build a cluster with compression, downgrading retries and round-robin balancing."""
        profile = ExecutionProfile(
            load_balancing_policy=TokenAwarePolicy(RoundRobinPolicy()),
            retry_policy=DowngradingConsistencyRetryPolicy()
        )
        return Cluster(
            contact_points=self.addresses,
            port=self.port,
            compression=True,
            execution_profiles={EXEC_PROFILE_DEFAULT: profile}
        )

    def _try_connect(self) -> None:
        if self.session is not None:
            self.session.shutdown()
            self.session = None
        self.prepared_statements.clear()
        self.session = self.cluster.connect(self.keyspace)

    def _rebuild(self) -> None:
        """Throw away the cluster after a failed connect and build an identical one."""
        logger.warning(
            "Unable to connect to Cassandra at %s:%s, will retry contact points",
            self.addresses, self.port
        )
        if self.session is not None:
            self.session.shutdown()
            self.session = None
        self.cluster.shutdown()
        self.cluster = self._build()

    def connect(self) -> None:
        """
        Open a session bound to the keyspace, replacing any previous one.

        If no host is reachable the cluster is rebuilt and the connect attempted once more.

        Raises:
            ConnectivityError: If both attempts found no reachable host, or the driver
                refused the session (e.g. unknown keyspace)
        """
        @retry(
            retry_on_exception=_is_no_host_available,
            stop_max_attempt_number=CONNECT_ATTEMPTS
        )
        def _connect():
            try:
                self._try_connect()
            except NoHostAvailable:
                self._rebuild()
                raise

        try:
            _connect()
        except NoHostAvailable as e:
            raise ConnectivityError(
                f"No Cassandra host reachable at {self.addresses} after {CONNECT_ATTEMPTS} attempts"
            ) from e
        except DRIVER_ERRORS as e:
            raise ConnectivityError(f"Unable to open session on keyspace {self.keyspace}: {e}") from e

        logger.info("Connected to Cassandra keyspace %s via %s", self.keyspace, self.addresses)

    def _prepared(self, kind: StatementKind, table_name: str) -> PreparedStatement:
        key = (kind, table_name)
        if key not in self.prepared_statements:
            statement = self.session.prepare(kind.cql(table_name))
            statement.consistency_level = self.consistency
            self.prepared_statements[key] = statement
        return self.prepared_statements[key]

    def _create_tables(self, table_name: str) -> None:
        self.session.execute(SimpleStatement(CREATE_VALUES_TABLE % table_name))
        self.session.execute(SimpleStatement(CREATE_NAMES_TABLE % table_name))
        logger.info("Ensured metric tables %s and %s_names exist", table_name, table_name)

    def send(self, name: str, value: float, timestamp: datetime) -> None:
        """
        Send the given measurement to the cluster.

        Args:
            name (str): The name of the metric
            value (float): The value of the metric
            timestamp (datetime): The timestamp of the metric

        Raises:
            ConnectivityError: If ``connect`` has not opened a session
            WriteError: If there was an error preparing or submitting the writes
        """
        value = float(value)
        try:
            if self.session is None:
                raise ConnectivityError("Not connected to Cassandra")

            table_name = self.sanitize(self.table)
            if not self.initialized:
                self._create_tables(table_name)
                self.initialized = True

            values_insert = self._prepared(StatementKind.VALUES_INSERT, table_name)
            names_update = self._prepared(StatementKind.NAMES_UPDATE, table_name)

            futures = [
                self.session.execute_async(values_insert.bind((name, timestamp, value, self.ttl))),
                self.session.execute_async(names_update.bind((timestamp, name))),
            ]
        except ConnectivityError:
            self.failures += 1
            raise
        except DRIVER_ERRORS + (TypeError,) as e:
            # TypeError: bind() could not serialize the values
            self.failures += 1
            raise WriteError(f"Failed to write metric {name} to {self.table}: {e}") from e

        for future in futures:
            future.add_errback(self._log_async_failure, name)
        self.failures = 0

    @staticmethod
    def _log_async_failure(exc: Exception, name: str) -> None:
        logger.warning("Asynchronous write of metric %s failed: %s", name, exc)

    def get_failures(self) -> int:
        """
        Get the number of consecutive failed writes.

        Returns:
            int: The number of failed writes since the last successful send
        """
        return self.failures

    def close(self) -> None:
        """
        Release the active session. Does nothing if no session is open.

        Raises:
            TeardownError: If the driver failed to shut the session down
        """
        session, self.session = self.session, None
        if session is None:
            return
        try:
            session.shutdown()
        except Exception as e:
            raise TeardownError(f"Failed to close Cassandra session: {e}") from e

    def shutdown(self) -> None:
        """Close the session and shut the cluster down."""
        self.close()
        try:
            self.cluster.shutdown()
        except Exception as e:
            raise TeardownError(f"Failed to shut down Cassandra cluster: {e}") from e

    def __enter__(self) -> 'Cassandra':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        if exc_type is None:
            self.close()
            return
        # Keep the original error from the with-block
        try:
            self.close()
        except TeardownError as e:
            logger.debug("Ignoring teardown failure after %s: %s", exc_type.__name__, e)

    def sanitize(self, s: str) -> str:
        return sanitize(s)

    def __repr__(self) -> str:
        return (
            f"Cassandra(addresses={self.addresses!r}, port={self.port}, "
            f"keyspace={self.keyspace!r}, table={self.table!r})"
        )
