"""
Scheduled reporter that snapshots registered collectors and writes them to Cassandra.
"""
import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional

import pytz

from .cassandra import Cassandra
from .collector import Collector, Sample
from .errors import ConnectivityError, TeardownError, WriteError

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


class CassandraReporter:
    """
    Reporter that runs one collect-connect-send-close cycle per interval.

    Failures to reach or write to the cluster are logged and end the current
    cycle; they never escape into the host process. The consecutive failure
    count stays available through get_failures().
    """

    def __init__(
        self,
        cassandra: Cassandra,
        collectors: Optional[List[Collector]] = None,
        prefix: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the reporter.

        Args:
            cassandra (Cassandra): Client used to persist samples
            collectors (list, optional): Collectors to snapshot on every cycle
            prefix (str, optional): Prefix prepended to every metric name as 'prefix.name'
            clock (callable, optional): Returns the timestamp for a cycle. Defaults to UTC now.
        """
        self.cassandra = cassandra
        self.collectors: List[Collector] = []
        self.prefix = prefix
        self.clock = clock or utc_now

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        if collectors:
            self.register_collectors(collectors)

    def register_collector(self, collector: Collector) -> None:
        """
        Register a collector with the reporter.

        Args:
            collector (Collector): The collector to register
        """
        self.collectors.append(collector)
        logger.debug("Registered collector: %s", collector.name)

    def register_collectors(self, collectors: List[Collector]) -> None:
        for collector in collectors:
            self.register_collector(collector)

    def _prefixed(self, name: str) -> str:
        if self.prefix:
            return f"{self.prefix}.{name}"
        return name

    def collect_samples(self, timestamp: Optional[datetime] = None) -> List[Sample]:
        """
        Snapshot every registered collector.

        Args:
            timestamp (datetime, optional): Timestamp for the snapshot. Defaults to the clock.

        Returns:
            list: Samples with prefixed names
        """
        timestamp = timestamp or self.clock()
        samples = []
        for collector in self.collectors:
            for sample in collector.samples(timestamp):
                samples.append(Sample(self._prefixed(sample.name), sample.value, sample.timestamp))
        return samples

    def report(self) -> int:
        """
        Run one reporting cycle.

        Returns:
            int: Number of samples submitted to Cassandra
        """
        samples = self.collect_samples()
        sent = 0
        try:
            self.cassandra.connect()
            for sample in samples:
                self.cassandra.send(sample.name, sample.value, sample.timestamp)
                sent += 1
        except (ConnectivityError, WriteError) as e:
            logger.warning("Unable to report to Cassandra %s: %s", self.cassandra, e)
        finally:
            try:
                self.cassandra.close()
            except TeardownError as e:
                logger.debug("Error disconnecting from Cassandra %s: %s", self.cassandra, e)

        logger.info("Reported %s/%s samples (failures: %s)", sent, len(samples), self.get_failures())
        return sent

    def get_failures(self) -> int:
        return self.cassandra.get_failures()

    def _run(self, interval: float) -> None:
        while not self._stop_event.is_set():
            try:
                self.report()
            except Exception as e:
                logger.error("Unexpected error during report cycle: %s", e)
            self._stop_event.wait(interval)

    def start(self, interval: float) -> None:
        """
        Start reporting every ``interval`` seconds in a background thread.

        Args:
            interval (float): Seconds between the start of two cycles
        """
        if interval <= 0:
            raise ValueError("Reporting interval must be positive")
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Reporter already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, args=(interval,), daemon=True)
        self._thread.start()
        logger.info("Started Cassandra reporter with %ss interval", interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the background thread, waiting up to ``timeout`` seconds for the current cycle."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Stopped Cassandra reporter")
