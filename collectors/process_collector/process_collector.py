import logging
import os
from typing import Dict, Optional

import psutil

from metrics_cassandra.collector import Collector

logger = logging.getLogger(__name__)


class ProcessCollector(Collector):
    """Collector for resource usage of a single process (this one by default)."""

    def __init__(self, pid: Optional[int] = None, metric_name: str = 'process'):
        self.pid = int(pid) if pid is not None else os.getpid()
        self.metric_name = metric_name
        self._process = psutil.Process(self.pid)

    def collect(self) -> Dict[str, float]:
        """Collect process metrics.

        Returns:
            dict: Memory, thread and CPU usage of the process
        """
        with self._process.oneshot():
            memory = self._process.memory_info()
            metrics = {
                f'{self.metric_name}.memory.rss': memory.rss,
                f'{self.metric_name}.memory.vms': memory.vms,
                f'{self.metric_name}.threads': self._process.num_threads(),
                f'{self.metric_name}.cpu.percent': self._process.cpu_percent(interval=None),
            }
        logger.debug("Collected process metrics for pid %s: %s", self.pid, metrics)
        return metrics
