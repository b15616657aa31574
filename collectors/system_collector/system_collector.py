import logging
from typing import Dict

import psutil

from metrics_cassandra.collector import Collector

logger = logging.getLogger(__name__)


class SystemCollector(Collector):
    """Collector for host CPU, memory and disk metrics."""

    def __init__(self, path: str = '/', metric_name: str = 'system'):
        self.path = path
        self.metric_name = metric_name

    def collect(self) -> Dict[str, float]:
        """Collect system metrics.

        Returns:
            dict: CPU, memory and disk usage keyed by dotted metric name
        """
        memory = psutil.virtual_memory()
        disk = psutil.disk_usage(self.path)

        metrics = {
            f'{self.metric_name}.cpu.percent': psutil.cpu_percent(interval=None),
            f'{self.metric_name}.memory.percent': memory.percent,
            f'{self.metric_name}.memory.used': memory.used,
            f'{self.metric_name}.memory.available': memory.available,
            f'{self.metric_name}.disk.percent': disk.percent,
            f'{self.metric_name}.disk.free': disk.free,
        }
        logger.debug("Collected system metrics for %s: %s", self.path, metrics)
        return metrics
