"""
Base collector class for standardizing metric collection.
"""
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from numbers import Real
from typing import Dict, List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Sample:
    """One observation of a named metric."""
    name: str
    value: float
    timestamp: datetime


class Collector(ABC):
    """
    Abstract base class for all metric collectors.

    All collectors should inherit from this class and implement collect(),
    returning a mapping of metric name to numeric value.
    """

    @abstractmethod
    def collect(self) -> Dict[str, float]:
        """
        Collect metrics.

        Returns:
            dict: Metric name to current value
        """
        pass

    @property
    def name(self) -> str:
        """
        Get the name of the collector.

        Returns:
            str: The name of the collector (class name by default)
        """
        return self.__class__.__name__

    def safe_collect(self) -> Dict[str, float]:
        """
        Safely collect metrics, catching any exceptions.

        Returns:
            dict: The collected metrics, or an empty dict if collection fails
        """
        try:
            return self.collect()
        except Exception as e:
            logger.error("Error collecting metrics from %s: %s", self.name, str(e))
            return {}

    def samples(self, timestamp: datetime) -> List[Sample]:
        """
        Collect and convert the metrics into samples stamped with one timestamp.

        Non-numeric and non-finite values are skipped.

        Args:
            timestamp (datetime): Timestamp shared by every sample of this snapshot

        Returns:
            list: The samples for this collector
        """
        samples = []
        for metric_name, value in self.safe_collect().items():
            if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
                logger.debug("Skipping %s from %s: not a finite number (%r)", metric_name, self.name, value)
                continue
            samples.append(Sample(metric_name, float(value), timestamp))
        return samples
