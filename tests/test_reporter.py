import math
import threading
from datetime import datetime
from unittest.mock import MagicMock, call

import pytest
import pytz

from metrics_cassandra.cassandra import Cassandra
from metrics_cassandra.collector import Collector, Sample
from metrics_cassandra.errors import ConnectivityError, TeardownError, WriteError
from metrics_cassandra.reporter import CassandraReporter

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=pytz.UTC)


class StaticCollector(Collector):
    def __init__(self, metrics):
        self.metrics = metrics

    def collect(self):
        return dict(self.metrics)


class BrokenCollector(Collector):
    def collect(self):
        raise RuntimeError("sensor offline")


@pytest.fixture
def cassandra():
    client = MagicMock(spec=Cassandra)
    client.get_failures.return_value = 0
    return client


def test_samples_skip_non_finite_and_non_numeric_values():
    collector = StaticCollector({
        "ok": 1,
        "ratio": 0.5,
        "nan": math.nan,
        "inf": math.inf,
        "text": "fast",
        "flag": True,
        "missing": None,
    })

    samples = collector.samples(NOW)

    assert samples == [Sample("ok", 1.0, NOW), Sample("ratio", 0.5, NOW)]


def test_safe_collect_swallows_collector_errors():
    assert BrokenCollector().safe_collect() == {}
    assert BrokenCollector().samples(NOW) == []


def test_collector_name_defaults_to_class_name():
    assert StaticCollector({}).name == "StaticCollector"


def test_report_sends_every_sample_then_closes(cassandra):
    reporter = CassandraReporter(
        cassandra,
        collectors=[StaticCollector({"heap.used": 10}), StaticCollector({"threads": 4})],
        clock=lambda: NOW,
    )

    assert reporter.report() == 2

    assert cassandra.mock_calls[:4] == [
        call.connect(),
        call.send("heap.used", 10.0, NOW),
        call.send("threads", 4.0, NOW),
        call.close(),
    ]


def test_report_applies_prefix(cassandra):
    reporter = CassandraReporter(
        cassandra, collectors=[StaticCollector({"heap.used": 10})], prefix="web01", clock=lambda: NOW)

    reporter.report()

    cassandra.send.assert_called_once_with("web01.heap.used", 10.0, NOW)


def test_report_stops_cycle_on_write_error(cassandra):
    cassandra.send.side_effect = [None, WriteError("rejected"), None]
    cassandra.get_failures.return_value = 1
    reporter = CassandraReporter(
        cassandra, collectors=[StaticCollector({"a": 1, "b": 2, "c": 3})], clock=lambda: NOW)

    assert reporter.report() == 1

    assert cassandra.send.call_count == 2
    cassandra.close.assert_called_once()
    assert reporter.get_failures() == 1


def test_report_survives_unreachable_cluster(cassandra):
    cassandra.connect.side_effect = ConnectivityError("no hosts")
    reporter = CassandraReporter(cassandra, collectors=[StaticCollector({"a": 1})], clock=lambda: NOW)

    assert reporter.report() == 0

    cassandra.send.assert_not_called()
    cassandra.close.assert_called_once()


def test_report_ignores_teardown_errors(cassandra):
    cassandra.close.side_effect = TeardownError("already closed")
    reporter = CassandraReporter(cassandra, collectors=[StaticCollector({"a": 1})], clock=lambda: NOW)

    assert reporter.report() == 1


def test_register_collectors(cassandra):
    reporter = CassandraReporter(cassandra)
    first, second = StaticCollector({"a": 1}), StaticCollector({"b": 2})

    reporter.register_collector(first)
    reporter.register_collectors([second])

    assert reporter.collectors == [first, second]
    assert reporter.collect_samples(NOW) == [Sample("a", 1.0, NOW), Sample("b", 2.0, NOW)]


def test_start_runs_cycles_until_stopped(cassandra):
    reported = threading.Event()
    cassandra.connect.side_effect = lambda: reported.set()
    reporter = CassandraReporter(cassandra, collectors=[StaticCollector({"a": 1})])

    reporter.start(interval=60)
    try:
        assert reported.wait(timeout=5)
    finally:
        reporter.stop(timeout=5)

    assert reporter._thread is None
    cassandra.send.assert_called_once()


def test_start_rejects_non_positive_interval(cassandra):
    with pytest.raises(ValueError):
        CassandraReporter(cassandra).start(interval=0)
