import logging
import os
from datetime import datetime

import pytz

from collectors.process_collector.process_collector import ProcessCollector
from collectors.system_collector.system_collector import SystemCollector

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=pytz.UTC)


def test_system_collector_reports_host_usage():
    metrics = SystemCollector(path='/', metric_name='host').collect()

    assert set(metrics) == {
        'host.cpu.percent',
        'host.memory.percent',
        'host.memory.used',
        'host.memory.available',
        'host.disk.percent',
        'host.disk.free',
    }
    assert 0 <= metrics['host.memory.percent'] <= 100


def test_system_collector_bad_path_yields_no_samples():
    assert SystemCollector(path='/does/not/exist').samples(NOW) == []


def test_process_collector_defaults_to_current_process():
    collector = ProcessCollector()

    samples = {s.name: s.value for s in collector.samples(NOW)}

    assert collector.pid == os.getpid()
    assert samples['process.threads'] >= 1
    assert samples['process.memory.rss'] > 0


def test_process_collector_logs_collected_metrics(caplog):
    with caplog.at_level(logging.DEBUG, logger='collectors.process_collector.process_collector'):
        ProcessCollector().collect()

    assert "Collected process metrics" in caplog.text


def test_process_collector_accepts_pid_from_cli_string():
    assert ProcessCollector(pid=str(os.getpid())).pid == os.getpid()
