import asyncio
from datetime import datetime

import pytest
from rich.console import Console

from metrics.logger_file import MetricLoggerFile
from metrics.metric import DiagnosticsSnapshot
from metrics.metric_logger_output import MetricLoggerOutput
from metrics.metric_output import MetricOutput
from metrics.metrics_collector import MetricsCollector, build_outputs
from stream.config import LogFileConfiguration, StreamConfig

DIAGNOSTICS = {
    "mode": "real",
    "hardwareConnected": True,
    "samplesProcessed": 42,
    "decodeFailures": 3,
    "frameOverflows": 1,
    "activeSubscribers": 2,
}


class CapturingOutput(MetricOutput):
    def __init__(self):
        self.snapshots = []

    def output(self, snapshot):
        self.snapshots.append(snapshot)


def test_snapshot_to_string():
    snapshot = DiagnosticsSnapshot.from_diagnostics(DIAGNOSTICS, ts=datetime(2024, 1, 2, 3, 4, 5, 678000))
    assert snapshot.to_string() == (
        "ts=2024-01-02T03:04:05.678Z | mode=real | hw=True | processed=42 | decode_fail=3 | overflow=1 | subs=2"
    )


def test_snapshot_with_missing_fields():
    snapshot = DiagnosticsSnapshot.from_diagnostics({}, ts=datetime(2024, 1, 1))
    assert "mode=" not in snapshot.to_string()
    assert snapshot.to_string().endswith("processed=0 | decode_fail=0 | overflow=0 | subs=0")


def test_file_output(tmp_path):
    log_file = tmp_path / "logs" / "diag.log"
    output = MetricLoggerFile(str(log_file), 10_000, 2)
    output.output(DiagnosticsSnapshot.from_diagnostics(DIAGNOSTICS))
    output.close()
    assert "processed=42" in log_file.read_text()


def test_file_output_requires_settings():
    with pytest.raises(ValueError):
        MetricLoggerFile(None, 100, 1)


def test_console_output():
    console = Console(record=True, width=200)
    MetricLoggerOutput(console).output(DiagnosticsSnapshot.from_diagnostics(DIAGNOSTICS))
    assert "decode_fail=3" in console.export_text()


def test_build_outputs(tmp_path):
    assert build_outputs(StreamConfig()) == []
    config = StreamConfig(
        log_to_console=True,
        log_file_configuration=LogFileConfiguration(
            log_file_name=str(tmp_path / "d.log"), log_file_max_size=1000, log_file_max_count=1
        ),
    )
    outputs = build_outputs(config)
    assert [type(o) for o in outputs] == [MetricLoggerOutput, MetricLoggerFile]
    outputs[1].close()


def test_collect_once():
    output = CapturingOutput()
    snapshot = MetricsCollector(lambda: DIAGNOSTICS, [output]).collect_once()
    assert output.snapshots == [snapshot]
    assert snapshot.processed == 42


@pytest.mark.asyncio
async def test_collector_loop_survives_source_errors():
    output = CapturingOutput()
    calls = []

    def source():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("pipeline not ready")
        return DIAGNOSTICS

    collector = MetricsCollector(source, [output], period_s=0.01)
    task = asyncio.create_task(collector.collect_metrics())
    await asyncio.sleep(0.05)
    collector.stop()
    await asyncio.wait_for(task, 1)
    assert len(calls) >= 2
    assert output.snapshots


def test_invalid_period():
    with pytest.raises(ValueError):
        MetricsCollector(dict, [], period_s=0)
