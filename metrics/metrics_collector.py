import asyncio
import logging
from typing import Any, Callable, Dict, List

from metrics.logger_file import MetricLoggerFile
from metrics.metric import DiagnosticsSnapshot
from metrics.metric_logger_output import MetricLoggerOutput
from metrics.metric_output import MetricOutput
from stream.config import StreamConfig

logger = logging.getLogger(__name__)


def build_outputs(config: StreamConfig) -> List[MetricOutput]:
    outputs: List[MetricOutput] = []
    if config.log_to_console:
        outputs.append(MetricLoggerOutput())
    if config.log_file_configuration:
        file_cfg = config.log_file_configuration
        outputs.append(MetricLoggerFile(file_cfg.log_file_name, file_cfg.log_file_max_size, file_cfg.log_file_max_count))
    return outputs


class MetricsCollector:
    """Periodically samples a diagnostics source and writes it to every output."""

    def __init__(self, source: Callable[[], Dict[str, Any]], outputs: List[MetricOutput], period_s: float = 5.0):
        if period_s <= 0:
            raise ValueError("period_s must be > 0")
        self.source = source
        self.outputs = outputs
        self.period_s = period_s
        self._running = True

    def stop(self):
        """Stop the metrics collector"""
        self._running = False

    def collect_once(self) -> DiagnosticsSnapshot:
        snapshot = DiagnosticsSnapshot.from_diagnostics(self.source())
        for output in self.outputs:
            output.output(snapshot)
        return snapshot

    async def collect_metrics(self):
        while self._running:
            try:
                self.collect_once()
            except Exception as e:
                logger.error("Error collecting diagnostics: %s", e)
            await asyncio.sleep(self.period_s)
