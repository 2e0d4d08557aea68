import logging
import os
from logging.handlers import RotatingFileHandler

from metrics.metric import DiagnosticsSnapshot
from metrics.metric_output import MetricOutput


class MetricLoggerFile(MetricOutput):
    def __init__(self, log_file_name: str, log_file_max_size: int, log_file_max_count: int):
        if log_file_name is None or log_file_max_size is None or log_file_max_count is None:
            raise ValueError("log_file_name, log_file_max_size, and log_file_max_count must be provided")

        # Use a unique logger name to avoid conflicts
        self.logger = logging.getLogger(f'MetricLoggerFile_{id(self)}')
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False
        self.logger.handlers.clear()

        os.makedirs(os.path.dirname(log_file_name) or ".", exist_ok=True)
        self.handler = RotatingFileHandler(log_file_name, maxBytes=log_file_max_size, backupCount=log_file_max_count)
        self.logger.addHandler(self.handler)

    def output(self, snapshot: DiagnosticsSnapshot):
        self.logger.info(snapshot.to_string())

    def close(self):
        self.logger.removeHandler(self.handler)
        self.handler.close()
