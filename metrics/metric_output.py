from abc import ABC, abstractmethod
from metrics.metric import DiagnosticsSnapshot


class MetricOutput(ABC):
    @abstractmethod
    def output(self, snapshot: DiagnosticsSnapshot):
        pass
