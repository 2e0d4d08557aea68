from rich.console import Console

from metrics.metric import DiagnosticsSnapshot
from metrics.metric_output import MetricOutput


class MetricLoggerOutput(MetricOutput):
    """Prints each snapshot to the console; green in real mode, yellow in synthetic."""

    def __init__(self, console: Console = None):
        self.console = console or Console()

    def output(self, snapshot: DiagnosticsSnapshot):
        colour = "green" if snapshot.mode == "real" else "yellow"
        self.console.print(f"[{colour}]{snapshot.to_string()}[/]")
