from datetime import datetime
from typing import Any, Dict, Optional


class DiagnosticsSnapshot:
    ts: Optional[datetime] = None
    mode: Optional[str] = None
    hardware: Optional[bool] = None
    processed: int = 0
    decode_failures: int = 0
    overflows: int = 0
    subscribers: int = 0

    @classmethod
    def from_diagnostics(cls, diagnostics: Dict[str, Any], ts: Optional[datetime] = None) -> "DiagnosticsSnapshot":
        snapshot = cls()
        snapshot.ts = ts or datetime.now()
        snapshot.mode = diagnostics.get("mode")
        snapshot.hardware = diagnostics.get("hardwareConnected")
        snapshot.processed = diagnostics.get("samplesProcessed", 0)
        snapshot.decode_failures = diagnostics.get("decodeFailures", 0)
        snapshot.overflows = diagnostics.get("frameOverflows", 0)
        snapshot.subscribers = diagnostics.get("activeSubscribers", 0)
        return snapshot

    def to_string(self) -> str:
        delim = " | "
        metrics = []

        if self.ts is not None:
            ts_str = self.ts.strftime('%Y-%m-%dT%H:%M:%S.%f')[:-3] + "Z"
            metrics.append(f"ts={ts_str}")

        if self.mode is not None:
            metrics.append(f"mode={self.mode}")

        if self.hardware is not None:
            metrics.append(f"hw={self.hardware}")

        metrics.append(f"processed={self.processed}")
        metrics.append(f"decode_fail={self.decode_failures}")
        metrics.append(f"overflow={self.overflows}")
        metrics.append(f"subs={self.subscribers}")

        return delim.join(metrics)
