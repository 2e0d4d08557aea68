"""Fixed-capacity window of the most recent raw samples on the live stream."""
import threading
from collections import deque
from typing import Deque, Optional, Tuple

from protocol.errors import ConfigError
from protocol.types import Sample
from stream.filters import smooth_samples
from stream.stream_metrics import sample_buffer_fill

DEFAULT_CAPACITY = 5
DEFAULT_ALPHA = 0.2


class SampleBuffer:
    """Single-writer FIFO window feeding the live EMA smoothing pass.

    Only the ingestion path pushes; other components get copies through
    ``snapshot()``, taken under the same lock as ``push()``.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, alpha: float = DEFAULT_ALPHA):
        if capacity < 1:
            raise ConfigError(f"sample buffer capacity must be >= 1, got {capacity}")
        if not 0.0 < alpha <= 1.0:
            raise ConfigError(f"smoothing alpha must be in (0, 1], got {alpha}")
        self.capacity = capacity
        self.alpha = alpha
        self.lock = threading.Lock()
        self._window: Deque[Sample] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._window)

    @property
    def is_full(self) -> bool:
        return len(self._window) >= self.capacity

    def push(self, sample: Sample) -> None:
        """Append a sample, evicting the oldest when at capacity."""
        with self.lock:
            self._window.append(sample)
            fill = len(self._window) / self.capacity * 100.0
        sample_buffer_fill.set(fill)

    def snapshot(self) -> Tuple[Sample, ...]:
        with self.lock:
            return tuple(self._window)

    def latest(self) -> Optional[Sample]:
        with self.lock:
            return self._window[-1] if self._window else None

    def smoothed_latest(self) -> Optional[Sample]:
        """EMA-smoothed view of the newest sample.

        Below capacity the newest raw sample is returned unchanged. At capacity
        every numeric channel is smoothed across the window; timestamp and flags
        come from the newest raw sample.
        """
        window = self.snapshot()
        if not window:
            return None
        if len(window) < self.capacity:
            return window[-1]
        return smooth_samples(window, "ema", alpha=self.alpha)[-1]

    def clear(self) -> None:
        with self.lock:
            self._window.clear()
        sample_buffer_fill.set(0)
