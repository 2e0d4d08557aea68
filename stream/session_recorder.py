"""Capture of live samples into sessions for offline analysis."""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from protocol.types import Sample, StreamEvent, StreamMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    started_at: float
    samples: Tuple[Sample, ...]
    ended_by: str = "stop"

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def duration(self) -> float:
        if len(self.samples) < 2:
            return 0.0
        return self.samples[-1].timestamp - self.samples[0].timestamp


def truncate_at_boundary(samples) -> Tuple[Sample, ...]:
    """Everything up to and including the first boundary sample."""
    out: List[Sample] = []
    for s in samples:
        out.append(s)
        if s.is_session_boundary:
            break
    return tuple(out)


@dataclass
class SessionRecorder:
    """Append-only session capture fed by a broadcaster subscription.

    A session starts with ``start()`` and ends at the first boundary sample,
    at ``stop()``, or when the stream changes mode (the hardware went away or
    came back). Finished sessions are handed out as frozen copies.
    """

    max_samples: Optional[int] = None
    on_finalized: Optional[Callable[[Session], None]] = None
    sessions: List[Session] = field(default_factory=list)
    _samples: List[Sample] = field(default_factory=list)
    _recording: bool = False
    _started_at: float = 0.0
    _mode: Optional[StreamMode] = None

    @property
    def recording(self) -> bool:
        return self._recording

    @property
    def last_session(self) -> Optional[Session]:
        return self.sessions[-1] if self.sessions else None

    @property
    def previous_session(self) -> Optional[Session]:
        return self.sessions[-2] if len(self.sessions) > 1 else None

    def start(self) -> None:
        if self._recording:
            self.stop()
        self._samples = []
        self._recording = True
        self._started_at = time.time()
        logger.info("Session recording started")

    def record(self, sample: Sample) -> None:
        if not self._recording:
            return
        if self.max_samples is not None and len(self._samples) >= self.max_samples:
            self._finalize("max_samples")
            return
        self._samples.append(sample)
        if sample.is_session_boundary:
            self._finalize("boundary")

    def handle_event(self, event: StreamEvent) -> None:
        """Broadcaster callback."""
        if event.is_status:
            mode = event.data.mode
            if self._recording and self._mode is not None and mode != self._mode and self._samples:
                self._finalize("mode_change")
            self._mode = mode
        else:
            self.record(event.data)

    def stop(self) -> Optional[Session]:
        if not self._recording:
            return None
        return self._finalize("stop")

    def _finalize(self, reason: str) -> Session:
        session = Session(
            started_at=self._started_at,
            samples=truncate_at_boundary(self._samples),
            ended_by=reason,
        )
        self._samples = []
        self._recording = False
        self.sessions.append(session)
        logger.info("Session finalized (%s): %d samples", reason, len(session))
        if self.on_finalized is not None:
            self.on_finalized(session)
        return session
