import math
import random
import time
from typing import Callable, Optional

from protocol.types import Sample

EMG_BASELINES = (500.0, 600.0)   # channel 3+ continue in steps of 100
EMG_JITTER = 50.0
GYRO_JITTER = 0.5
DEFAULT_RATE_HZ = 10.0


class SyntheticGenerator:
    """Plausible, continuously varying samples for when no hardware is attached.

    EMG channels wander within +/-EMG_JITTER of fixed baselines, gyro axes
    jitter around zero and orientation follows slow periodic functions of the
    elapsed time, so the same seed always yields the same sequence.
    """

    def __init__(
        self,
        rate_hz: float = DEFAULT_RATE_HZ,
        emg_channels: int = 2,
        seed: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        if rate_hz <= 0:
            raise ValueError("rate_hz must be > 0")
        if emg_channels < 2:
            raise ValueError("emg_channels must be >= 2")
        self.rate_hz = rate_hz
        self.dt = 1.0 / rate_hz
        self.emg_channels = emg_channels
        self.clock = clock
        self.rng = random.Random(seed)
        self.t = 0.0
        self.seq = 0

    @staticmethod
    def baseline(channel: int) -> float:
        if channel < len(EMG_BASELINES):
            return EMG_BASELINES[channel]
        return EMG_BASELINES[-1] + 100.0 * (channel - len(EMG_BASELINES) + 1)

    def _emg(self) -> tuple:
        return tuple(
            self.baseline(ch) + self.rng.uniform(-EMG_JITTER, EMG_JITTER)
            for ch in range(self.emg_channels)
        )

    def _gyro(self) -> tuple:
        return tuple(self.rng.uniform(-GYRO_JITTER, GYRO_JITTER) for _ in range(3))

    def _orientation(self) -> tuple:
        t = self.t
        return (30.0 * math.sin(0.5 * t), 20.0 * math.cos(0.3 * t), 45.0 * math.sin(0.2 * t))

    def sample(self) -> Sample:
        s = Sample(
            timestamp=self.clock(),
            emg=self._emg(),
            gyro=self._gyro(),
            orientation=self._orientation(),
            is_synthetic=True,
        )
        self.seq += 1
        self.t += self.dt
        return s

    def reset(self) -> None:
        self.t = 0.0
        self.seq = 0
