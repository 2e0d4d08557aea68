"""
Movement-quality analysis over a finished session.

Every function here is a pure computation over an ordered ``Sample`` sequence
and never modifies it. Sessions with fewer than two samples cannot be
analyzed: the public functions then return a zeroed result (and
``analyze_session`` flags the report with ``insufficient_data``).

Tremor frequency is a peak-counting estimate (local maxima of the gyro
magnitude times the nominal sample rate, divided by the sample count), not
a spectral one.
"""
from __future__ import annotations

import functools
import math
from typing import List, Optional, Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from analysis.comparison import SessionComparison, compare_reports
from protocol.errors import InsufficientDataError
from protocol.types import Sample
from stream.filters import smooth_samples

NOMINAL_SAMPLE_RATE_HZ = 10.0
MIN_SESSION_LENGTH = 2

SPEED_REF = 1.0        # gyro magnitude giving speed ~6.3/10
ACCURACY_REF = 10.0    # orientation std (deg) giving accuracy 5/10
CONTROL_REF = 1.0      # mean |second difference| giving control 5/10


# ─────────── Result models ───────────

class _Result(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    @classmethod
    def neutral(cls):
        return cls()


class TremorResult(_Result):
    frequency: float = 0.0
    intensity: float = 0.0
    consistency: float = 0.0
    peak_count: int = 0


class SmoothnessResult(_Result):
    smoothness_index: float = 0.0
    jerk_cost: float = 0.0
    movement_quality: float = 0.0


class RomMetrics(_Result):
    range: float = 0.0
    mean: float = 0.0
    std: float = 0.0


class RangeOfMotionResult(_Result):
    wrist_flexion: RomMetrics = RomMetrics()
    roll: RomMetrics = RomMetrics()
    pitch: RomMetrics = RomMetrics()
    yaw: RomMetrics = RomMetrics()

    def channels(self):
        return {
            "wrist_flexion": self.wrist_flexion,
            "roll": self.roll,
            "pitch": self.pitch,
            "yaw": self.yaw,
        }


class EmgActivityResult(_Result):
    average_amplitude: List[float] = []
    fatigue_index: float = 0.0
    activation_pattern: float = 0.0


class FatigueResult(_Result):
    emg_fatigue: float = 0.0
    movement_decay: float = 0.0
    consistency_change: float = 0.0


class MotionPatternResult(_Result):
    efficiency: float = 0.0
    complexity: float = 0.0
    speed: float = 0.0
    accuracy: float = 0.0
    control: float = 0.0
    coordination: float = 0.0
    repetitions: int = 0


class SessionReport(_Result):
    sample_count: int = 0
    duration: float = 0.0
    insufficient_data: bool = False
    tremor: TremorResult = TremorResult()
    smoothness: SmoothnessResult = SmoothnessResult()
    range_of_motion: RangeOfMotionResult = RangeOfMotionResult()
    emg_activity: EmgActivityResult = EmgActivityResult()
    fatigue: FatigueResult = FatigueResult()
    motion_patterns: MotionPatternResult = MotionPatternResult()
    comparison: Optional[SessionComparison] = None

    def to_wire(self):
        return self.model_dump(by_alias=True, mode="json")


def _neutral_when_too_short(result_cls):
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(samples, *args, **kwargs):
            try:
                return fn(samples, *args, **kwargs)
            except InsufficientDataError:
                return result_cls.neutral()
        return wrapper
    return decorator


# ─────────── Helpers ───────────

def _require_session(samples: Sequence[Sample]) -> None:
    if len(samples) < MIN_SESSION_LENGTH:
        raise InsufficientDataError(
            f"need at least {MIN_SESSION_LENGTH} samples, got {len(samples)}"
        )


def gyro_magnitudes(samples: Sequence[Sample]) -> np.ndarray:
    return np.array([s.gyro_magnitude for s in samples], dtype=float)


def count_local_maxima(values: np.ndarray) -> int:
    """Interior points strictly greater than both neighbours."""
    if len(values) < 3:
        return 0
    mid = values[1:-1]
    return int(np.sum((mid > values[:-2]) & (mid > values[2:])))


def _numeric(values) -> np.ndarray:
    kept = [float(v) for v in values if isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)]
    return np.array(kept, dtype=float)


def _consistency(magnitudes: np.ndarray) -> float:
    return max(0.0, 100.0 - 100.0 * float(np.var(magnitudes)))


def _percent_change(before: float, after: float) -> float:
    if before == 0:
        return 0.0
    return (after - before) / before * 100.0


def _halves(samples: Sequence[Sample]):
    mid = len(samples) // 2
    return samples[:mid], samples[mid:]


def _abs_correlation(a: np.ndarray, b: np.ndarray) -> float:
    # undefined (constant series) counts as uncorrelated
    if len(a) < 2 or np.std(a) == 0 or np.std(b) == 0:
        return 0.0
    return abs(float(np.corrcoef(a, b)[0, 1]))


def _emg_matrix(samples: Sequence[Sample]) -> np.ndarray:
    width = min(len(s.emg) for s in samples)
    return np.array([s.emg[:width] for s in samples], dtype=float)


def primary_trajectory(samples: Sequence[Sample]) -> np.ndarray:
    """Wrist angle when available, else roll, else gyro magnitude."""
    for extract in (lambda s: s.wrist_angle, lambda s: s.roll):
        values = [extract(s) for s in samples]
        if all(v is not None for v in values):
            return np.array(values, dtype=float)
    return gyro_magnitudes(samples)


def direction_changes(trajectory: np.ndarray) -> int:
    steps = np.sign(np.diff(trajectory))
    steps = steps[steps != 0]
    if len(steps) < 2:
        return 0
    return int(np.sum(steps[1:] != steps[:-1]))


# ─────────── Sub-analyses ───────────

@_neutral_when_too_short(TremorResult)
def analyze_tremor(samples: Sequence[Sample], sample_rate_hz: float = NOMINAL_SAMPLE_RATE_HZ) -> TremorResult:
    _require_session(samples)
    mags = gyro_magnitudes(samples)
    peaks = count_local_maxima(mags)
    return TremorResult(
        frequency=peaks * sample_rate_hz / len(mags),
        intensity=float(np.std(mags)),
        consistency=_consistency(mags),
        peak_count=peaks,
    )


@_neutral_when_too_short(SmoothnessResult)
def analyze_smoothness(samples: Sequence[Sample]) -> SmoothnessResult:
    """smoothnessIndex = 10 - min(10, mean|dmag|); quality is left unclamped."""
    _require_session(samples)
    mags = gyro_magnitudes(samples)
    smoothness_index = 10.0 - min(10.0, float(np.mean(np.abs(np.diff(mags)))))
    jerk = np.diff(mags, n=2)
    jerk_cost = float(np.mean(jerk ** 2)) if len(jerk) else 0.0
    consistency = _consistency(mags)
    return SmoothnessResult(
        smoothness_index=smoothness_index,
        jerk_cost=jerk_cost,
        movement_quality=(smoothness_index * 0.6 + (consistency / 100.0) * 0.4) * 10.0,
    )


def rom_metrics(values) -> RomMetrics:
    data = _numeric(values)
    if len(data) == 0:
        return RomMetrics()
    return RomMetrics(
        range=float(np.max(data) - np.min(data)),
        mean=float(np.mean(data)),
        std=float(np.std(data)),
    )


@_neutral_when_too_short(RangeOfMotionResult)
def analyze_range_of_motion(samples: Sequence[Sample]) -> RangeOfMotionResult:
    _require_session(samples)
    return RangeOfMotionResult(
        wrist_flexion=rom_metrics(s.wrist_angle for s in samples),
        roll=rom_metrics(s.roll for s in samples),
        pitch=rom_metrics(s.pitch for s in samples),
        yaw=rom_metrics(s.yaw for s in samples),
    )


def emg_fatigue_index(samples: Sequence[Sample]) -> float:
    """Mean per-channel % drop of EMG amplitude from the first to the second half."""
    first, second = _halves(samples)
    before = np.mean(np.abs(_emg_matrix(first)), axis=0)
    after = np.mean(np.abs(_emg_matrix(second)), axis=0)
    width = min(len(before), len(after))
    drops = [-_percent_change(float(b), float(a)) for b, a in zip(before[:width], after[:width])]
    return float(np.mean(drops)) if drops else 0.0


@_neutral_when_too_short(EmgActivityResult)
def analyze_emg_activity(samples: Sequence[Sample]) -> EmgActivityResult:
    """Per-channel mean amplitude, fatigue trend and a 0-10 activation-pattern score.

    The activation score is high when channels are active and move
    independently: 10 * (1 - mean pairwise |r|) * (share of active channels).
    """
    _require_session(samples)
    emg = np.abs(_emg_matrix(samples))
    amplitudes = np.mean(emg, axis=0)

    channels = emg.shape[1]
    pairs = [
        _abs_correlation(emg[:, i], emg[:, j])
        for i in range(channels) for j in range(i + 1, channels)
    ]
    separation = 1.0 - (float(np.mean(pairs)) if pairs else 0.0)
    active_share = float(np.mean(amplitudes > 0))
    activation = min(10.0, max(0.0, 10.0 * separation * active_share))

    return EmgActivityResult(
        average_amplitude=[float(a) for a in amplitudes],
        fatigue_index=emg_fatigue_index(samples),
        activation_pattern=activation,
    )


@_neutral_when_too_short(FatigueResult)
def analyze_fatigue(samples: Sequence[Sample]) -> FatigueResult:
    _require_session(samples)
    first, second = _halves(samples)
    first_mags, second_mags = gyro_magnitudes(first), gyro_magnitudes(second)
    return FatigueResult(
        emg_fatigue=emg_fatigue_index(samples),
        movement_decay=-_percent_change(float(np.mean(first_mags)), float(np.mean(second_mags))),
        consistency_change=_percent_change(_consistency(first_mags), _consistency(second_mags)),
    )


@_neutral_when_too_short(MotionPatternResult)
def analyze_motion_patterns(
    samples: Sequence[Sample], sample_rate_hz: float = NOMINAL_SAMPLE_RATE_HZ
) -> MotionPatternResult:
    _require_session(samples)
    mags = gyro_magnitudes(samples)
    trajectory = primary_trajectory(samples)

    path = float(np.sum(np.abs(np.diff(trajectory))))
    displacement = abs(float(trajectory[-1] - trajectory[0]))
    efficiency = 100.0 if path == 0 else displacement / path * 100.0

    changes = direction_changes(trajectory)
    complexity = changes * sample_rate_hz / len(trajectory)

    speed = 10.0 * (1.0 - math.exp(-float(np.mean(mags)) / SPEED_REF))

    orientation_stds = [
        rom_metrics(values).std
        for values in ([s.roll for s in samples], [s.pitch for s in samples], [s.yaw for s in samples])
        if len(_numeric(values))
    ]
    spread = float(np.mean(orientation_stds)) / ACCURACY_REF if orientation_stds else float(np.std(mags))
    accuracy = 10.0 / (1.0 + spread)

    second_diff = np.diff(trajectory, n=2)
    control = 10.0 / (1.0 + float(np.mean(np.abs(second_diff))) / CONTROL_REF) if len(second_diff) else 10.0

    emg_total = np.sum(np.abs(_emg_matrix(samples)), axis=1)
    coordination = 10.0 * _abs_correlation(emg_total, mags)

    return MotionPatternResult(
        efficiency=efficiency,
        complexity=complexity,
        speed=speed,
        accuracy=accuracy,
        control=control,
        coordination=coordination,
        repetitions=changes // 2,
    )


# ─────────── Report ───────────

def analyze_session(
    samples: Sequence[Sample],
    previous: Optional[Sequence[Sample]] = None,
    sample_rate_hz: float = NOMINAL_SAMPLE_RATE_HZ,
    smoothing: Optional[str] = None,
    **smoothing_params,
) -> SessionReport:
    """Run every sub-analysis over ``samples``; compare against ``previous`` if given.

    ``smoothing`` names a filter from ``stream.filters.FILTERS`` for an
    optional report-time smoothing pass over a copy of the session.
    """
    if sample_rate_hz <= 0:
        raise ValueError("sample_rate_hz must be > 0")
    window = list(samples)
    if smoothing is not None and window:
        window = smooth_samples(window, smoothing, **smoothing_params)

    if len(window) < MIN_SESSION_LENGTH:
        report = SessionReport(sample_count=len(window), insufficient_data=True)
    else:
        report = SessionReport(
            sample_count=len(window),
            duration=window[-1].timestamp - window[0].timestamp,
            tremor=analyze_tremor(window, sample_rate_hz),
            smoothness=analyze_smoothness(window),
            range_of_motion=analyze_range_of_motion(window),
            emg_activity=analyze_emg_activity(window),
            fatigue=analyze_fatigue(window),
            motion_patterns=analyze_motion_patterns(window, sample_rate_hz),
        )

    if previous is not None:
        previous_report = analyze_session(
            previous, sample_rate_hz=sample_rate_hz, smoothing=smoothing, **smoothing_params
        )
        report = report.model_copy(update={"comparison": compare_reports(report, previous_report)})
    return report
