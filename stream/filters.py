"""Smoothing filters for noisy sensor channels.

Every filter is a pure function of ``(history, parameters)``: each call
replays the whole recurrence from the first element of ``data`` with fresh
per-channel state, so a streaming caller must hand in a full bounded window
rather than a single new point.

``data`` is either a sequence of numbers, or a sequence of records together
with ``field`` naming the numeric attribute/key to smooth. In the second form
the result holds new records with only that field replaced.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Optional, Sequence

import numpy as np

from protocol.types import Sample


# ─────────── Filter state ───────────

@dataclass
class EmaState:
    """Running value of an exponential smoother for one channel."""
    alpha: float
    value: Optional[float] = None

    def step(self, x: float) -> float:
        if self.value is None:
            self.value = x
        else:
            self.value = self.alpha * x + (1.0 - self.alpha) * self.value
        return self.value


@dataclass
class KalmanState:
    """Scalar Kalman state for one channel, seeded by the first observation."""
    process_noise: float
    measurement_noise: float
    estimate: Optional[float] = None
    error_covariance: float = 1.0

    def step(self, measurement: float) -> float:
        if self.estimate is None:
            self.estimate = measurement
        predicted_covariance = self.error_covariance + self.process_noise
        gain = predicted_covariance / (predicted_covariance + self.measurement_noise)
        self.estimate = self.estimate + gain * (measurement - self.estimate)
        self.error_covariance = (1.0 - gain) * predicted_covariance
        return self.estimate


# ─────────── Record helpers ───────────

def _read_field(record: Any, field: str) -> float:
    if isinstance(record, Mapping):
        return float(record[field])
    return float(getattr(record, field))


def _with_field(record: Any, field: str, value: float) -> Any:
    if isinstance(record, Mapping):
        updated = dict(record)
        updated[field] = value
        return updated
    if hasattr(record, "model_copy"):
        return record.model_copy(update={field: value})
    raise TypeError(f"cannot replace field {field!r} on {type(record).__name__}")


def _apply(data: Sequence[Any], field: Optional[str], fn: Callable[[List[float]], List[float]]) -> List[Any]:
    if not data:
        return []
    if field is None:
        return fn([float(x) for x in data])
    smoothed = fn([_read_field(record, field) for record in data])
    return [_with_field(record, field, value) for record, value in zip(data, smoothed)]


# ─────────── Filters ───────────

def moving_average(data: Sequence[Any], window_size: int = 5, field: Optional[str] = None) -> List[Any]:
    """Trailing mean over ``window_size`` points.

    The first ``window_size - 1`` points pass through unchanged; input shorter
    than the window is returned unchanged.
    """
    if window_size < 1:
        raise ValueError("window_size must be >= 1")
    if len(data) < window_size:
        return list(data)

    def _smooth(values: List[float]) -> List[float]:
        arr = np.asarray(values, dtype=float)
        means = np.convolve(arr, np.ones(window_size) / window_size, mode="valid")
        return values[: window_size - 1] + means.tolist()

    return _apply(data, field, _smooth)


def exponential_moving_average(data: Sequence[Any], alpha: float = 0.2, field: Optional[str] = None) -> List[Any]:
    """output[0] = input[0]; output[i] = alpha*input[i] + (1-alpha)*output[i-1]."""
    if not 0.0 < alpha <= 1.0:
        raise ValueError("alpha must be in (0, 1]")

    def _smooth(values: List[float]) -> List[float]:
        state = EmaState(alpha)
        return [state.step(x) for x in values]

    return _apply(data, field, _smooth)


def low_pass_alpha(cutoff: float, dt: float = 1.0) -> float:
    rc = 1.0 / (2.0 * math.pi * cutoff)
    return dt / (rc + dt)


def low_pass_filter(data: Sequence[Any], cutoff: float = 0.1, field: Optional[str] = None) -> List[Any]:
    """First-order RC low-pass with a unit time step; same recurrence as the EMA."""
    if cutoff <= 0:
        raise ValueError("cutoff must be > 0")
    return exponential_moving_average(data, alpha=low_pass_alpha(cutoff), field=field)


def kalman_filter(
    data: Sequence[Any],
    process_noise: float = 0.01,
    measurement_noise: float = 1.0,
    field: Optional[str] = None,
) -> List[Any]:
    if process_noise < 0 or measurement_noise < 0:
        raise ValueError("noise parameters must be >= 0")
    if process_noise == 0 and measurement_noise == 0:
        # gain denominator collapses to zero after the first step
        raise ValueError("process_noise and measurement_noise cannot both be 0")

    def _smooth(values: List[float]) -> List[float]:
        state = KalmanState(process_noise, measurement_noise)
        return [state.step(x) for x in values]

    return _apply(data, field, _smooth)


FILTERS: dict[str, Callable[..., List[Any]]] = {
    "moving_average": moving_average,
    "ema": exponential_moving_average,
    "low_pass": low_pass_filter,
    "kalman": kalman_filter,
}


# ─────────── Sample windows ───────────

def _smooth_columns(rows: List[Sequence[float]], fn: Callable[[List[float]], List[Any]]) -> List[tuple]:
    columns = [fn([float(row[i]) for row in rows]) for i in range(len(rows[0]))]
    return [tuple(col[k] for col in columns) for k in range(len(rows))]


def smooth_samples(samples: Sequence[Sample], method: str = "ema", **params: Any) -> List[Sample]:
    """Smooth every numeric channel of ``samples`` independently.

    Channels are smoothed across the window only when every sample carries
    them with the same arity (orientation, wrist angle and voltage are
    optional); otherwise each sample keeps its own raw value. Timestamps and
    flags are never touched.
    """
    if method not in FILTERS:
        raise ValueError(f"unknown smoothing method {method!r}")
    if not samples:
        return []
    fn = lambda values: FILTERS[method](values, **params)  # noqa: E731
    window = list(samples)

    updates: List[dict] = [{} for _ in window]

    emg_arity = {len(s.emg) for s in window}
    if len(emg_arity) == 1:
        for update, emg in zip(updates, _smooth_columns([s.emg for s in window], fn)):
            update["emg"] = emg

    for update, gyro in zip(updates, _smooth_columns([s.gyro for s in window], fn)):
        update["gyro"] = gyro

    if all(s.orientation is not None for s in window):
        for update, ori in zip(updates, _smooth_columns([s.orientation for s in window], fn)):
            update["orientation"] = ori

    if all(s.wrist_angle is not None for s in window):
        for update, angle in zip(updates, fn([s.wrist_angle for s in window])):
            update["wrist_angle"] = angle

    voltage_arity = {len(s.voltage) for s in window}
    if len(voltage_arity) == 1 and voltage_arity != {0}:
        for update, volts in zip(updates, _smooth_columns([s.voltage for s in window], fn)):
            update["voltage"] = volts

    return [s.model_copy(update=update) for s, update in zip(window, updates)]
