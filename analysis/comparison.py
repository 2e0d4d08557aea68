"""Differences between two session reports."""
from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from analysis.movement_analysis import SessionReport

# (name, path into the report, lower value is better)
HEADLINE_METRICS = [
    ("tremor_frequency", ("tremor", "frequency"), True),
    ("tremor_intensity", ("tremor", "intensity"), True),
    ("tremor_consistency", ("tremor", "consistency"), False),
    ("smoothness_index", ("smoothness", "smoothness_index"), False),
    ("movement_quality", ("smoothness", "movement_quality"), False),
    ("activation_pattern", ("emg_activity", "activation_pattern"), False),
    ("efficiency", ("motion_patterns", "efficiency"), False),
]


class MetricDelta(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    name: str
    current: float
    previous: float
    delta_percent: Optional[float] = None
    improved: bool = False


class SessionComparison(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    metrics: List[MetricDelta] = []
    improved_rom_channels: List[str] = []
    summary: List[str] = []

    def metric(self, name: str) -> MetricDelta:
        for m in self.metrics:
            if m.name == name:
                return m
        raise KeyError(name)


def percent_delta(current: float, previous: float) -> Optional[float]:
    if previous == 0:
        return None
    return (current - previous) / previous * 100.0


def _lookup(report: "SessionReport", path) -> float:
    value = report
    for attr in path:
        value = getattr(value, attr)
    return float(value)


def _delta(name: str, current: float, previous: float, lower_is_better: bool) -> MetricDelta:
    improved = current < previous if lower_is_better else current > previous
    return MetricDelta(
        name=name,
        current=current,
        previous=previous,
        delta_percent=percent_delta(current, previous),
        improved=improved,
    )


def progress_summary(current: "SessionReport", previous: "SessionReport", improved_rom: List[str]) -> List[str]:
    lines = []
    if current.smoothness.movement_quality > previous.smoothness.movement_quality:
        lines.append("Your movement quality has improved since the previous session. Keep up the good work!")
    else:
        lines.append(
            "Your movement quality has slightly decreased since the previous session. "
            "This could be due to fatigue or other factors."
        )
    if current.tremor.intensity < previous.tremor.intensity:
        lines.append("Tremor intensity has decreased, which is a positive sign of improvement.")
    else:
        lines.append(
            "Tremor intensity has increased slightly. Consider discussing this with your healthcare provider."
        )
    if improved_rom:
        lines.append(f"Range of motion in {', '.join(improved_rom)} has improved since your last session.")
    else:
        lines.append("Range of motion has not improved since your last session.")
    return lines


def compare_reports(current: "SessionReport", previous: "SessionReport") -> SessionComparison:
    metrics = [
        _delta(name, _lookup(current, path), _lookup(previous, path), lower_is_better)
        for name, path, lower_is_better in HEADLINE_METRICS
    ]
    previous_rom = previous.range_of_motion.channels()
    improved_rom = [
        name for name, rom in current.range_of_motion.channels().items()
        if rom.range > previous_rom[name].range
    ]
    return SessionComparison(
        metrics=metrics,
        improved_rom_channels=improved_rom,
        summary=progress_summary(current, previous, improved_rom),
    )
