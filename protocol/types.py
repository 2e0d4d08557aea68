from __future__ import annotations

import math
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

GyroTuple = Tuple[float, float, float]
OrientationTuple = Tuple[float, float, float]


class Sample(BaseModel):
    """One point-in-time reading.

    Immutable once built; smoothed or merged samples are new instances made
    with ``model_copy``. Serialized with camelCase names (``wristAngle``,
    ``isSynthetic``, ``isSessionBoundary``) for downstream consumers.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    timestamp: float                              # seconds, wall-clock or logical
    emg: Tuple[float, ...] = Field(..., min_length=2)
    gyro: GyroTuple
    orientation: Optional[OrientationTuple] = None  # roll, pitch, yaw in degrees
    wrist_angle: Optional[float] = None
    voltage: Tuple[float, ...] = ()
    is_synthetic: bool = False
    is_session_boundary: bool = False

    @property
    def roll(self) -> Optional[float]:
        return self.orientation[0] if self.orientation is not None else None

    @property
    def pitch(self) -> Optional[float]:
        return self.orientation[1] if self.orientation is not None else None

    @property
    def yaw(self) -> Optional[float]:
        return self.orientation[2] if self.orientation is not None else None

    @property
    def gyro_magnitude(self) -> float:
        x, y, z = self.gyro
        return math.sqrt(x * x + y * y + z * z)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class StreamMode(str, Enum):
    REAL = "real"
    SYNTHETIC = "synthetic"


class ConnectionStatus(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    mode: StreamMode
    hardware_connected: bool

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class StreamEvent(BaseModel):
    """Envelope delivered to every subscriber."""

    model_config = ConfigDict(frozen=True)

    STATUS: ClassVar[str] = "connectionStatus"
    SAMPLE: ClassVar[str] = "sensorData"

    type: str
    data: Union[Sample, ConnectionStatus]

    @classmethod
    def status(cls, status: ConnectionStatus) -> "StreamEvent":
        return cls(type=cls.STATUS, data=status)

    @classmethod
    def sample(cls, sample: Sample) -> "StreamEvent":
        return cls(type=cls.SAMPLE, data=sample)

    @property
    def is_status(self) -> bool:
        return self.type == self.STATUS

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.type, "data": self.data.to_wire()}
