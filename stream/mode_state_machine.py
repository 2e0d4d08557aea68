import logging
from enum import Enum
from typing import Callable, Dict, List, Optional

from protocol.types import ConnectionStatus, StreamMode
from stream.stream_metrics import stream_mode_real


class HardwareState(Enum):
    """Whether a hardware decode path has produced data"""
    NO_HARDWARE = "no_hardware"
    CONNECTED = "connected"


# Each hardware state maps to exactly one stream mode
_MODE_FOR_STATE = {
    HardwareState.NO_HARDWARE: StreamMode.SYNTHETIC,
    HardwareState.CONNECTED: StreamMode.REAL,
}


class ModeStateMachine:
    """Owns the real/synthetic decision for one broadcaster.

    ``transition()`` is the only place the mode changes; everything else reads
    ``mode``. Listeners are called synchronously inside the transition, so no
    other producer can observe a half-switched state.
    """

    def __init__(self):
        self._state = HardwareState.NO_HARDWARE
        self._history: List[HardwareState] = [self._state]
        self._listeners: List[Callable[[StreamMode, StreamMode], None]] = []
        self.logger = logging.getLogger(__name__)

        self._valid_transitions: Dict[HardwareState, List[HardwareState]] = {
            HardwareState.NO_HARDWARE: [HardwareState.CONNECTED],
            HardwareState.CONNECTED: [HardwareState.NO_HARDWARE],
        }
        stream_mode_real.set(0)

    @property
    def state(self) -> HardwareState:
        return self._state

    @property
    def mode(self) -> StreamMode:
        return _MODE_FOR_STATE[self._state]

    @property
    def is_real(self) -> bool:
        return self._state is HardwareState.CONNECTED

    @property
    def history(self) -> List[HardwareState]:
        return list(self._history)

    def status(self) -> ConnectionStatus:
        return ConnectionStatus(mode=self.mode, hardware_connected=self.is_real)

    def on_transition(self, callback: Callable[[StreamMode, StreamMode], None]) -> None:
        """Register ``callback(old_mode, new_mode)``, run on every accepted transition"""
        self._listeners.append(callback)

    def transition(self, new_state: HardwareState) -> bool:
        """Move to ``new_state``; returns False when already there or not allowed"""
        current = self._state
        if new_state not in self._valid_transitions.get(current, []):
            if new_state is not current:
                self.logger.warning(f"Invalid mode transition {current.value} -> {new_state.value}")
            return False

        old_mode = self.mode
        self._state = new_state
        self._history.append(new_state)
        stream_mode_real.set(1 if self.is_real else 0)
        self.logger.info(f"Stream mode: {old_mode.value} -> {self.mode.value}")

        for callback in self._listeners:
            callback(old_mode, self.mode)
        return True

    def hardware_connected(self) -> bool:
        return self.transition(HardwareState.CONNECTED)

    def hardware_lost(self) -> bool:
        return self.transition(HardwareState.NO_HARDWARE)

    def reset(self, state: Optional[HardwareState] = None) -> None:
        self._state = state or HardwareState.NO_HARDWARE
        self._history = [self._state]
        stream_mode_real.set(1 if self.is_real else 0)
