"""
Reconstruct Samples from a fragmented line-delimited text stream.

Two record formats are accepted on the wire, with keys matched
case-insensitively (see ``stream.validators``):

* JSON objects: ``{"emg1":500,"emg2":600,"gyrox":0.1,"gyroy":0.1,"gyroz":0.1}``
* firmware text lines: ``EMG1:500 EMG2:600 GyroX:0.1 GyroY:0.1 GyroZ:0.1``

JSON records are self-delimiting; text lines are only complete once their
newline has arrived. ``emg1``, ``emg2``, ``gyrox``, ``gyroy`` and ``gyroz`` are
required. Optional fields: ``timestamp`` (seconds, or epoch milliseconds),
``emg3..N``, ``roll``/``pitch``/``yaw``, ``wristAngle``, ``voltage1..N``,
``isSessionBoundary``/``sessionEnd``.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional

from protocol.errors import DecodeError, FrameOverflow
from protocol.types import Sample
from stream import validators
from stream.stream_metrics import decode_failures as decode_failures_metric
from stream.stream_metrics import frame_overflows as frame_overflows_metric

MAX_BUFFER_SIZE = 4096          # characters held while waiting for a record to complete
_EPOCH_MS_THRESHOLD = 1e11      # larger timestamps are epoch milliseconds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecodeResult:
    sample: Optional[Sample] = None
    error: Optional[DecodeError] = None

    @property
    def ok(self) -> bool:
        return self.sample is not None


class FrameDecoder:
    """Turns raw text chunks into validated Samples, one decoder per connection."""

    def __init__(
        self,
        *,
        emg_channels: int = 2,
        max_buffer_size: int = MAX_BUFFER_SIZE,
        clock: Callable[[], float] = time.time,
        on_error: Optional[Callable[[DecodeError], None]] = None,
    ) -> None:
        if emg_channels < 2:
            raise ValueError("emg_channels must be >= 2")
        if max_buffer_size < 1:
            raise ValueError("max_buffer_size must be >= 1")
        self.emg_channels = emg_channels
        self.max_buffer_size = max_buffer_size
        self.clock = clock
        self.on_error = on_error
        self.decode_failures = 0
        self.overflows = 0
        self.samples_decoded = 0
        self._buffer = ""
        self._last_timestamp = float("-inf")
        self._last_warn = datetime.min.replace(tzinfo=timezone.utc)

    @property
    def buffered(self) -> str:
        return self._buffer

    def reset(self) -> None:
        """Forget buffered fragments and timestamp history (new connection)."""
        self._buffer = ""
        self._last_timestamp = float("-inf")

    # ─────────── stream API ───────────

    def feed(self, chunk: str) -> Optional[Sample]:
        """Consume one chunk; return at most one Sample."""
        if isinstance(chunk, (bytes, bytearray)):
            chunk = chunk.decode("utf-8", errors="replace")

        # A chunk is tried on its own only against an empty buffer, or when it
        # opens a JSON object: a text-line tail may carry every required field
        # while its leading tokens sit in the buffer. Queued complete records
        # and a chunk opening with the buffered line's newline also go through
        # the buffer.
        pending = bool(self._buffer.strip())
        terminates_buffer = pending and chunk.lstrip(" \t\r").startswith("\n")
        opens_object = chunk.lstrip().startswith("{")
        if "\n" not in self._buffer and not terminates_buffer and (not pending or opens_object):
            result = self.decode_record(chunk, terminated=chunk.endswith("\n"))
            if result.ok:
                if self._buffer.strip():
                    self._reject(DecodeError("discarded incomplete fragment", self._buffer))
                self._buffer = ""
                return self._emit(result.sample)

        self._buffer += chunk
        return self._decode_buffer()

    def drain(self) -> List[Sample]:
        """Emit every complete record still held in the buffer."""
        samples: List[Sample] = []
        while True:
            before = self._buffer
            sample = self._decode_buffer()
            if sample is not None:
                samples.append(sample)
            elif self._buffer == before:
                break
        return samples

    # ─────────── record API ───────────

    def decode_record(self, text: str, *, terminated: bool = True) -> DecodeResult:
        """Decode one complete record; never raises."""
        try:
            record = validators.require_fields(self._parse(text, terminated))
            return DecodeResult(sample=self._build_sample(record))
        except DecodeError as exc:
            return DecodeResult(error=exc)

    # ─────────── internals ───────────

    def _decode_buffer(self) -> Optional[Sample]:
        result = self.decode_record(self._buffer, terminated=self._buffer.endswith("\n"))
        if result.ok:
            self._buffer = ""
            return self._emit(result.sample)

        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            if not line.strip():
                continue
            result = self.decode_record(line, terminated=True)
            if result.ok:
                return self._emit(result.sample)
            self._reject(result.error)

        if len(self._buffer) > self.max_buffer_size:
            dropped, self._buffer = self._buffer, ""
            self.overflows += 1
            frame_overflows_metric.inc()
            self._reject(
                FrameOverflow(f"accumulation buffer exceeded {self.max_buffer_size} chars", dropped[:64]),
                counted=False,
            )
        return None

    @staticmethod
    def _parse(text: str, terminated: bool) -> Any:
        body = text.strip()
        if not body:
            raise DecodeError("empty frame")
        if "\n" in body:
            raise DecodeError("frame spans more than one line", body[:64])
        if body[0] in "{[":
            try:
                return json.loads(body)
            except json.JSONDecodeError as exc:
                raise DecodeError(f"malformed JSON frame: {exc.msg}", body[:64]) from exc
        if not terminated:
            raise DecodeError("unterminated text frame", body[:64])
        record = {}
        for token in body.split():
            key, sep, value = token.partition(":")
            if not sep or not key:
                raise DecodeError(f"malformed token {token!r}", body[:64])
            try:
                record[key] = float(value)
            except ValueError as exc:
                raise DecodeError(f"non-numeric value in token {token!r}", body[:64]) from exc
        return record

    def _build_sample(self, record: dict) -> Sample:
        timestamp = validators.optional_number(record, "timestamp")
        if timestamp is None:
            timestamp = self.clock()
        elif timestamp > _EPOCH_MS_THRESHOLD:
            timestamp /= 1000.0

        orientation = [validators.optional_number(record, f) for f in validators.ORIENTATION_FIELDS]
        return Sample(
            timestamp=timestamp,
            emg=tuple(validators.emg_channels(record, self.emg_channels)),
            gyro=(float(record["gyrox"]), float(record["gyroy"]), float(record["gyroz"])),
            orientation=tuple(orientation) if None not in orientation else None,
            wrist_angle=validators.optional_number(record, "wristangle"),
            voltage=tuple(validators.voltage_channels(record)),
            is_synthetic=False,
            is_session_boundary=validators.is_boundary(record),
        )

    def _emit(self, sample: Sample) -> Sample:
        if sample.timestamp < self._last_timestamp:
            sample = sample.model_copy(update={"timestamp": self._last_timestamp})
        self._last_timestamp = sample.timestamp
        self.samples_decoded += 1
        return sample

    def _reject(self, error: DecodeError, counted: bool = True) -> None:
        if counted:
            self.decode_failures += 1
            decode_failures_metric.inc()
        logger.debug("Frame rejected: %s (fragment=%r)", error, error.fragment)
        now = datetime.now(timezone.utc)
        if now - self._last_warn > timedelta(seconds=5):
            logger.warning("Frame rejected by decoder: %s", error)
            self._last_warn = now
        if self.on_error is not None:
            self.on_error(error)
