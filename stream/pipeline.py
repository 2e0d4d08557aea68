import asyncio
import logging
from typing import Any, Dict, Optional

from analysis.movement_analysis import SessionReport, analyze_session
from protocol.protocol_stream_interface import ProtocolStreamReaderProtocol
from protocol.protocol_stream_mock import WebSocketChunkReader
from protocol.protocol_stream_serial import SerialLineReader
from protocol.types import Sample, StreamEvent
from stream.broadcaster import Broadcaster, SubscriptionHandle
from stream.config import StreamConfig
from stream.frame_decoder import FrameDecoder
from stream.sample_buffer import SampleBuffer
from stream.session_recorder import Session, SessionRecorder
from stream.stream_adapter import StreamAdapter
from stream.synthetic_generator import SyntheticGenerator

# Session capture must not shed samples under normal load
RECORDER_QUEUE_SIZE = 10_000

logger = logging.getLogger("stream_adapter")


def build_reader(config: StreamConfig) -> Optional[ProtocolStreamReaderProtocol]:
    """Serial port first, then a websocket relay; None means synthetic only."""
    if config.serial_port:
        return SerialLineReader(config.serial_port, config.baudrate)
    if config.upstream_uri:
        return WebSocketChunkReader(config.upstream_uri, max_wait=config.reconnect_max_wait_s)
    return None


class StreamPipeline:
    """Owns one connection's decoder, buffer, broadcaster, adapter and recorder."""

    def __init__(
        self,
        config: Optional[StreamConfig] = None,
        reader: Optional[ProtocolStreamReaderProtocol] = None,
        *,
        reconnect: bool = True,
    ) -> None:
        self.config = config or StreamConfig()
        cfg = self.config
        self.decoder = FrameDecoder(emg_channels=cfg.emg_channels, max_buffer_size=cfg.max_frame_buffer)
        self.buffer = SampleBuffer(cfg.buffer_capacity, cfg.smoothing_alpha)
        self.broadcaster = Broadcaster(
            generator=SyntheticGenerator(cfg.synthetic_rate_hz, cfg.emg_channels, cfg.synthetic_seed),
            queue_size=cfg.subscriber_queue_size,
        )
        self.recorder = SessionRecorder()
        self.reader = reader if reader is not None else build_reader(cfg)
        self.adapter: Optional[StreamAdapter] = None
        if self.reader is not None:
            self.adapter = StreamAdapter(
                self.reader,
                self.broadcaster,
                decoder=self.decoder,
                buffer=self.buffer,
                reconnect=reconnect,
                max_wait=cfg.reconnect_max_wait_s,
            )
        self._adapter_task: Optional[asyncio.Task] = None
        self._recorder_handle: Optional[SubscriptionHandle] = None
        self.latest_sample: Optional[Sample] = None

    async def start(self) -> None:
        await self.broadcaster.start()
        self._recorder_handle = self.broadcaster.subscribe(self._on_event, RECORDER_QUEUE_SIZE)
        if self.adapter is not None:
            self._adapter_task = asyncio.create_task(self.adapter.run(), name="stream-adapter")
        logger.info("Pipeline started (%s)", "hardware link" if self.adapter else "synthetic only")

    def _on_event(self, event: StreamEvent) -> None:
        if not event.is_status:
            self.latest_sample = event.data
        self.recorder.handle_event(event)

    async def stop(self) -> None:
        if self.adapter is not None:
            await self.adapter.stop()
        if self._adapter_task is not None:
            self._adapter_task.cancel()
            await asyncio.gather(self._adapter_task, return_exceptions=True)
            self._adapter_task = None
        self.recorder.stop()
        await self.broadcaster.stop()
        self._recorder_handle = None
        self.decoder.reset()
        self.buffer.clear()
        logger.info("Pipeline stopped")

    async def set_wrist_angle(self, angle: Optional[float]) -> None:
        """Perception input: merged into outgoing samples and echoed to the device."""
        self.broadcaster.set_wrist_angle(angle)
        if angle is not None and self.adapter is not None and self.adapter.running:
            await self.adapter.send_line(f"ANGLE:{angle}")

    # ─────────── sessions ───────────

    def start_session(self) -> None:
        self.recorder.start()

    def stop_session(self) -> Optional[Session]:
        return self.recorder.stop()

    def analyze_last_session(
        self,
        compare: bool = True,
        sample_rate_hz: Optional[float] = None,
        smoothing: Optional[str] = None,
        **smoothing_params: Any,
    ) -> Optional[SessionReport]:
        """Report on the last finished session; ValueError on bad analysis parameters."""
        current = self.recorder.last_session
        if current is None:
            return None
        previous = self.recorder.previous_session if compare else None
        return analyze_session(
            current.samples,
            previous.samples if previous is not None else None,
            sample_rate_hz=sample_rate_hz or self.config.nominal_sample_rate_hz,
            smoothing=smoothing,
            **smoothing_params,
        )

    # ─────────── diagnostics ───────────

    def diagnostics(self) -> Dict[str, Any]:
        broadcast = self.broadcaster.diagnostics()
        return {
            "mode": broadcast["mode"],
            "hardwareConnected": broadcast["hardwareConnected"],
            "samplesProcessed": broadcast["samplesPublished"],
            "decodeFailures": self.decoder.decode_failures,
            "frameOverflows": self.decoder.overflows,
            "activeSubscribers": broadcast["activeSubscribers"],
        }
