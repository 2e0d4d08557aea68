from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional

from protocol.errors import UpstreamDisconnected
from protocol.protocol_stream_interface import ProtocolStreamReaderProtocol
from protocol.types import Sample
from stream.broadcaster import Broadcaster
from stream.frame_decoder import FrameDecoder
from stream.sample_buffer import SampleBuffer
from stream.stream_metrics import stream_latency_ms, stream_total_ingested, upstream_disconnects

logger = logging.getLogger("stream_adapter")


# ────────────── Adapter Class ──────────────
class StreamAdapter:
    """The single ingestion task for one physical connection.

    reader -> FrameDecoder -> SampleBuffer -> smoothed Sample -> Broadcaster.
    When the reader ends or fails, the decoder and buffer are reset, the
    broadcaster falls back to synthetic data and, if ``reconnect`` is set,
    the link is retried with exponential backoff.
    """

    stream_id: int = 0

    def __init__(
        self,
        stream: Optional[ProtocolStreamReaderProtocol],
        broadcaster: Broadcaster,
        *,
        decoder: Optional[FrameDecoder] = None,
        buffer: Optional[SampleBuffer] = None,
        reconnect: bool = True,
        max_wait: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.stream_id = StreamAdapter.stream_id
        StreamAdapter.stream_id += 1
        self.stream = stream
        self.broadcaster = broadcaster
        self.decoder = decoder or FrameDecoder()
        self.buffer = buffer or SampleBuffer()
        self.reconnect = reconnect
        self.max_wait = max_wait
        self._sleep = sleep
        self.total_chunks_received = 0
        self.samples_ingested = 0
        self.disconnects = 0
        self.last_disconnect: Optional[UpstreamDisconnected] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run(self) -> None:
        """Consume the stream until stopped, reconnecting after each loss."""
        if self.stream is None:
            raise RuntimeError("StreamAdapter.run() called with stream=None")
        self._running = True
        retry = 0
        while self._running:
            received_before = self.samples_ingested
            cause: Optional[BaseException] = None
            try:
                await self.consume_stream()
            except Exception as exc:
                cause = exc
            if not self._running:
                break
            self._on_disconnect(cause)
            if not self.reconnect:
                break
            if self.samples_ingested > received_before:
                retry = 0
            wait = min(2 ** retry, self.max_wait)
            logger.warning("Upstream %s lost – reconnecting in %ss", self.stream_id, wait)
            await self._sleep(wait)
            retry += 1
        self._running = False

    # Iterates through the stream and processes the chunks.
    async def consume_stream(self) -> None:
        if self.stream is None:
            raise RuntimeError("StreamAdapter.consume_stream() called with stream=None")
        async for chunk in self.stream:
            self.total_chunks_received += 1
            logger.debug("📥 Received chunk: %r", chunk[:80])
            for sample in self.process_chunk(chunk):
                self._ingest(sample)

    def process_chunk(self, chunk: str) -> List[Sample]:
        """Decode one chunk, plus any complete records it left behind."""
        samples: List[Sample] = []
        sample = self.decoder.feed(chunk)
        if sample is not None:
            samples.append(sample)
        samples.extend(self.decoder.drain())
        return samples

    def _ingest(self, sample: Sample) -> None:
        self.samples_ingested += 1
        stream_total_ingested.inc()
        latency = (time.time() - sample.timestamp) * 1000.0
        if latency >= 0:
            stream_latency_ms.observe(latency)
        self.buffer.push(sample)
        smoothed = self.buffer.smoothed_latest()
        if smoothed is not None:
            self.broadcaster.publish_real(smoothed)

    def _on_disconnect(self, cause: Optional[BaseException]) -> None:
        reason = f"{cause!r}" if cause is not None else "stream ended"
        self.last_disconnect = UpstreamDisconnected(f"upstream {self.stream_id} disconnected: {reason}")
        self.disconnects += 1
        upstream_disconnects.inc()
        logger.warning("%s", self.last_disconnect)
        self.decoder.reset()
        self.buffer.clear()
        self.broadcaster.hardware_lost()

    async def send_line(self, line: str) -> None:
        if self.stream is not None:
            await self.stream.send_line(line)

    async def stop(self) -> None:
        self._running = False
        if self.stream is not None:
            await self.stream.close()
        self.buffer.clear()
