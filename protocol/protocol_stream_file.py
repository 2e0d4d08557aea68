import asyncio
import json
import logging
from typing import Any, List, Optional

from protocol.protocol_stream_interface import ProtocolStreamReaderProtocol

logger = logging.getLogger(__name__)


class ProtocolStreamFile(ProtocolStreamReaderProtocol):
    """Replays a recorded capture as if it were arriving from the device.

    A ``.json`` file holding a list of records is replayed one JSON line per
    record; anything else is treated as the raw text the board printed. With
    ``chunk_size`` the text is cut into fixed-size pieces regardless of line
    boundaries, and ``rate_hz`` paces the replay.
    """

    def __init__(self, file_path: str, chunk_size: Optional[int] = None, rate_hz: Optional[float] = None):
        if chunk_size is not None and chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if rate_hz is not None and rate_hz <= 0:
            raise ValueError("rate_hz must be > 0")
        self.file_path = file_path
        self.chunk_size = chunk_size
        self.rate_hz = rate_hz
        self.chunks: List[str] = []
        self.current_index = 0
        self.sent_lines: List[str] = []
        self._load_capture()

    def _load_capture(self) -> None:
        try:
            with open(self.file_path, "r", encoding="utf-8") as file:
                text = file.read()
        except FileNotFoundError:
            raise FileNotFoundError(f"Capture file not found: {self.file_path}")

        if self.file_path.endswith(".json"):
            try:
                records: Any = json.loads(text)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON format in {self.file_path}: {e}")
            if not isinstance(records, list):
                records = [records]
            text = "".join(json.dumps(r) + "\n" for r in records)

        if self.chunk_size is None:
            self.chunks = text.splitlines(keepends=True)
        else:
            self.chunks = [text[i:i + self.chunk_size] for i in range(0, len(text), self.chunk_size)]
        logger.info("Loaded %d chunks from %s", len(self.chunks), self.file_path)

    def get_chunk_count(self) -> int:
        return len(self.chunks)

    def __aiter__(self) -> "ProtocolStreamFile":
        return self

    async def __anext__(self) -> str:
        if self.current_index >= len(self.chunks):
            raise StopAsyncIteration
        if self.rate_hz is not None and self.current_index > 0:
            await asyncio.sleep(1.0 / self.rate_hz)
        chunk = self.chunks[self.current_index]
        self.current_index += 1
        return chunk

    async def send_line(self, line: str) -> None:
        self.sent_lines.append(line)

    async def close(self) -> None:
        self.current_index = len(self.chunks)
