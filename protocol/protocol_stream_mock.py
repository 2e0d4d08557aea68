import asyncio
import logging
from typing import Optional

import websockets

from protocol.protocol_stream_interface import ProtocolStreamReaderProtocol


class WebSocketChunkReader(ProtocolStreamReaderProtocol):
    """Text chunks relayed over a websocket, e.g. from a bridge or mock board.

    ``connect()`` retries with exponential backoff; once connected, any
    receive error ends the iteration so the adapter can report the loss.
    """

    def __init__(self, uri: str, max_wait: float = 30.0):
        self.uri = uri
        self.max_wait = max_wait
        self.ws = None

    def __aiter__(self) -> "WebSocketChunkReader":
        return self

    async def connect(self, max_retries: Optional[int] = None):
        retry = 0
        while True:
            try:
                self.ws = await websockets.connect(self.uri, max_queue=None)
                logging.info("Connected to upstream %s", self.uri)
                break
            except (OSError, websockets.exceptions.WebSocketException) as exc:
                if max_retries is not None and retry >= max_retries:
                    raise
                wait = min(2 ** retry, self.max_wait)
                logging.warning("WebSocket error (%s) – reconnecting in %ss", exc, wait)
                await asyncio.sleep(wait)
                retry += 1

    async def __anext__(self) -> str:
        if self.ws is None:
            await self.connect()
        try:
            msg = await self.ws.recv()  # type: ignore
        except websockets.exceptions.WebSocketException as exc:
            await self.close()
            raise StopAsyncIteration from exc
        if isinstance(msg, bytes):
            msg = msg.decode("utf-8", errors="replace")
        return msg

    async def send_line(self, line: str) -> None:
        if self.ws is not None:
            await self.ws.send(line.rstrip("\n") + "\n")

    async def close(self) -> None:
        if self.ws is not None:
            await self.ws.close()
            self.ws = None
