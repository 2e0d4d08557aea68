import asyncio
import logging
from typing import Optional

import serial

from protocol.protocol_stream_interface import ProtocolStreamReaderProtocol

DEFAULT_PORT = "/dev/ttyACM0"
DEFAULT_BAUDRATE = 115200

logger = logging.getLogger(__name__)


class SerialLineReader(ProtocolStreamReaderProtocol):
    """Raw text chunks from the sensor board's serial port.

    Reads whatever bytes are waiting, so chunks do not line up with records;
    the frame decoder reassembles them. Blocking pyserial calls run in a
    worker thread. Iteration ends when the port fails or is closed.
    """

    def __init__(self, port: str = DEFAULT_PORT, baudrate: int = DEFAULT_BAUDRATE, timeout: float = 0.1):
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.serial: Optional[serial.Serial] = None

    def __aiter__(self) -> "SerialLineReader":
        return self

    async def connect(self) -> None:
        self.serial = await asyncio.to_thread(
            serial.Serial, self.port, self.baudrate, timeout=self.timeout
        )
        logger.info("Serial port %s opened @ %s baud", self.port, self.baudrate)

    def _read_available(self) -> bytes:
        ser = self.serial
        if ser is None:
            return b""
        return ser.read(max(1, ser.in_waiting))

    async def __anext__(self) -> str:
        if self.serial is None:
            try:
                await self.connect()
            except (serial.SerialException, OSError) as exc:
                logger.warning("Serial port %s unavailable: %s", self.port, exc)
                raise StopAsyncIteration from exc
        while True:
            try:
                data = await asyncio.to_thread(self._read_available)
            except (serial.SerialException, OSError, TypeError) as exc:
                # pyserial raises TypeError when the port is closed under a pending read
                logger.warning("Serial read failed on %s: %s", self.port, exc)
                await self.close()
                raise StopAsyncIteration from exc
            if self.serial is None:
                raise StopAsyncIteration
            if data:
                return data.decode("utf-8", errors="replace")

    async def send_line(self, line: str) -> None:
        if self.serial is None:
            return
        payload = (line.rstrip("\n") + "\n").encode("utf-8")
        try:
            await asyncio.to_thread(self.serial.write, payload)
        except (serial.SerialException, OSError) as exc:
            logger.error("Error writing to serial port %s: %s", self.port, exc)

    async def close(self) -> None:
        ser, self.serial = self.serial, None
        if ser is not None:
            await asyncio.to_thread(ser.close)
            logger.info("Serial port %s closed", self.port)
