from typing import AsyncIterator, Protocol, runtime_checkable


@runtime_checkable
class ProtocolStreamReaderProtocol(Protocol):
    """Upstream link yielding raw text chunks with no alignment to record boundaries."""

    def __aiter__(self) -> AsyncIterator[str]:
        ...

    async def __anext__(self) -> str:
        ...

    async def close(self) -> None:
        ...

    async def send_line(self, line: str) -> None:
        """Write one newline-terminated line back to the device, if the link allows it."""
        ...
