import argparse
import asyncio
import json
import math
import random
import time
from typing import Callable, Optional

from websockets import ServerConnection, serve
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

# ────────────────────────────────
# Configuration
# ────────────────────────────────
PORT = 8765
ENDPOINT_PATH = "/ws"
FRAME_RATE_HZ = 10
MAX_CHUNK = 24          # frames are cut into 1..MAX_CHUNK character pieces
FORMATS = ("json", "legacy", "mixed")


# ────────────────────────────────
# Frame generation
# ────────────────────────────────
def generate_frame(seq: int, t: float, rng: random.Random, fmt: str = "json", boundary: bool = False) -> str:
    """One newline-terminated record as the sensor board prints it."""
    emg1 = 500 + rng.randint(-50, 50)
    emg2 = 600 + rng.randint(-50, 50)
    gx, gy, gz = (round(rng.uniform(-0.5, 0.5), 3) for _ in range(3))
    if fmt == "mixed":
        fmt = "legacy" if seq % 2 and not boundary else "json"

    if fmt == "legacy":
        line = f"EMG1:{emg1} EMG2:{emg2} Voltage1:{round(emg1 * 3.3 / 1023, 3)} GyroX:{gx} GyroY:{gy} GyroZ:{gz}"
        return line + "\n"

    record = {
        "timestamp": round(t, 3),
        "emg1": emg1,
        "emg2": emg2,
        "gyrox": gx,
        "gyroy": gy,
        "gyroz": gz,
        "roll": round(30.0 * math.sin(0.5 * seq / FRAME_RATE_HZ), 2),
        "pitch": round(20.0 * math.cos(0.3 * seq / FRAME_RATE_HZ), 2),
        "yaw": round(45.0 * math.sin(0.2 * seq / FRAME_RATE_HZ), 2),
    }
    if boundary:
        record["sessionEnd"] = True
    return json.dumps(record) + "\n"


def fragment(text: str, rng: random.Random, max_chunk: int = MAX_CHUNK):
    """Cut text at random points, the way a serial bridge relays it."""
    pos = 0
    while pos < len(text):
        size = rng.randint(1, max_chunk)
        yield text[pos:pos + size]
        pos += size


# ────────────────────────────────
# WebSocket Streaming Logic
# ────────────────────────────────
def make_board_handler(
    rate_hz: float = FRAME_RATE_HZ,
    fmt: str = "json",
    max_chunk: int = MAX_CHUNK,
    frames: Optional[int] = None,
    seed: Optional[int] = None,
    on_line: Optional[Callable[[str], None]] = None,
):
    """Build a connection handler streaming ``frames`` records (forever when None)."""
    interval = 1.0 / rate_hz

    async def receive_lines(websocket: ServerConnection):
        async for message in websocket:
            for line in str(message).splitlines():
                if on_line is not None:
                    on_line(line)
                else:
                    print(f"⬅️  {line}")

    async def run_board(websocket: ServerConnection):
        path = websocket.request.path.split("?")[0] if websocket.request is not None else None
        if path != ENDPOINT_PATH:
            print(f"❌ Rejected connection on unexpected path: {path}")
            await websocket.close(1008, "Invalid endpoint")
            return

        rng = random.Random(seed)
        reader = asyncio.create_task(receive_lines(websocket))
        seq = 0
        try:
            while frames is None or seq < frames:
                boundary = frames is not None and seq == frames - 1
                frame = generate_frame(seq, time.time(), rng, fmt, boundary)
                for chunk in fragment(frame, rng, max_chunk):
                    await websocket.send(chunk)
                seq += 1
                await asyncio.sleep(interval)
            await websocket.close()
        except (ConnectionClosedOK, ConnectionClosedError):
            print("Client disconnected.")
        finally:
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)

    return run_board


# ────────────────────────────────
# Entry Point
# ────────────────────────────────
def parse_arguments(argv=None):
    parser = argparse.ArgumentParser(description="Mock biosignal sensor board (WebSocket)")
    parser.add_argument("--port", type=int, default=PORT, help=f"Port to run the server on (default: {PORT})")
    parser.add_argument("--rate", type=float, default=FRAME_RATE_HZ, help="Frames per second")
    parser.add_argument("--format", choices=FORMATS, default="mixed", help="Record format on the wire")
    parser.add_argument("--max-chunk", type=int, default=MAX_CHUNK, help="Largest fragment size in characters")
    parser.add_argument("--frames", type=int, help="Frames per connection; the last one ends the session")
    parser.add_argument("--seed", type=int)
    return parser.parse_args(argv)


async def main(argv=None):
    args = parse_arguments(argv)
    handler = make_board_handler(args.rate, args.format, args.max_chunk, args.frames, args.seed)
    print(f"✅ Mock sensor board running at ws://localhost:{args.port}{ENDPOINT_PATH}")
    async with serve(handler, "localhost", args.port):
        await asyncio.Future()  # run forever


if __name__ == "__main__":
    asyncio.run(main())
