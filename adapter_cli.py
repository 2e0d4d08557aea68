from __future__ import annotations

import argparse
import asyncio
import json
import os
from typing import List, Optional, Tuple

import uvicorn
from rich.console import Console
from rich.table import Table

from analysis.movement_analysis import SessionReport, analyze_session
from protocol.protocol_stream_file import ProtocolStreamFile
from protocol.types import Sample
from stream.config import configure_logging, load_stream_config
from stream.frame_decoder import FrameDecoder
from stream.session_recorder import truncate_at_boundary

console = Console()


async def decode_capture(
    path: str, chunk_size: Optional[int] = None, emg_channels: int = 2
) -> Tuple[List[Sample], FrameDecoder]:
    """Decode a recorded capture exactly as the live adapter would."""
    reader = ProtocolStreamFile(path, chunk_size=chunk_size)
    decoder = FrameDecoder(emg_channels=emg_channels)
    samples: List[Sample] = []
    async for chunk in reader:
        sample = decoder.feed(chunk)
        if sample is not None:
            samples.append(sample)
        samples.extend(decoder.drain())
    return samples, decoder


def print_samples(samples: List[Sample], decoder: FrameDecoder, limit: int) -> None:
    table = Table(title=f"{len(samples)} samples decoded")
    for col in ("timestamp", "emg", "gyro", "orientation", "wristAngle", "boundary"):
        table.add_column(col)
    for s in samples[:limit]:
        table.add_row(
            f"{s.timestamp:.3f}",
            ", ".join(f"{v:g}" for v in s.emg),
            ", ".join(f"{v:g}" for v in s.gyro),
            ", ".join(f"{v:.1f}" for v in s.orientation) if s.orientation else "-",
            f"{s.wrist_angle:g}" if s.wrist_angle is not None else "-",
            "✔" if s.is_session_boundary else "",
        )
    console.print(table)
    colour = "red" if decoder.decode_failures or decoder.overflows else "green"
    console.print(f"[{colour}]decode failures={decoder.decode_failures} overflows={decoder.overflows}[/]")


def print_report(report: SessionReport) -> None:
    if report.insufficient_data:
        console.print(f"[yellow]Session too short to analyze ({report.sample_count} samples)[/]")
        return
    table = Table(title=f"Session report • {report.sample_count} samples • {report.duration:.1f}s")
    table.add_column("metric")
    table.add_column("value", justify="right")
    rows = [
        ("Tremor frequency (Hz)", report.tremor.frequency),
        ("Tremor intensity", report.tremor.intensity),
        ("Tremor consistency (%)", report.tremor.consistency),
        ("Smoothness index", report.smoothness.smoothness_index),
        ("Jerk cost", report.smoothness.jerk_cost),
        ("Movement quality (/10)", report.smoothness.movement_quality),
        ("EMG fatigue index", report.emg_activity.fatigue_index),
        ("Activation pattern (/10)", report.emg_activity.activation_pattern),
        ("Movement decay (%)", report.fatigue.movement_decay),
        ("Consistency change (%)", report.fatigue.consistency_change),
        ("Efficiency (%)", report.motion_patterns.efficiency),
        ("Complexity", report.motion_patterns.complexity),
        ("Speed / Accuracy", f"{report.motion_patterns.speed:.2f} / {report.motion_patterns.accuracy:.2f}"),
        ("Control / Coordination", f"{report.motion_patterns.control:.2f} / {report.motion_patterns.coordination:.2f}"),
        ("Repetitions", report.motion_patterns.repetitions),
    ]
    for name, rom in report.range_of_motion.channels().items():
        rows.append((f"ROM {name} (range/mean/std)", f"{rom.range:.1f} / {rom.mean:.1f} / {rom.std:.2f}"))
    for label, value in rows:
        table.add_row(label, f"{value:.2f}" if isinstance(value, float) else str(value))
    console.print(table)

    if report.comparison is not None:
        for line in report.comparison.summary:
            console.print(f"[cyan]•[/] {line}")


async def run_replay(path: str, chunk_size: Optional[int], limit: int, emg_channels: int) -> None:
    samples, decoder = await decode_capture(path, chunk_size, emg_channels)
    print_samples(samples, decoder, limit)


async def run_analyze(
    path: str, previous: Optional[str], rate_hz: float, smoothing: Optional[str], emg_channels: int, as_json: bool
) -> None:
    samples, _ = await decode_capture(path, emg_channels=emg_channels)
    previous_samples = None
    if previous:
        previous_samples, _ = await decode_capture(previous, emg_channels=emg_channels)
        previous_samples = truncate_at_boundary(previous_samples)
    report = analyze_session(truncate_at_boundary(samples), previous_samples, sample_rate_hz=rate_hz, smoothing=smoothing)
    if as_json:
        console.print_json(json.dumps(report.to_wire()))
    else:
        print_report(report)


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Biosignal stream service and capture tools.")
    parser.add_argument("--config", metavar="FILE", default=os.getenv("STREAM_CONFIG"), help="JSON or YAML config file")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the streaming service")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)

    replay = sub.add_parser("replay", help="Decode a recorded capture and print the samples")
    replay.add_argument("capture")
    replay.add_argument("--chunk-size", type=int, help="Split the capture into fixed-size chunks")
    replay.add_argument("--limit", type=int, default=20, help="Rows to print")

    analyze = sub.add_parser("analyze", help="Analyze a recorded session")
    analyze.add_argument("capture")
    analyze.add_argument("--previous", metavar="CAPTURE", help="Earlier session to compare against")
    analyze.add_argument("--rate", type=float, help="Nominal sample rate (Hz)")
    analyze.add_argument("--smoothing", choices=["moving_average", "ema", "low_pass", "kalman"])
    analyze.add_argument("--json", action="store_true", help="Print the report as JSON")

    args = parser.parse_args(argv)
    config = load_stream_config(args.config)
    configure_logging(config)

    if args.command == "serve":
        if args.config:
            os.environ["STREAM_CONFIG"] = args.config
        uvicorn.run("main:app", host=args.host or config.host, port=args.port or config.port, reload=False)
    elif args.command == "replay":
        asyncio.run(run_replay(args.capture, args.chunk_size, args.limit, config.emg_channels))
    elif args.command == "analyze":
        rate = args.rate or config.nominal_sample_rate_hz
        asyncio.run(run_analyze(args.capture, args.previous, rate, args.smoothing, config.emg_channels, args.json))


if __name__ == "__main__":  # pragma: no cover
    main()
