from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest  # Prometheus metrics
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from analysis.movement_analysis import analyze_session
from metrics.metrics_collector import MetricsCollector, build_outputs
from protocol.types import Sample, StreamEvent
from stream.config import configure_logging, load_stream_config
from stream.pipeline import StreamPipeline
from stream.stream_metrics import (
    decode_failures,
    frame_overflows,
    stream_total_ingested,
    synthetic_samples_total,
)

logger = logging.getLogger("stream_adapter")

# ─────────── Global Variables for Shutdown ───────────
pipeline: Optional[StreamPipeline] = None
metrics_collector: Optional[MetricsCollector] = None
background_tasks: List[asyncio.Task] = []

# ─────────── FastAPI App ───────────
app = FastAPI(title="Biosignal Stream Service")


class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    samples: Optional[List[Sample]] = None
    previous: Optional[List[Sample]] = None
    sample_rate_hz: Optional[float] = Field(None, gt=0)
    smoothing: Optional[str] = None


def _require_pipeline() -> StreamPipeline:
    if pipeline is None:
        raise HTTPException(status_code=503, detail="stream pipeline not running")
    return pipeline


# ─────────── Startup Initialization ───────────
@app.on_event("startup")
async def _start_pipeline() -> None:
    global pipeline, metrics_collector
    config = load_stream_config(os.getenv("STREAM_CONFIG"))
    configure_logging(config)

    pipeline = StreamPipeline(config)
    await pipeline.start()

    # Force metric registration (shows up in Prometheus even before increment)
    stream_total_ingested.inc(0)
    synthetic_samples_total.inc(0)
    decode_failures.inc(0)
    frame_overflows.inc(0)

    background_tasks.clear()
    outputs = build_outputs(config)
    if outputs:
        metrics_collector = MetricsCollector(pipeline.diagnostics, outputs, config.diagnostics_period_s)
        background_tasks.append(asyncio.create_task(run_metrics_with_shutdown()))
    logger.info("All background tasks started successfully")


@app.on_event("shutdown")
async def _shutdown_pipeline() -> None:
    """Handle FastAPI shutdown"""
    global pipeline, metrics_collector
    logger.info("FastAPI shutdown event triggered")

    if metrics_collector is not None:
        metrics_collector.stop()
    for task in background_tasks:
        if not task.done():
            task.cancel()
    if background_tasks:
        await asyncio.gather(*background_tasks, return_exceptions=True)
    background_tasks.clear()

    if pipeline is not None:
        await pipeline.stop()
        pipeline = None
    metrics_collector = None


async def run_metrics_with_shutdown():
    """Run metrics collector with shutdown awareness"""
    if metrics_collector is None:
        return
    try:
        await metrics_collector.collect_metrics()
    except asyncio.CancelledError:
        metrics_collector.stop()
        raise


# ─────────── Prometheus /metrics Endpoint ───────────
@app.get("/metrics", response_class=PlainTextResponse)
async def _metrics() -> str:
    return generate_latest().decode("utf-8")


# ─────────── Status & data ───────────
@app.get("/api/status")
async def _status() -> dict:
    return _require_pipeline().diagnostics()


@app.get("/api/sensor-data")
async def _sensor_data() -> dict:
    sample = _require_pipeline().latest_sample
    if sample is None:
        raise HTTPException(status_code=404, detail="no sample delivered yet")
    return sample.to_wire()


# ─────────── Sessions ───────────
@app.post("/api/session/start")
async def _session_start() -> dict:
    _require_pipeline().start_session()
    return {"recording": True}


@app.post("/api/session/stop")
async def _session_stop() -> dict:
    session = _require_pipeline().stop_session()
    if session is None:
        raise HTTPException(status_code=409, detail="no session is being recorded")
    return {"recording": False, "samples": len(session), "endedBy": session.ended_by}


@app.post("/api/session/analyze")
async def _session_analyze(request: AnalyzeRequest) -> dict:
    current = _require_pipeline()
    rate = request.sample_rate_hz or current.config.nominal_sample_rate_hz
    try:
        if request.samples is None:
            report = current.analyze_last_session(sample_rate_hz=rate, smoothing=request.smoothing)
        else:
            report = analyze_session(request.samples, request.previous, sample_rate_hz=rate, smoothing=request.smoothing)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    if report is None:
        raise HTTPException(status_code=404, detail="no recorded session to analyze")
    return report.to_wire()


# ─────────── Live websocket ───────────
@app.websocket("/ws")
async def _live(websocket: WebSocket) -> None:
    current = _require_pipeline()
    await websocket.accept()

    async def send(event: StreamEvent) -> None:
        await websocket.send_json(event.to_message())

    handle = current.broadcaster.subscribe(send)
    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except json.JSONDecodeError:
                logger.warning("Ignoring non-JSON client message: %r", text[:64])
                continue
            if isinstance(message, dict) and "wristAngle" in message:
                angle = message["wristAngle"]
                if angle is None or (isinstance(angle, (int, float)) and not isinstance(angle, bool)):
                    await current.set_wrist_angle(angle)
                    continue
            logger.warning("Ignoring unsupported client message: %r", text[:64])
    except WebSocketDisconnect:
        logger.info("Live client disconnected")
    finally:
        current.broadcaster.unsubscribe(handle)


# ─────────── Run Uvicorn ───────────
if __name__ == "__main__":
    cfg = load_stream_config(os.getenv("STREAM_CONFIG"))
    uvicorn.run("main:app", host=cfg.host, port=cfg.port, reload=False)
