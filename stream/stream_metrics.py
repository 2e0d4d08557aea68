from prometheus_client import Counter, Gauge, Summary

# Samples decoded from the hardware link
stream_total_ingested = Counter(
    "stream_total_ingested", "Total hardware samples successfully decoded"
)

# Samples produced by the synthetic fallback generator
synthetic_samples_total = Counter(
    "synthetic_samples_total", "Total synthetic samples generated"
)

# Frames rejected by the decoder (malformed, invalid or stale fragments)
decode_failures = Counter(
    "decode_failures_total", "Frames rejected by the frame decoder"
)

# Accumulation buffer resets
frame_overflows = Counter(
    "frame_overflows_total", "Decoder accumulation buffer overflows"
)

# Oldest events dropped from a full subscriber queue
subscriber_dropped_events = Counter(
    "subscriber_dropped_events_total", "Events dropped from full subscriber queues"
)

# Subscribers removed after a failed delivery
subscriber_failures = Counter(
    "subscriber_failures_total", "Subscribers removed after a delivery error"
)

active_subscribers = Gauge(
    "active_subscribers", "Currently registered subscribers"
)

# 1 = real hardware data, 0 = synthetic fallback
stream_mode_real = Gauge(
    "stream_mode_real", "Whether the broadcaster is in real mode"
)

upstream_disconnects = Counter(
    "upstream_disconnects_total", "Hardware link losses"
)

# Fill % of the live smoothing window (0 to 100)
sample_buffer_fill = Gauge(
    "sample_buffer_fill_percent", "Current sample buffer fill percentage"
)

# Latency summary between the sample timestamp and its ingestion
stream_latency_ms = Summary(
    "stream_latency_ms", "Latency (ms) between sample timestamp and ingestion"
)
