from protocol.types import ConnectionStatus, Sample, StreamEvent, StreamMode
from stream.session_recorder import SessionRecorder, truncate_at_boundary


def make_sample(ts, boundary=False, synthetic=False):
    return Sample(
        timestamp=ts,
        emg=(500.0, 600.0),
        gyro=(0.1, 0.1, 0.1),
        is_session_boundary=boundary,
        is_synthetic=synthetic,
    )


def status(mode):
    return StreamEvent.status(ConnectionStatus(mode=mode, hardware_connected=mode is StreamMode.REAL))


def test_ignores_samples_until_started():
    recorder = SessionRecorder()
    recorder.record(make_sample(1.0))
    assert recorder.stop() is None
    assert recorder.sessions == []


def test_start_stop():
    recorder = SessionRecorder()
    recorder.start()
    for ts in (1.0, 2.0, 3.0):
        recorder.record(make_sample(ts))
    session = recorder.stop()
    assert len(session) == 3
    assert session.duration == 2.0
    assert session.ended_by == "stop"
    assert not recorder.recording
    assert recorder.last_session is session


def test_boundary_sample_ends_session():
    finished = []
    recorder = SessionRecorder(on_finalized=finished.append)
    recorder.start()
    recorder.record(make_sample(1.0))
    recorder.record(make_sample(2.0, boundary=True))
    recorder.record(make_sample(3.0))
    assert [s.timestamp for s in finished[0].samples] == [1.0, 2.0]
    assert finished[0].ended_by == "boundary"
    assert not recorder.recording


def test_mode_change_ends_session():
    recorder = SessionRecorder()
    recorder.handle_event(status(StreamMode.SYNTHETIC))
    recorder.start()
    recorder.handle_event(StreamEvent.sample(make_sample(1.0, synthetic=True)))
    recorder.handle_event(status(StreamMode.REAL))
    assert recorder.last_session.ended_by == "mode_change"
    assert len(recorder.last_session) == 1


def test_mode_change_before_any_sample_keeps_recording():
    recorder = SessionRecorder()
    recorder.handle_event(status(StreamMode.SYNTHETIC))
    recorder.start()
    recorder.handle_event(status(StreamMode.REAL))
    assert recorder.recording
    recorder.handle_event(StreamEvent.sample(make_sample(1.0)))
    assert len(recorder.stop()) == 1


def test_max_samples():
    recorder = SessionRecorder(max_samples=2)
    recorder.start()
    for ts in (1.0, 2.0, 3.0):
        recorder.record(make_sample(ts))
    assert recorder.last_session.ended_by == "max_samples"
    assert len(recorder.last_session) == 2


def test_previous_session():
    recorder = SessionRecorder()
    for ts in (1.0, 2.0):
        recorder.start()
        recorder.record(make_sample(ts))
        recorder.stop()
    assert recorder.previous_session.samples[0].timestamp == 1.0
    assert recorder.last_session.samples[0].timestamp == 2.0


def test_truncate_at_boundary():
    samples = [make_sample(1.0), make_sample(2.0, boundary=True), make_sample(3.0)]
    assert [s.timestamp for s in truncate_at_boundary(samples)] == [1.0, 2.0]
    assert len(truncate_at_boundary(samples[2:])) == 1
