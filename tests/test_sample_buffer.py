import pytest

from protocol.errors import ConfigError
from protocol.types import Sample
from stream.sample_buffer import SampleBuffer


def make_sample(ts, emg1=500.0, gyro_x=0.0):
    return Sample(timestamp=ts, emg=(emg1, 600.0), gyro=(gyro_x, 0.0, 0.0))


def test_empty_buffer():
    buffer = SampleBuffer()
    assert len(buffer) == 0
    assert buffer.latest() is None
    assert buffer.smoothed_latest() is None


def test_below_capacity_returns_raw_newest():
    buffer = SampleBuffer(capacity=5)
    for i in range(4):
        buffer.push(make_sample(float(i), emg1=100.0 * i))
    assert not buffer.is_full
    assert buffer.smoothed_latest() == make_sample(3.0, emg1=300.0)


def test_constant_stream_smooths_to_itself():
    buffer = SampleBuffer(capacity=5, alpha=0.2)
    for i in range(12):
        buffer.push(make_sample(float(i), emg1=250.0, gyro_x=1.5))
    smoothed = buffer.smoothed_latest()
    assert smoothed.emg == pytest.approx((250.0, 600.0))
    assert smoothed.gyro == pytest.approx((1.5, 0.0, 0.0))
    assert smoothed.timestamp == 11.0


def test_smoothing_uses_the_window_only():
    buffer = SampleBuffer(capacity=3, alpha=0.5)
    for value in (1000.0, 0.0, 0.0, 8.0):
        buffer.push(make_sample(0.0, emg1=value))
    # window is [0, 0, 8]: 0 -> 0 -> 4
    assert buffer.smoothed_latest().emg[0] == pytest.approx(4.0)


def test_capacity_evicts_oldest():
    buffer = SampleBuffer(capacity=3)
    for i in range(5):
        buffer.push(make_sample(float(i)))
    assert len(buffer) == 3
    assert [s.timestamp for s in buffer.snapshot()] == [2.0, 3.0, 4.0]
    assert buffer.latest().timestamp == 4.0


def test_snapshot_is_a_copy():
    buffer = SampleBuffer(capacity=3)
    buffer.push(make_sample(1.0))
    snap = buffer.snapshot()
    buffer.push(make_sample(2.0))
    assert len(snap) == 1
    assert len(buffer.snapshot()) == 2


def test_clear():
    buffer = SampleBuffer(capacity=2)
    buffer.push(make_sample(1.0))
    buffer.clear()
    assert len(buffer) == 0
    assert buffer.smoothed_latest() is None


@pytest.mark.parametrize("kwargs", [{"capacity": 0}, {"alpha": 0.0}, {"alpha": 1.2}])
def test_invalid_configuration(kwargs):
    with pytest.raises(ConfigError):
        SampleBuffer(**kwargs)
