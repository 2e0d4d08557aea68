import math

import pytest

from stream.synthetic_generator import EMG_JITTER, GYRO_JITTER, SyntheticGenerator


def test_samples_are_flagged_and_bounded():
    gen = SyntheticGenerator(seed=3)
    for _ in range(200):
        s = gen.sample()
        assert s.is_synthetic
        assert not s.is_session_boundary
        assert abs(s.emg[0] - 500.0) <= EMG_JITTER
        assert abs(s.emg[1] - 600.0) <= EMG_JITTER
        assert all(abs(g) <= GYRO_JITTER for g in s.gyro)
        roll, pitch, yaw = s.orientation
        assert abs(roll) <= 30.0 and abs(pitch) <= 20.0 and abs(yaw) <= 45.0


def test_orientation_follows_elapsed_time():
    gen = SyntheticGenerator(rate_hz=10, seed=1)
    first = gen.sample()
    assert first.orientation == pytest.approx((0.0, 20.0, 0.0))
    for _ in range(9):
        s = gen.sample()
    t = 0.9
    assert s.orientation == pytest.approx((30 * math.sin(0.5 * t), 20 * math.cos(0.3 * t), 45 * math.sin(0.2 * t)))


def test_same_seed_same_sequence():
    clock = lambda: 0.0  # noqa: E731
    a = SyntheticGenerator(seed=7, clock=clock)
    b = SyntheticGenerator(seed=7, clock=clock)
    assert [a.sample() for _ in range(5)] == [b.sample() for _ in range(5)]


def test_extra_channels_get_higher_baselines():
    gen = SyntheticGenerator(emg_channels=4, seed=2)
    s = gen.sample()
    assert len(s.emg) == 4
    assert SyntheticGenerator.baseline(2) == 700.0
    assert SyntheticGenerator.baseline(3) == 800.0
    assert abs(s.emg[3] - 800.0) <= EMG_JITTER


def test_reset_restarts_time():
    gen = SyntheticGenerator(seed=1)
    for _ in range(5):
        gen.sample()
    gen.reset()
    assert gen.t == 0.0
    assert gen.sample().orientation == pytest.approx((0.0, 20.0, 0.0))


def test_invalid_parameters():
    with pytest.raises(ValueError):
        SyntheticGenerator(rate_hz=0)
    with pytest.raises(ValueError):
        SyntheticGenerator(emg_channels=1)
