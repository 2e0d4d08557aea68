import json
import random

import pytest

from protocol.errors import DecodeError, FrameOverflow, ValidationError
from stream.frame_decoder import FrameDecoder


def _json_record(ts, emg1, emg2, **extra):
    record = {"timestamp": ts, "emg1": emg1, "emg2": emg2, "gyrox": 0.1, "gyroy": 0.2, "gyroz": 0.3}
    record.update(extra)
    return json.dumps(record) + "\n"


STREAM = (
    _json_record(1.0, 500, 600)
    + "EMG1:510 EMG2:610 GyroX:0.2 GyroY:0.1 GyroZ:0.3 Timestamp:2.0 Voltage1:2.4\n"
    + _json_record(3.0, 520, 620, roll=10, pitch=5, yaw=-3, wristAngle=42)
    + "EMG1:530 EMG2:630 GyroX:0.4 GyroY:0.4 GyroZ:0.4 Timestamp:4.0\n"
    + "Timestamp:4.5 Voltage1:2.5 WristAngle:30 EMG1:535 EMG2:635 GyroX:0.1 GyroY:0.1 GyroZ:0.1\n"
    + _json_record(5.0, 540, 640, sessionEnd=True)
)


def decode_chunks(chunks):
    decoder = FrameDecoder()
    out = []
    for chunk in chunks:
        sample = decoder.feed(chunk)
        if sample is not None:
            out.append(sample)
        out.extend(decoder.drain())
    return out, decoder


def split_at(text, cuts):
    points = [0] + sorted(cuts) + [len(text)]
    return [text[a:b] for a, b in zip(points, points[1:]) if b > a]


class TestFrameDecoder:
    def test_two_chunk_record(self):
        decoder = FrameDecoder()
        assert decoder.feed('{"emg1":500,"em') is None
        sample = decoder.feed('g2":600,"gyrox":0.1,"gyroy":0.1,"gyroz":0.1}\n')
        assert sample is not None
        assert sample.emg == (500.0, 600.0)
        assert sample.gyro == (0.1, 0.1, 0.1)
        assert decoder.decode_failures == 0
        assert decoder.drain() == []

    def test_unsplit_stream(self):
        samples, decoder = decode_chunks([STREAM])
        assert [s.timestamp for s in samples] == [1.0, 2.0, 3.0, 4.0, 4.5, 5.0]
        assert samples[1].voltage == (2.4,)
        assert samples[2].orientation == (10.0, 5.0, -3.0)
        assert samples[2].wrist_angle == 42.0
        assert samples[4].voltage == (2.5,)
        assert samples[4].wrist_angle == 30.0
        assert samples[5].is_session_boundary
        assert decoder.decode_failures == 0

    def test_every_two_way_split_matches_unsplit(self):
        expected, _ = decode_chunks([STREAM])
        for k in range(1, len(STREAM)):
            samples, decoder = decode_chunks(split_at(STREAM, [k]))
            assert samples == expected, f"split at {k}"
            assert decoder.decode_failures == 0

    @pytest.mark.parametrize("seed", range(20))
    def test_random_multi_way_split_matches_unsplit(self, seed):
        expected, _ = decode_chunks([STREAM])
        rng = random.Random(seed)
        cuts = rng.sample(range(1, len(STREAM)), rng.randint(2, 30))
        samples, _ = decode_chunks(split_at(STREAM, cuts))
        assert samples == expected

    def test_character_by_character(self):
        expected, _ = decode_chunks([STREAM])
        samples, _ = decode_chunks(list(STREAM))
        assert samples == expected

    def test_one_sample_per_feed(self):
        decoder = FrameDecoder()
        first = decoder.feed(_json_record(1.0, 1, 2) + _json_record(2.0, 3, 4))
        assert first.timestamp == 1.0
        rest = decoder.drain()
        assert [s.timestamp for s in rest] == [2.0]

    def test_malformed_chunk_does_not_break_later_records(self):
        errors = []
        decoder = FrameDecoder(on_error=errors.append)
        assert decoder.feed("garbage!!\n") is None
        assert decoder.feed("[1, 2, 3]\n") is None
        assert decoder.feed('{"emg1": 1}\n') is None
        sample = decoder.feed(_json_record(1.0, 500, 600))
        assert sample is not None and sample.emg == (500.0, 600.0)
        assert decoder.decode_failures == 3
        assert all(isinstance(e, DecodeError) for e in errors)
        assert isinstance(errors[1], ValidationError)
        assert isinstance(errors[2], ValidationError)

    def test_non_numeric_channel_rejected(self):
        result = FrameDecoder().decode_record('{"emg1":"a","emg2":1,"gyrox":0,"gyroy":0,"gyroz":0}')
        assert not result.ok
        assert isinstance(result.error, ValidationError)

    def test_overflow_resets_buffer(self):
        errors = []
        decoder = FrameDecoder(max_buffer_size=32, on_error=errors.append)
        assert decoder.feed("x" * 40) is None
        assert decoder.overflows == 1
        assert decoder.decode_failures == 0
        assert decoder.buffered == ""
        assert isinstance(errors[-1], FrameOverflow)
        assert decoder.feed(_json_record(1.0, 500, 600)) is not None

    def test_stale_fragment_discarded_for_complete_chunk(self):
        decoder = FrameDecoder()
        assert decoder.feed('{"emg1": 7') is None
        sample = decoder.feed(_json_record(1.0, 500, 600))
        assert sample.emg == (500.0, 600.0)
        assert decoder.decode_failures == 1
        assert decoder.buffered == ""

    def test_text_line_tail_with_required_fields_joins_buffered_head(self):
        line = "Voltage1:2.4 WristAngle:30 EMG1:500 EMG2:600 GyroX:0.1 GyroY:0.1 GyroZ:0.1 Timestamp:7\n"
        cut = line.index(" EMG1")
        decoder = FrameDecoder(clock=lambda: 99.0)
        assert decoder.feed(line[:cut]) is None
        sample = decoder.feed(line[cut:])
        assert sample.voltage == (2.4,)
        assert sample.wrist_angle == 30.0
        assert sample.timestamp == 7.0
        assert decoder.decode_failures == 0

    def test_legacy_line_needs_newline(self):
        decoder = FrameDecoder()
        assert decoder.feed("EMG1:500 EMG2:600 GyroX:0.1 GyroY:0.1 GyroZ:0.1") is None
        sample = decoder.feed("\n")
        assert sample is not None
        assert sample.emg == (500.0, 600.0)

    def test_defaults_for_missing_optional_fields(self):
        decoder = FrameDecoder(emg_channels=4, clock=lambda: 123.0)
        sample = decoder.feed('{"EMG1":1,"emg2":2,"Gyro_X":0,"gyroY":0,"gyro z":0,"roll":5}\n')
        assert sample.emg == (1.0, 2.0, 0.0, 0.0)
        assert sample.timestamp == 123.0
        assert sample.orientation is None
        assert sample.wrist_angle is None
        assert sample.voltage == ()
        assert not sample.is_synthetic
        assert not sample.is_session_boundary

    def test_epoch_millisecond_timestamps(self):
        sample = FrameDecoder().feed(_json_record(1_700_000_000_000, 1, 2))
        assert sample.timestamp == pytest.approx(1_700_000_000.0)

    def test_timestamps_never_decrease(self):
        samples, _ = decode_chunks([_json_record(5.0, 1, 2), _json_record(3.0, 1, 2)])
        assert [s.timestamp for s in samples] == [5.0, 5.0]

    def test_invalid_construction(self):
        with pytest.raises(ValueError):
            FrameDecoder(emg_channels=1)
        with pytest.raises(ValueError):
            FrameDecoder(max_buffer_size=0)
