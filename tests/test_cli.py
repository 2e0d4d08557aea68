import json

import pytest

import adapter_cli
from adapter_cli import decode_capture, main


def write_capture(path, mags, boundary_at=None):
    lines = []
    for i, m in enumerate(mags):
        record = {"timestamp": i * 0.1, "emg1": 500, "emg2": 600, "gyrox": m, "gyroy": 0, "gyroz": 0}
        if i == boundary_at:
            record["sessionEnd"] = True
        lines.append(json.dumps(record))
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = tmp_path / "stream.json"
    config.write_text(json.dumps({"verbose": False, "log_file_configuration": None}))
    return tmp_path, str(config)


@pytest.mark.asyncio
async def test_decode_capture_in_small_chunks(tmp_path):
    capture = write_capture(tmp_path / "c.txt", [1, 2, 3, 4])
    samples, decoder = await decode_capture(str(capture), chunk_size=5)
    assert [s.gyro[0] for s in samples] == [1.0, 2.0, 3.0, 4.0]
    assert decoder.decode_failures == 0


def test_replay_prints_table(workdir, capsys):
    tmp_path, config = workdir
    capture = write_capture(tmp_path / "c.txt", [1, 2, 3])
    main(["--config", config, "replay", str(capture), "--chunk-size", "11"])
    out = capsys.readouterr().out
    assert "3 samples decoded" in out
    assert "decode failures=0" in out


def test_analyze_json_report_stops_at_boundary(workdir, capsys):
    tmp_path, config = workdir
    capture = write_capture(tmp_path / "c.txt", [1, 2, 1, 2, 1, 9, 9], boundary_at=4)
    main(["--config", config, "analyze", str(capture), "--json"])
    report = json.loads(capsys.readouterr().out)
    assert report["sampleCount"] == 5
    assert report["tremor"]["peakCount"] == 2


def test_analyze_with_previous_session(workdir, capsys):
    tmp_path, config = workdir
    current = write_capture(tmp_path / "now.txt", [1.0, 1.1, 1.0, 1.1])
    previous = write_capture(tmp_path / "before.txt", [0, 4, 0, 4])
    main(["--config", config, "analyze", str(current), "--previous", str(previous)])
    out = capsys.readouterr().out
    assert "Session report" in out
    assert "Tremor intensity has decreased" in out


def test_analyze_too_short(workdir, capsys):
    tmp_path, config = workdir
    capture = write_capture(tmp_path / "c.txt", [1])
    main(["--config", config, "analyze", str(capture)])
    assert "too short" in capsys.readouterr().out


def test_serve_uses_config(workdir, monkeypatch):
    _, config = workdir
    calls = {}
    monkeypatch.setattr(adapter_cli.uvicorn, "run", lambda app, **kw: calls.update(app=app, **kw))
    monkeypatch.delenv("PORT", raising=False)
    monkeypatch.setenv("STREAM_CONFIG", config)
    main(["--config", config, "serve", "--port", "9001"])
    assert calls["app"] == "main:app"
    assert calls["port"] == 9001
    assert calls["host"] == "0.0.0.0"
