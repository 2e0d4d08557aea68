import json
import logging
from pathlib import Path

import pytest

from protocol.errors import ConfigError
from stream.config import StreamConfig, configure_logging, load_stream_config

SHIPPED_CONFIG = Path(__file__).resolve().parent.parent / "stream" / "stream_config.json"


def test_shipped_config_matches_defaults():
    config = load_stream_config(SHIPPED_CONFIG, env={})
    assert config.emg_channels == 2
    assert config.buffer_capacity == 5
    assert config.smoothing_alpha == 0.2
    assert config.log_file_configuration.log_file_name == "logs/diagnostics.log"


def test_missing_default_file_gives_defaults(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    config = load_stream_config(env={})
    assert config == StreamConfig()


def test_missing_explicit_file_is_an_error(tmp_path):
    with pytest.raises(ConfigError):
        load_stream_config(tmp_path / "nope.json", env={})


def test_json_file(tmp_path):
    path = tmp_path / "stream.json"
    path.write_text(json.dumps({"emg_channels": 4, "synthetic_rate_hz": 25, "unknown_key": 1}))
    config = load_stream_config(path, env={})
    assert config.emg_channels == 4
    assert config.synthetic_rate_hz == 25.0


def test_yaml_file(tmp_path):
    path = tmp_path / "stream.yaml"
    path.write_text("serial_port: /dev/ttyUSB0\nbaudrate: 9600\nlog_file_configuration:\n"
                    "  log_file_name: logs/x.log\n  log_file_max_size: 1000\n  log_file_max_count: 2\n")
    config = load_stream_config(path, env={})
    assert config.serial_port == "/dev/ttyUSB0"
    assert config.baudrate == 9600
    assert config.log_file_configuration.log_file_max_count == 2


def test_empty_yaml_file(tmp_path):
    path = tmp_path / "stream.yml"
    path.write_text("")
    assert load_stream_config(path, env={}) == StreamConfig()


def test_environment_overrides(tmp_path):
    path = tmp_path / "stream.json"
    path.write_text(json.dumps({"port": 9000}))
    config = load_stream_config(path, env={"PORT": "9100", "UPSTREAM_URI": "ws://board:8765"})
    assert config.port == 9100
    assert config.upstream_uri == "ws://board:8765"
    assert config.serial_port is None


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        json.dumps([1, 2]),
        json.dumps({"emg_channels": 1}),
        json.dumps({"buffer_capacity": 0}),
        json.dumps({"smoothing_alpha": 1.5}),
    ],
)
def test_impossible_configuration(tmp_path, content):
    path = tmp_path / "stream.json"
    path.write_text(content)
    with pytest.raises(ConfigError):
        load_stream_config(path, env={})


def test_configure_logging_console_handler():
    logger = configure_logging(StreamConfig(verbose=True), log_file=None)
    assert logger.name == "stream_adapter"
    assert logger.level == logging.INFO
    assert logger.handlers
    quiet = configure_logging(StreamConfig(verbose=False), log_file=None)
    assert quiet.level == logging.WARNING
