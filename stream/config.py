import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from protocol.errors import ConfigError

DEFAULT_CONFIG_PATH = "stream/stream_config.json"
LOG_FILE = "logs/stream_debug.log"

# Environment variables that override file settings
ENV_OVERRIDES = {
    "SERIAL_PORT": "serial_port",
    "UPSTREAM_URI": "upstream_uri",
    "PORT": "port",
}


class LogFileConfiguration(BaseModel):
    log_file_name: str
    log_file_max_size: int = Field(..., gt=0)
    log_file_max_count: int = Field(..., ge=0)


class StreamConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    verbose: bool = True
    serial_port: Optional[str] = None
    baudrate: int = Field(115200, gt=0)
    upstream_uri: Optional[str] = None
    emg_channels: int = Field(2, ge=2)
    max_frame_buffer: int = Field(4096, ge=1)
    buffer_capacity: int = Field(5, ge=1)
    smoothing_alpha: float = Field(0.2, gt=0.0, le=1.0)
    synthetic_rate_hz: float = Field(10.0, gt=0.0)
    synthetic_seed: Optional[int] = None
    subscriber_queue_size: int = Field(100, ge=1)
    nominal_sample_rate_hz: float = Field(10.0, gt=0.0)
    reconnect_max_wait_s: float = Field(30.0, gt=0.0)
    diagnostics_period_s: float = Field(5.0, gt=0.0)
    log_to_console: bool = False
    log_file_configuration: Optional[LogFileConfiguration] = None
    host: str = "0.0.0.0"
    port: int = Field(8080, gt=0, lt=65536)


def _read_config_file(path: Path) -> Dict[str, Any]:
    with open(path) as f:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at top level, got {type(data).__name__}")
    return data


def load_stream_config(path: Optional[Union[str, Path]] = None, env: Optional[Dict[str, str]] = None) -> StreamConfig:
    """Load stream configuration from JSON (or YAML) plus environment overrides.

    A missing default file yields the built-in defaults; a missing explicit
    path, unreadable content or an impossible value raises ConfigError.
    """
    env = os.environ if env is None else env
    config_path = Path(path or DEFAULT_CONFIG_PATH)
    data: Dict[str, Any] = {}
    try:
        data = _read_config_file(config_path)
    except FileNotFoundError:
        if path is not None:
            raise ConfigError(f"config file not found: {config_path}")
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"invalid config file {config_path}: {exc}") from exc

    for var, key in ENV_OVERRIDES.items():
        if env.get(var):
            data[key] = env[var]

    try:
        return StreamConfig(**data)
    except PydanticValidationError as exc:
        raise ConfigError(f"invalid stream configuration: {exc}") from exc


def configure_logging(config: StreamConfig, log_file: Optional[str] = LOG_FILE) -> logging.Logger:
    """Debug log to file; console output on the ``stream_adapter`` logger when verbose."""
    # Only configure basic logging if no handlers are already configured
    if log_file and not logging.getLogger().handlers:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        logging.basicConfig(
            filename=log_file,
            level=logging.DEBUG,
            format="%(asctime)s [%(levelname)s] %(message)s",
        )

    logger = logging.getLogger("stream_adapter")
    if config.verbose:
        logger.setLevel(logging.INFO)
        if not logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setLevel(logging.INFO)
            console_handler.setFormatter(logging.Formatter("%(message)s"))
            logger.addHandler(console_handler)
    else:
        logger.setLevel(logging.WARNING)
    return logger
