# Copyright 2024 termchat contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Configuration loading for termchat."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import toml

DEFAULT_HOST = "http://127.0.0.1:11434"
DEFAULT_PORT = 11434
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def config_dir() -> Path:
    return Path.home() / ".termchat"


@dataclass
class Config:
    """Application configuration."""
    host: str  # Base URL of the generation backend
    timeout: Optional[float]  # Connect/read timeout in seconds (None = wait forever)
    history_file: Path  # Where entered lines are kept for recall
    word_wrap: bool
    log_level: str  # Logging level: DEBUG, INFO, WARNING, ERROR
    log_file: Optional[Path]  # Path to log file (None = stderr)


def normalize_host(value: str) -> str:
    """Turn an OLLAMA_HOST style value into a base URL.

    Examples:
        "0.0.0.0" -> "http://0.0.0.0:11434"
        "https://example.com" -> "https://example.com:11434"
    """
    value = value.strip().rstrip('/')
    if not value:
        return DEFAULT_HOST
    if '://' not in value:
        value = f"http://{value}"

    parts = urlsplit(value)
    if parts.scheme not in ('http', 'https'):
        raise ValueError(f"Unsupported scheme in host '{value}'")
    if not parts.hostname:
        raise ValueError(f"Missing hostname in host '{value}'")

    netloc = parts.netloc
    try:
        port = parts.port
    except ValueError:
        raise ValueError(f"Invalid port in host '{value}'")
    if port is None:
        netloc = f"{netloc}:{DEFAULT_PORT}"
    return f"{parts.scheme}://{netloc}{parts.path}"


def setup_logging(config: Config) -> None:
    """Configure logging based on config settings.

    Without a log file, only warnings and above reach stderr so that log
    output doesn't interleave with streamed responses.
    """
    numeric_level = getattr(logging, config.log_level, logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    if config.log_file:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(config.log_file)
        handler.setLevel(numeric_level)
    else:
        handler = logging.StreamHandler()
        handler.setLevel(max(numeric_level, logging.WARNING))

    root_logger.setLevel(numeric_level)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logging.debug(f"Logging initialized: level={config.log_level}, file={config.log_file}")


def load_config(path: Optional[Path] = None) -> Config:
    """Load configuration from ~/.termchat/config.toml.

    A missing file is not an error; defaults are used. OLLAMA_HOST in the
    environment takes precedence over the configured host.

    Args:
        path: Alternate config file location

    Returns:
        Config object with loaded or default values

    Raises:
        ValueError: If configuration is invalid
    """
    config_path = path or config_dir() / "config.toml"

    data = {}
    if config_path.exists():
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                data = toml.load(f)
        except toml.TomlDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path}: {e}")

    general_section = data.get('general', {})

    host = os.environ.get('OLLAMA_HOST') or general_section.get('host', DEFAULT_HOST)
    host = normalize_host(str(host))

    timeout = general_section.get('timeout')
    if timeout is not None:
        try:
            timeout = float(timeout)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid timeout: {timeout!r}")
        if timeout <= 0:
            timeout = None

    history_str = general_section.get('history_file')
    history_file = Path(history_str).expanduser() if history_str else config_dir() / "history"

    word_wrap = general_section.get('word_wrap', True)
    if not isinstance(word_wrap, bool):
        raise ValueError(f"word_wrap must be true or false, got {word_wrap!r}")

    log_level = str(general_section.get('log_level', 'INFO')).upper()
    if log_level == 'WARN':
        log_level = 'WARNING'
    if log_level not in LOG_LEVELS:
        raise ValueError(f"Invalid log_level '{log_level}'. Options: {', '.join(LOG_LEVELS)}")

    log_file_str = general_section.get('log_file')
    log_file = Path(log_file_str).expanduser() if log_file_str else None

    return Config(
        host=host,
        timeout=timeout,
        history_file=history_file,
        word_wrap=word_wrap,
        log_level=log_level,
        log_file=log_file,
    )
