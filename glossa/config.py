"""
Server configuration.

Values are resolved in order: dataclass defaults, then config/server.yaml,
then GLOSSA_* environment variables, then command-line overrides.
"""

import os
import yaml
import logging
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional

from glossa.communication.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/server.yaml"
ENV_PREFIX = "GLOSSA_"

_TRUE_STRINGS = {"1", "true", "yes", "on"}


@dataclass
class ServerConfig:
    """Everything the coordination server needs to run."""

    name: str = "SERVER"
    host: str = "0.0.0.0"
    router_port: int = 50051
    web_port: int = 7070

    # Evolution
    max_exchanges: int = 25
    max_generations: int = 1
    target_agents: int = 2
    quorum_poll_interval: float = 1.0
    system_reply_timeout: Optional[float] = None
    command_delay: float = 0.0
    dictionary_updates: bool = False
    logogram_iterations: bool = False
    dictionary_extraction: str = "regex"
    logogram_max_exchanges: int = 25
    logogram_pause: float = 10.0
    export_data: bool = True

    # System agents by role; the summarizer defaults to the first system agent
    summarizer_agent: Optional[str] = None
    dictionary_agent: str = "SYSTEM_AGENT_B"
    word_detector_agent: str = "SYSTEM_AGENT_C"
    logogram_generator: str = "SYSTEM_AGENT_D"
    logogram_adversary: str = "SYSTEM_AGENT_E"

    # Buffers
    recent_capacity: int = 50
    inbound_capacity: int = 256

    # Files
    specifications_dir: str = "./resources/specifications"
    dictionary_path: str = "./resources/specifications/dictionary.json"
    logography_dir: str = "./resources/logography"
    outputs_dir: str = "./outputs"
    test_chats_path: Optional[str] = None
    test_generations_path: Optional[str] = None

    # Diagnostics
    debug: bool = False
    log_to_file: bool = False
    broadcast_test_data: bool = False

    def validate(self) -> "ServerConfig":
        """
        Raises:
            ConfigurationError: On the first invalid value
        """
        if self.max_generations < 1:
            raise ConfigurationError(f"max_generations must be at least 1, got {self.max_generations}")
        if self.max_exchanges < 0:
            raise ConfigurationError(f"max_exchanges cannot be negative, got {self.max_exchanges}")
        if self.target_agents < 1:
            raise ConfigurationError(f"target_agents must be at least 1, got {self.target_agents}")
        for key in ("router_port", "web_port"):
            port = getattr(self, key)
            if not 0 < port < 65536:
                raise ConfigurationError(f"{key} {port} is out of range")
        if self.dictionary_extraction not in ("regex", "agent"):
            raise ConfigurationError(
                f"dictionary_extraction must be 'regex' or 'agent', got {self.dictionary_extraction!r}"
            )
        if self.recent_capacity < 1 or self.inbound_capacity < 1:
            raise ConfigurationError("queue capacities must be positive")
        if self.system_reply_timeout is not None and self.system_reply_timeout <= 0:
            raise ConfigurationError("system_reply_timeout must be positive when set")
        return self

    def with_overrides(self, overrides: Mapping[str, Any]) -> "ServerConfig":
        """Copy with known keys replaced. ``None`` values are ignored."""
        known = {f.name: f for f in fields(self)}
        changes: Dict[str, Any] = {}
        for key, value in overrides.items():
            if value is None:
                continue
            if key not in known:
                raise ConfigurationError(f"unknown server setting {key!r}")
            changes[key] = _coerce(key, value, getattr(self, key))
        return replace(self, **changes)


def _coerce(key: str, value: Any, current: Any) -> Any:
    """Convert string values (from the environment) to the type of the current value."""
    if not isinstance(value, str):
        return value
    try:
        if isinstance(current, bool):
            return value.strip().lower() in _TRUE_STRINGS
        if isinstance(current, int):
            return int(value)
        if isinstance(current, float) or key == "system_reply_timeout":
            return float(value)
    except ValueError as e:
        raise ConfigurationError(f"invalid value {value!r} for {key}") from e
    return value


def load_yaml_settings(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        logger.debug(f"Server config not found: {path}, using defaults")
        return {}

    try:
        with open(path, "r") as f:
            settings = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"failed to load {path}: {e}") from e

    if settings is None:
        return {}
    if not isinstance(settings, dict):
        raise ConfigurationError(f"{path} must contain a mapping")
    return settings


def env_settings(environ: Mapping[str, str]) -> Dict[str, str]:
    """``GLOSSA_MAX_EXCHANGES=5`` becomes ``{"max_exchanges": "5"}`` for known keys."""
    known = {f.name for f in fields(ServerConfig)}
    settings = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name in known:
            settings[name] = value
    return settings


def load_server_config(
    path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ServerConfig:
    """Resolve and validate the server configuration."""
    config = ServerConfig()
    config = config.with_overrides(load_yaml_settings(path or DEFAULT_CONFIG_PATH))
    config = config.with_overrides(env_settings(os.environ if environ is None else environ))
    if overrides:
        config = config.with_overrides(overrides)
    return config.validate()
