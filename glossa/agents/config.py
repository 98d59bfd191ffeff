"""
Agent configuration.

Agents are configured from a TOML or YAML file:

    name = "AGENT_A"
    peers = ["AGENT_B"]
    layer = 1

    [model]
    provider = "openai"
    model = "gpt-4o-mini"
    temperature = 0.8
    instructions = "You are a linguist."

    [network]
    router = "localhost:50051"
"""

import os
import tomllib
import yaml
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from glossa.communication.errors import ConfigurationError, ProtocolError
from glossa.communication.message_types import Layer

logger = logging.getLogger(__name__)

NAME_INSTRUCTION = "Your name in this conversation is: {name}"


@dataclass
class ModelConfig:
    provider: str = "echo"
    model: str = ""
    temperature: float = 0.7
    instructions: str = ""
    # path to a file whose contents replace ``instructions``
    initialize: str = ""
    base_url: str = ""
    api_key: str = ""
    max_tokens: Optional[int] = None
    timeout: int = 120


@dataclass
class NetworkConfig:
    router: str = "localhost:50051"
    database: str = ""


@dataclass
class AgentConfig:
    name: str
    layer: Layer = Layer.PHONETICS
    peers: List[str] = field(default_factory=list)
    model: ModelConfig = field(default_factory=ModelConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    # seconds to wait before sending each model reply
    reply_delay: float = 0.0

    @property
    def router_url(self) -> str:
        router = self.network.router
        if "://" not in router:
            router = f"ws://{router}"
        return router.rstrip("/") + "/chat"

    @property
    def model_label(self) -> str:
        return f"{self.model.provider}:{self.model.model}" if self.model.model else self.model.provider

    def system_instructions(self) -> str:
        """Configured instructions plus the agent's name."""
        base = self.model.instructions
        name_line = NAME_INSTRUCTION.format(name=self.name)
        return f"{base}\n{name_line}" if base else name_line


def _expand_env_vars(value: Any) -> Any:
    """Expand ``${VAR}`` values from the environment."""
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        return os.environ.get(value[2:-1], "")
    return value


def _section(cls, data: Optional[Mapping[str, Any]]):
    data = dict(data or {})
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(f"unknown {cls.__name__} keys: {', '.join(sorted(unknown))}")
    return cls(**{key: _expand_env_vars(value) for key, value in data.items()})


def read_config_file(path: Path) -> Dict[str, Any]:
    """Parse a TOML or YAML file, chosen by suffix."""
    try:
        if path.suffix == ".toml":
            with open(path, "rb") as f:
                return tomllib.load(f)
        if path.suffix in (".yaml", ".yml"):
            with open(path, "r") as f:
                return yaml.safe_load(f) or {}
    except (OSError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"failed to load agent config {path}: {e}") from e
    raise ConfigurationError(f"unsupported agent config format: {path.suffix}")


def agent_config_from_dict(data: Mapping[str, Any]) -> AgentConfig:
    name = data.get("name")
    if not name:
        raise ConfigurationError("agent config needs a name")
    try:
        layer = Layer.from_wire(data.get("layer", Layer.PHONETICS))
    except ProtocolError as e:
        raise ConfigurationError(str(e)) from e

    model = _section(ModelConfig, data.get("model"))
    if model.initialize:
        try:
            model.instructions = Path(model.initialize).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"cannot read instructions {model.initialize}: {e}") from e

    return AgentConfig(
        name=name,
        layer=layer,
        peers=list(data.get("peers") or []),
        model=model,
        network=_section(NetworkConfig, data.get("network")),
        reply_delay=float(data.get("reply_delay", 0.0)),
    )


def load_agent_config(path: Optional[str] = None, overrides: Optional[Mapping[str, Any]] = None) -> AgentConfig:
    """
    Load an agent config file, then apply command-line overrides.

    Overrides use top-level keys (``name``, ``layer``, ``peers``) or
    ``model.<key>`` / ``network.<key>`` for nested ones.
    """
    data: Dict[str, Any] = read_config_file(Path(path)) if path else {}
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        section, _, nested = key.partition(".")
        if nested:
            data.setdefault(section, {})[nested] = value
        else:
            data[key] = value

    config = agent_config_from_dict(data)
    logger.debug(f"Loaded agent config for {config.name} on {config.layer}")
    return config
