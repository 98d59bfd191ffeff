"""
Loading seed assets and writing JSON snapshots.

Specifications are markdown files named after their layer, the dictionary is
a JSON array of entries and the logography is a directory of ``<word>.svg``
files.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from glossa.communication.errors import ConfigurationError, ExternalServiceError
from glossa.communication.message_types import (
    WORKING_LAYERS,
    Dictionary,
    DictionaryEntry,
    Generation,
    Layer,
    Logography,
    Message,
    Specifications,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

SNAPSHOT_TIME_FORMAT = "%Y%m%d%H%M%S"


def load_specifications(directory: PathLike) -> Specifications:
    """Read ``phonetics.md``, ``grammar.md``, ``dictionary.md`` and ``logography.md``."""
    directory = Path(directory)
    specifications: Specifications = {Layer.SYSTEM: ""}
    for layer in WORKING_LAYERS:
        path = directory / f"{layer}.md"
        try:
            specifications[layer] = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"cannot read specification {path}: {e}") from e
    return specifications


def load_dictionary(path: PathLike) -> Dictionary:
    entries = load_json_list(path)
    dictionary: Dictionary = {}
    for data in entries:
        entry = DictionaryEntry.from_dict(data)
        dictionary[entry.word] = entry
    logger.info(f"Loaded {len(dictionary)} dictionary entries from {path}")
    return dictionary


def load_logography(directory: PathLike) -> Logography:
    directory = Path(directory)
    if not directory.is_dir():
        raise ConfigurationError(f"logography directory {directory} does not exist")

    svgs: Logography = {}
    for path in sorted(directory.iterdir()):
        if path.is_file() and path.suffix == ".svg":
            svgs[path.stem] = path.read_text(encoding="utf-8")
    logger.info(f"Loaded {len(svgs)} logograms from {directory}")
    return svgs


def load_initial_generation(
    specifications_dir: PathLike,
    dictionary_path: Optional[PathLike] = None,
    logography_dir: Optional[PathLike] = None,
) -> Generation:
    """Seed generation from the asset files. Dictionary and logography are optional."""
    generation = Generation(specifications=load_specifications(specifications_dir))
    if dictionary_path:
        generation.dictionary = load_dictionary(dictionary_path)
    if logography_dir:
        generation.logography = load_logography(logography_dir)
    return generation


def load_json_list(path: PathLike) -> List[Any]:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"cannot read {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{path} is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise ConfigurationError(f"{path} must hold a JSON array")
    return data


def load_messages(path: PathLike) -> List[Message]:
    return [Message.from_dict(item) for item in load_json_list(path)]


def load_generations(path: PathLike) -> List[Generation]:
    return [Generation.from_dict(item) for item in load_json_list(path)]


def save_json(data: Any, path: PathLike) -> Path:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    except OSError as e:
        raise ExternalServiceError(f"failed to write {path}: {e}") from e
    return path


def snapshot_path(directory: PathLike, prefix: str, when: Optional[datetime] = None) -> Path:
    """``<directory>/<prefix>_<YYYYMMDDhhmmss>.json``"""
    stamp = (when or datetime.now()).strftime(SNAPSHOT_TIME_FORMAT)
    return Path(directory) / f"{prefix}_{stamp}.json"


def export_snapshots(
    outputs_dir: PathLike,
    messages: List[Message],
    generations: List[Generation],
    when: Optional[datetime] = None,
) -> Dict[str, Path]:
    """Write ``chats/chats_<ts>.json`` and ``generations/generations_<ts>.json``."""
    when = when or datetime.now()
    outputs_dir = Path(outputs_dir)

    chats = save_json(
        [m.to_dict() for m in messages],
        snapshot_path(outputs_dir / "chats", "chats", when),
    )
    logger.info(f"Saved {len(messages)} messages to {chats}")

    gens = save_json(
        [g.to_dict() for g in generations],
        snapshot_path(outputs_dir / "generations", "generations", when),
    )
    logger.info(f"Saved {len(generations)} generations to {gens}")

    return {"chats": chats, "generations": gens}
