"""Reading and writing relations and assertions documents."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .core.determinism import sha256_hex
from .errors import InputContractError

PathLike = Union[str, Path]


def read_text(path: PathLike, label: str = "input") -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise InputContractError(f"Error reading {label}: {exc}") from exc


def parse_document(text: str, suffix: str = ".yaml", label: str = "input") -> Any:
    """Parse ``text`` as JSON when ``suffix`` is ``.json``, otherwise as YAML."""

    try:
        if suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise InputContractError(f"Error reading {label}: {exc}") from exc


def read_document(path: PathLike, label: str = "input") -> Any:
    path = Path(path)
    return parse_document(read_text(path, label), path.suffix, label)


def dump_yaml(document: Any) -> str:
    return yaml.safe_dump(document, sort_keys=False, allow_unicode=True, width=float("inf"))


def dump_json(document: Any) -> str:
    return json.dumps(document, ensure_ascii=False, indent=2) + "\n"


def write_text(path: PathLike, text: str) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def write_document(path: PathLike, document: Any) -> None:
    path = Path(path)
    write_text(path, dump_json(document) if path.suffix.lower() == ".json" else dump_yaml(document))


def source_input_for_file(path: PathLike, artifact_default: str, text: Optional[str] = None) -> Dict[str, str]:
    """Describe an input file for ``sources.inputs``.

    The digest is the SHA-256 of the file's text; ``artifact_default`` names
    the artifact when the file name is unavailable.
    """

    path = Path(path)
    if text is None:
        text = read_text(path)
    return {"artifact": path.name or artifact_default, "digest": sha256_hex(text)}


__all__ = [
    "dump_json",
    "dump_yaml",
    "parse_document",
    "read_document",
    "read_text",
    "source_input_for_file",
    "write_document",
    "write_text",
]
