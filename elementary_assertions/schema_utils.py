"""Access to the JSON schemas bundled with the package."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"
ELEMENTARY_ASSERTIONS_SCHEMA = "elementary_assertions.schema.json"


def schema_path(name: str = ELEMENTARY_ASSERTIONS_SCHEMA) -> Path:
    return SCHEMA_DIR / name


@lru_cache(maxsize=None)
def load_schema(name: str = ELEMENTARY_ASSERTIONS_SCHEMA) -> Dict[str, Any]:
    with schema_path(name).open("r", encoding="utf-8") as handle:
        return json.load(handle)


__all__ = ["ELEMENTARY_ASSERTIONS_SCHEMA", "SCHEMA_DIR", "load_schema", "schema_path"]
