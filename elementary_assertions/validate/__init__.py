"""Validation of elementary assertions documents.

Every failure raises :class:`ValidationError` carrying a stable
``EA_VALIDATE_*`` code.
"""

from __future__ import annotations

from typing import Any, Dict

from .diagnostics_strict import validate_diagnostics_strict
from .errors import ValidationError, fail_validation
from .integrity import validate_integrity
from .schema import reject_legacy_slots, validate_json_schema, validate_schema_shape


def validate_elementary_assertions(document: Any, strict: bool = False) -> Dict[str, bool]:
    reject_legacy_slots(document)
    validate_schema_shape(document)
    validate_json_schema(document)
    validate_integrity(document)
    if strict:
        validate_diagnostics_strict(document)
    return {"ok": True}


__all__ = [
    "ValidationError",
    "fail_validation",
    "validate_diagnostics_strict",
    "validate_elementary_assertions",
    "validate_integrity",
]
