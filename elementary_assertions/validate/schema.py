"""Document shape checks."""

from __future__ import annotations

from typing import Any, Mapping

from jsonschema import Draft202012Validator

from ..schema_utils import load_schema
from .errors import fail_validation

_validator = None


def _schema_validator() -> Draft202012Validator:
    global _validator
    if _validator is None:
        schema = load_schema()
        Draft202012Validator.check_schema(schema)
        _validator = Draft202012Validator(schema)
    return _validator


def reject_legacy_slots(document: Any) -> None:
    assertions = document.get("assertions") if isinstance(document, Mapping) else None
    for assertion in assertions if isinstance(assertions, list) else []:
        if isinstance(assertion, Mapping) and "slots" in assertion:
            fail_validation("EA_VALIDATE_LEGACY_SLOTS", "Invalid input: legacy assertions[*].slots is not supported.")


def validate_schema_shape(document: Any) -> None:
    if not isinstance(document, Mapping):
        fail_validation("EA_VALIDATE_DOC_OBJECT", "Document must be an object.")
    if document.get("stage") != "elementary_assertions":
        fail_validation("EA_VALIDATE_STAGE", "Invalid stage: expected elementary_assertions.")
    index_basis = document.get("index_basis")
    if (
        not isinstance(index_basis, Mapping)
        or index_basis.get("text_field") != "canonical_text"
        or index_basis.get("span_unit") != "utf16_code_units"
    ):
        fail_validation("EA_VALIDATE_INDEX_BASIS", "Invalid index_basis. Expected canonical_text/utf16_code_units.")
    if not isinstance(document.get("tokens"), list):
        fail_validation("EA_VALIDATE_TOKENS_ARRAY", "Invalid document: tokens[] required.")
    if not isinstance(document.get("mentions"), list):
        fail_validation("EA_VALIDATE_MENTIONS_ARRAY", "Invalid document: mentions[] required.")
    if not isinstance(document.get("assertions"), list):
        fail_validation("EA_VALIDATE_ASSERTIONS_ARRAY", "Invalid document: assertions[] required.")
    if not isinstance(document.get("coverage"), Mapping):
        fail_validation("EA_VALIDATE_COVERAGE_OBJECT", "Invalid document: coverage required.")


def validate_json_schema(document: Mapping[str, Any]) -> None:
    """Check ``document`` against the bundled JSON schema.

    Only the first error in path order is reported so that the message is
    stable across runs.
    """

    errors = sorted(
        _schema_validator().iter_errors(document),
        key=lambda e: ([str(p) for p in e.absolute_path], e.message),
    )
    if errors:
        first = errors[0]
        location = "/".join(str(p) for p in first.absolute_path) or "<root>"
        fail_validation("EA_VALIDATE_SCHEMA", f"Schema violation at {location}: {first.message}")


__all__ = ["reject_legacy_slots", "validate_json_schema", "validate_schema_shape"]
