"""Coverage partition checks."""

from __future__ import annotations

from typing import Any, Mapping

from .determinism import ensure_sorted_strings
from .errors import fail_validation


def _ids(coverage: Mapping[str, Any], key: str) -> list:
    values = coverage.get(key)
    return values if isinstance(values, list) else []


def validate_coverage(document: Mapping[str, Any], mention_by_id: Mapping[str, Any]) -> None:
    """Primary mentions split into covered and uncovered, one unresolved entry each."""

    coverage = document.get("coverage") or {}
    primary = _ids(coverage, "primary_mention_ids")
    covered = _ids(coverage, "covered_primary_mention_ids")
    uncovered = _ids(coverage, "uncovered_primary_mention_ids")
    unresolved = _ids(coverage, "unresolved")

    for key, values in (
        ("primary_mention_ids", primary),
        ("covered_primary_mention_ids", covered),
        ("uncovered_primary_mention_ids", uncovered),
    ):
        ensure_sorted_strings(values, f"coverage.{key} must be sorted for determinism.")

    primary_set, covered_set, uncovered_set = set(primary), set(covered), set(uncovered)
    for key, values in (("covered_primary_mention_ids", covered_set), ("uncovered_primary_mention_ids", uncovered_set)):
        for mention_id in sorted(values - primary_set):
            fail_validation(
                "EA_VALIDATE_COVERAGE_NON_PRIMARY",
                f"Integrity error: coverage.{key} contains non-primary mention {mention_id}.",
            )
    for mention_id in primary:
        if (mention_id in covered_set) == (mention_id in uncovered_set):
            fail_validation(
                "EA_VALIDATE_COVERAGE_PARTITION",
                f"Integrity error: primary mention {mention_id} must appear in exactly one of covered or uncovered.",
            )

    unresolved_ids = []
    for item in unresolved:
        mention_id = item.get("mention_id") if isinstance(item, Mapping) else None
        if not isinstance(mention_id, str) or mention_id not in mention_by_id:
            fail_validation(
                "EA_VALIDATE_COVERAGE_UNRESOLVED_UNKNOWN",
                "Integrity error: coverage.unresolved references unknown mention.",
            )
        unresolved_ids.append(mention_id)
    if len(set(unresolved_ids)) != len(unresolved_ids):
        fail_validation(
            "EA_VALIDATE_COVERAGE_UNRESOLVED_DUPLICATE",
            "Integrity error: coverage.unresolved contains duplicate mention_id entries.",
        )
    if len(unresolved_ids) != len(uncovered_set):
        fail_validation(
            "EA_VALIDATE_COVERAGE_UNRESOLVED_LENGTH",
            "Integrity error: coverage.unresolved length must match uncovered_primary_mention_ids length.",
        )
    for mention_id in unresolved_ids:
        if mention_id not in uncovered_set:
            fail_validation(
                "EA_VALIDATE_COVERAGE_UNRESOLVED_NOT_UNCOVERED",
                f"Integrity error: coverage.unresolved mention {mention_id} must be in uncovered_primary_mention_ids.",
            )


__all__ = ["validate_coverage"]
