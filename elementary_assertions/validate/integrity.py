from __future__ import annotations

from typing import Any, Mapping

from .coverage import validate_coverage
from .determinism import validate_assertion_determinism
from .invariants import (
    build_segment_map,
    validate_assertion_cross_field_alignment,
    validate_mention_segment_alignment,
    validate_token_segment_alignment,
)
from .references import (
    build_reference_maps,
    ensure_unique_ids,
    validate_assertion_references,
    validate_mention_references,
    validate_suppressed_references,
)


def validate_integrity(document: Mapping[str, Any]) -> None:
    """Run every cross-reference, alignment, ordering and coverage check."""

    ensure_unique_ids(document.get("tokens"), "token")
    ensure_unique_ids(document.get("mentions"), "mention")
    ensure_unique_ids(document.get("assertions"), "assertion")

    segment_by_id = build_segment_map(document)
    token_by_id, mention_by_id, assertion_by_id = build_reference_maps(document)
    validate_token_segment_alignment(document, segment_by_id)
    validate_mention_references(document, token_by_id)
    validate_mention_segment_alignment(document, segment_by_id, token_by_id)
    validate_assertion_cross_field_alignment(document, segment_by_id, mention_by_id, token_by_id)

    for assertion in document.get("assertions") or []:
        assertion_id = assertion.get("id") or "<unknown>"
        validate_assertion_references(assertion, assertion_id, mention_by_id, token_by_id)
        validate_assertion_determinism(assertion, assertion_id)

    validate_suppressed_references(document, assertion_by_id)
    validate_coverage(document, mention_by_id)


__all__ = ["validate_integrity"]
