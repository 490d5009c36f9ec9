"""Cross-reference checks between tokens, mentions and assertions."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Tuple

from .errors import fail_validation


def _id_map(items: Any) -> Dict[str, Mapping[str, Any]]:
    return {
        item["id"]: item
        for item in (items if isinstance(items, list) else [])
        if isinstance(item, Mapping) and isinstance(item.get("id"), str) and item["id"]
    }


def ensure_unique_ids(items: Iterable[Any], label: str) -> None:
    ids = [
        item["id"]
        for item in items or []
        if isinstance(item, Mapping) and isinstance(item.get("id"), str) and item["id"]
    ]
    if len(set(ids)) != len(ids):
        fail_validation("EA_VALIDATE_DUPLICATE_IDS", f"Integrity error: duplicate {label} ids detected.")


def build_reference_maps(document: Mapping[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any], Dict[str, Any]]:
    return _id_map(document.get("tokens")), _id_map(document.get("mentions")), _id_map(document.get("assertions"))


def validate_mention_references(document: Mapping[str, Any], token_by_id: Mapping[str, Any]) -> None:
    for mention in document.get("mentions") or []:
        mention_id = mention.get("id")
        token_ids = mention.get("token_ids") if isinstance(mention.get("token_ids"), list) else []
        if len(set(token_ids)) != len(token_ids):
            fail_validation(
                "EA_VALIDATE_DUPLICATE_MENTION_TOKEN_IDS", f"Integrity error: mention {mention_id} has duplicate token_ids."
            )
        for token_id in token_ids:
            if token_id not in token_by_id:
                fail_validation(
                    "EA_VALIDATE_UNKNOWN_TOKEN_REFERENCE",
                    f"Integrity error: mention {mention_id} references unknown token {token_id}.",
                )
        head_token_id = mention.get("head_token_id")
        if not isinstance(head_token_id, str) or head_token_id not in token_by_id:
            fail_validation(
                "EA_VALIDATE_INVALID_HEAD_TOKEN", f"Integrity error: mention {mention_id} has invalid head_token_id."
            )
        if head_token_id not in token_ids:
            fail_validation(
                "EA_VALIDATE_HEAD_TOKEN_NOT_IN_MENTION",
                f"Integrity error: mention {mention_id} head_token_id must be included in token_ids.",
            )


def validate_assertion_references(
    assertion: Mapping[str, Any],
    assertion_id: str,
    mention_by_id: Mapping[str, Any],
    token_by_id: Mapping[str, Any],
) -> None:
    predicate = assertion.get("predicate") if isinstance(assertion.get("predicate"), Mapping) else {}
    if predicate.get("mention_id") not in mention_by_id:
        fail_validation(
            "EA_VALIDATE_INVALID_PREDICATE_MENTION", f"Integrity error: assertion {assertion_id} has invalid predicate mention."
        )
    if not all(isinstance(assertion.get(k), list) for k in ("arguments", "modifiers", "operators")):
        fail_validation(
            "EA_VALIDATE_ROLE_ARRAYS_REQUIRED",
            f"Integrity error: assertion {assertion_id} must contain arguments/modifiers/operators arrays.",
        )

    evidence = assertion.get("evidence") if isinstance(assertion.get("evidence"), Mapping) else {}
    for token_id in evidence.get("token_ids") or []:
        if token_id not in token_by_id:
            fail_validation(
                "EA_VALIDATE_UNKNOWN_ASSERTION_EVIDENCE_TOKEN",
                f"Integrity error: assertion {assertion_id} evidence.token_ids references unknown token {token_id}.",
            )
    for item in evidence.get("relation_evidence") or []:
        if item.get("from_token_id") and item["from_token_id"] not in token_by_id:
            fail_validation(
                "EA_VALIDATE_UNKNOWN_RELATION_FROM_TOKEN",
                f"Integrity error: assertion {assertion_id} relation_evidence references unknown from_token_id.",
            )
        if item.get("to_token_id") and item["to_token_id"] not in token_by_id:
            fail_validation(
                "EA_VALIDATE_UNKNOWN_RELATION_TO_TOKEN",
                f"Integrity error: assertion {assertion_id} relation_evidence references unknown to_token_id.",
            )

    for entry in list(assertion["arguments"]) + list(assertion["modifiers"]):
        for mention_id in entry.get("mention_ids") or []:
            if mention_id not in mention_by_id:
                fail_validation(
                    "EA_VALIDATE_UNKNOWN_ASSERTION_MENTION",
                    f"Integrity error: assertion {assertion_id} references unknown mention {mention_id}.",
                )


def validate_suppressed_references(document: Mapping[str, Any], assertion_by_id: Mapping[str, Any]) -> None:
    suppressed = (document.get("diagnostics") or {}).get("suppressed_assertions")
    suppressed = suppressed if isinstance(suppressed, list) else []
    ensure_unique_ids(suppressed, "suppressed assertion")
    previous = None
    for item in suppressed:
        current = str(item.get("id") or "")
        if previous is not None and previous > current:
            fail_validation(
                "EA_VALIDATE_SUPPRESSED_SORT_ORDER",
                "Integrity error: diagnostics.suppressed_assertions must be sorted by id.",
            )
        previous = current
        target_id = ((item.get("diagnostics") or {}).get("suppressed_by") or {}).get("target_assertion_id")
        if isinstance(target_id, str) and target_id and target_id not in assertion_by_id:
            fail_validation(
                "EA_VALIDATE_UNKNOWN_SUPPRESSED_TARGET",
                f"Integrity error: suppressed assertion {current} references unknown target_assertion_id.",
            )


__all__ = [
    "build_reference_maps",
    "ensure_unique_ids",
    "validate_assertion_references",
    "validate_mention_references",
    "validate_suppressed_references",
]
