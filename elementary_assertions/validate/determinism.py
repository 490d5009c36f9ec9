"""Sort-order checks over assertion arrays."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence

from ..core.determinism import canonical_json, evidence_sort_key
from ..core.roles import argument_role_priority, modifier_role_priority
from .errors import fail_validation


def is_sorted_strings(values: Sequence[Any]) -> bool:
    return all(str(values[i - 1]) <= str(values[i]) for i in range(1, len(values)))


def ensure_sorted_strings(values: Any, message: str, code: str = "EA_VALIDATE_DETERMINISM_SORT") -> None:
    if not is_sorted_strings(values if isinstance(values, list) else []):
        fail_validation(code, f"Integrity error: {message}")


def relation_evidence_sort_key(item: Any):
    return evidence_sort_key(item if isinstance(item, Mapping) else {})


def role_entry_sort_key(entry: Any, priority_fn: Callable[[Any], int]):
    entry = entry if isinstance(entry, Mapping) else {}
    role = str(entry.get("role") or "")
    evidence = entry.get("evidence") if isinstance(entry.get("evidence"), Mapping) else {}
    return (
        priority_fn(role),
        role,
        canonical_json(list(entry.get("mention_ids") or [])),
        canonical_json(
            {
                "relation_ids": list(evidence.get("relation_ids") or []),
                "token_ids": list(evidence.get("token_ids") or []),
            }
        ),
    )


def _ensure_ordered(items: Sequence[Any], key, code: str, message: str) -> None:
    keys = [key(item) for item in items]
    if any(keys[i - 1] > keys[i] for i in range(1, len(keys))):
        fail_validation(code, f"Integrity error: {message}")


def validate_assertion_determinism(assertion: Mapping[str, Any], assertion_id: str) -> None:
    evidence = assertion.get("evidence") if isinstance(assertion.get("evidence"), Mapping) else {}
    ensure_sorted_strings(
        evidence.get("token_ids") or [], f"assertion {assertion_id} evidence.token_ids must be sorted for determinism."
    )
    _ensure_ordered(
        evidence.get("relation_evidence") or [],
        relation_evidence_sort_key,
        "EA_VALIDATE_DETERMINISM_RELATION_EVIDENCE_ORDER",
        f"assertion {assertion_id} evidence.relation_evidence must be sorted for determinism.",
    )

    for field in ("arguments", "modifiers"):
        for entry in assertion.get(field) or []:
            entry_evidence = entry.get("evidence") if isinstance(entry.get("evidence"), Mapping) else {}
            ensure_sorted_strings(
                entry.get("mention_ids") or [],
                f"assertion {assertion_id} {field}[*].mention_ids must be sorted for determinism.",
            )
            ensure_sorted_strings(
                entry_evidence.get("relation_ids") or [],
                f"assertion {assertion_id} {field}[*].evidence.relation_ids must be sorted for determinism.",
            )
            ensure_sorted_strings(
                entry_evidence.get("token_ids") or [],
                f"assertion {assertion_id} {field}[*].evidence.token_ids must be sorted for determinism.",
            )

    _ensure_ordered(
        assertion.get("arguments") or [],
        lambda e: role_entry_sort_key(e, argument_role_priority),
        "EA_VALIDATE_DETERMINISM_ARGUMENT_ORDER",
        f"assertion {assertion_id} arguments must be sorted for determinism.",
    )
    _ensure_ordered(
        assertion.get("modifiers") or [],
        lambda e: role_entry_sort_key(e, modifier_role_priority),
        "EA_VALIDATE_DETERMINISM_MODIFIER_ORDER",
        f"assertion {assertion_id} modifiers must be sorted for determinism.",
    )
    for op in assertion.get("operators") or []:
        _ensure_ordered(
            (op or {}).get("evidence") or [],
            relation_evidence_sort_key,
            "EA_VALIDATE_DETERMINISM_OPERATOR_EVIDENCE_ORDER",
            f"assertion {assertion_id} operators[*].evidence must be sorted for determinism.",
        )


__all__ = [
    "ensure_sorted_strings",
    "is_sorted_strings",
    "relation_evidence_sort_key",
    "role_entry_sort_key",
    "validate_assertion_determinism",
]
