"""Deterministic ordering, hashing and canonicalisation helpers.

Every id-array in the output document passes through :func:`normalize_ids` and
every evidence array through :func:`dedupe_and_sort_evidence`, so repeated runs
over identical input serialise byte-for-byte identically.
"""

from __future__ import annotations

import copy
import hashlib
import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

UNRESOLVED_REASON_PRECEDENCE = (
    "predicate_invalid",
    "coord_type_missing",
    "operator_scope_open",
    "missing_relation",
    "projection_failed",
)


def canonical_json(value: Any) -> str:
    """Compact JSON text with insertion-ordered keys."""

    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def sha256_hex(text: Any) -> str:
    return hashlib.sha256(str(text or "").encode("utf-8")).hexdigest()


def hash_payload(payload: Any) -> str:
    """SHA-256 over the sorted-key JSON serialisation of ``payload``."""

    payload_json = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload_json.encode("utf-8")).hexdigest()


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def normalize_ids(ids: Optional[Iterable[Any]]) -> List[str]:
    """Return the unique non-empty string ids in ``ids``, sorted."""

    return sorted({i for i in (ids or []) if isinstance(i, str) and i})


def find_selector(annotation: Any, selector_type: str) -> Optional[Dict[str, Any]]:
    if not isinstance(annotation, Mapping):
        return None
    anchor = annotation.get("anchor")
    if not isinstance(anchor, Mapping) or not isinstance(anchor.get("selectors"), list):
        return None
    for selector in anchor["selectors"]:
        if isinstance(selector, Mapping) and selector.get("type") == selector_type:
            return dict(selector)
    return None


def normalize_span_key(span: Mapping[str, Any]) -> str:
    return f"{span['start']}-{span['end']}"


def stable_object_key(obj: Optional[Mapping[str, Any]]) -> str:
    return "|".join(f"{key}:{canonical_json(obj[key])}" for key in sorted(obj or {}))


def evidence_sort_key(item: Mapping[str, Any]) -> Tuple[str, str, str, str]:
    return (
        str(item.get("from_token_id") or ""),
        str(item.get("to_token_id") or ""),
        str(item.get("label") or ""),
        str(item.get("relation_id") or item.get("annotation_id") or ""),
    )


def dedupe_and_sort_evidence(items: Optional[Iterable[Mapping[str, Any]]]) -> List[Dict[str, Any]]:
    by_key: Dict[str, Dict[str, Any]] = {}
    for item in items or []:
        by_key.setdefault(stable_object_key(item), dict(item))
    return sorted(by_key.values(), key=evidence_sort_key)


def _drop_empty(value: Any) -> Any:
    return value if value else None


def canonicalize_operators_for_hash(ops: Optional[Sequence[Mapping[str, Any]]]) -> List[Dict[str, Any]]:
    """Project operators onto the fields that define assertion identity."""

    canonical = []
    for op in ops or []:
        entry: Dict[str, Any] = {"kind": op.get("kind")}
        for key in ("value", "token_id", "group_id"):
            if _drop_empty(op.get(key)) is not None:
                entry[key] = op[key]
        entry["evidence"] = dedupe_and_sort_evidence(op.get("evidence") or [])
        canonical.append(entry)
    canonical.sort(
        key=lambda e: (
            str(e.get("kind") or ""),
            str(e.get("value") or ""),
            str(e.get("token_id") or ""),
            str(e.get("group_id") or ""),
            canonical_json(e.get("evidence") or []),
        )
    )
    return canonical


def canonicalize_slot_object(slots: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    slots = slots or {}
    other = [
        {"role": str(o.get("role") or ""), "mention_ids": normalize_ids(o.get("mention_ids"))}
        for o in slots.get("other") or []
    ]
    other.sort(key=lambda o: (o["role"], canonical_json(o["mention_ids"])))
    return {
        "actor": normalize_ids(slots.get("actor")),
        "theme": normalize_ids(slots.get("theme")),
        "attr": normalize_ids(slots.get("attr")),
        "topic": normalize_ids(slots.get("topic")),
        "location": normalize_ids(slots.get("location")),
        "other": other,
    }


def deep_clone_json(value: Any) -> Any:
    return copy.deepcopy(value)


__all__ = [
    "UNRESOLVED_REASON_PRECEDENCE",
    "canonical_json",
    "canonicalize_operators_for_hash",
    "canonicalize_slot_object",
    "deep_clone_json",
    "dedupe_and_sort_evidence",
    "evidence_sort_key",
    "find_selector",
    "hash_payload",
    "is_number",
    "normalize_ids",
    "normalize_span_key",
    "sha256_hex",
    "stable_object_key",
]
