"""Conversion between internal slot buckets and output role entries.

Assertions are built over slot buckets (``actor``, ``theme``, ``attr``,
``topic``, ``location`` and named ``other`` buckets) and serialised as sorted
``arguments`` and ``modifiers`` role entries.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from .determinism import canonical_json, normalize_ids
from .mentions import is_subject_role_label

_ARGUMENT_ROLE_PRIORITY = {
    "actor": 0,
    "patient": 1,
    "location": 2,
    "theme": 3,
    "attribute": 4,
    "topic": 5,
}
_MODIFIER_ROLE_PRIORITY = {"recipient": 0, "modifier": 1}

CORE_SLOT_ROLES = (
    ("actor", "actor"),
    ("theme", "theme"),
    ("attr", "attribute"),
    ("topic", "topic"),
    ("location", "location"),
)


def argument_role_priority(role: Any) -> int:
    return _ARGUMENT_ROLE_PRIORITY.get(str(role or ""), 10)


def modifier_role_priority(role: Any) -> int:
    return _MODIFIER_ROLE_PRIORITY.get(str(role or ""), 10)


def _entry_evidence(entry: Mapping[str, Any]) -> Mapping[str, Any]:
    evidence = entry.get("evidence")
    return evidence if isinstance(evidence, Mapping) else {}


def canonicalize_role_entries(
    entries: Optional[Iterable[Mapping[str, Any]]], priority_fn: Callable[[Any], int]
) -> List[Dict[str, Any]]:
    canonical = []
    for entry in entries or []:
        evidence = _entry_evidence(entry)
        canonical.append(
            {
                "role": str(entry.get("role") or ""),
                "mention_ids": normalize_ids(entry.get("mention_ids")),
                "evidence": {
                    "relation_ids": normalize_ids(evidence.get("relation_ids")),
                    "token_ids": normalize_ids(evidence.get("token_ids")),
                },
            }
        )
    canonical = [e for e in canonical if e["role"] and e["mention_ids"]]
    canonical.sort(
        key=lambda e: (
            priority_fn(e["role"]),
            e["role"],
            canonical_json(e["mention_ids"]),
            canonical_json(e["evidence"]),
        )
    )
    return canonical


def collect_entry_token_ids(mention_ids: Iterable[str], mention_by_id: Mapping[str, Any]) -> List[str]:
    token_ids: List[str] = []
    for mention_id in mention_ids or []:
        mention = mention_by_id.get(mention_id)
        if mention is not None:
            token_ids.extend(mention.token_ids)
    return normalize_ids(token_ids)


def slot_to_role_entries(slots: Optional[Mapping[str, Any]], mention_by_id: Mapping[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    """Serialise slot buckets into sorted ``arguments`` and ``modifiers``."""

    source = slots or {}
    arguments = []
    for slot, role in CORE_SLOT_ROLES:
        mention_ids = normalize_ids(source.get(slot))
        if not mention_ids:
            continue
        arguments.append(
            {
                "role": role,
                "mention_ids": mention_ids,
                "evidence": {
                    "relation_ids": [],
                    "token_ids": collect_entry_token_ids(mention_ids, mention_by_id),
                },
            }
        )

    modifiers = []
    for entry in source.get("other") or []:
        role = str(entry.get("role") or "").strip()
        mention_ids = normalize_ids(entry.get("mention_ids"))
        if not role or not mention_ids:
            continue
        modifiers.append(
            {
                "role": role,
                "mention_ids": mention_ids,
                "evidence": {
                    "relation_ids": [],
                    "token_ids": collect_entry_token_ids(mention_ids, mention_by_id),
                },
            }
        )

    return {
        "arguments": canonicalize_role_entries(arguments, argument_role_priority),
        "modifiers": canonicalize_role_entries(modifiers, modifier_role_priority),
    }


def collect_assertion_mention_refs(assertion: Mapping[str, Any]) -> Set[str]:
    refs: Set[str] = set()
    for key in ("arguments", "modifiers"):
        for entry in assertion.get(key) or []:
            refs.update(entry.get("mention_ids") or [])
    return refs


def collect_mention_ids_from_roles(assertion: Mapping[str, Any]) -> List[str]:
    return normalize_ids(collect_assertion_mention_refs(assertion))


def project_roles_to_slots(assertion: Mapping[str, Any]) -> Dict[str, Any]:
    """Inverse of :func:`slot_to_role_entries`, used by later rewriting passes."""

    slots: Dict[str, Any] = {"actor": [], "theme": [], "attr": [], "topic": [], "location": [], "other": []}
    role_slot = {"theme": "theme", "attribute": "attr", "topic": "topic", "location": "location"}
    for entry in assertion.get("arguments") or []:
        role = str(entry.get("role") or "")
        mention_ids = normalize_ids(entry.get("mention_ids"))
        if not mention_ids:
            continue
        if role == "actor" or is_subject_role_label(role):
            slots["actor"] = normalize_ids(slots["actor"] + mention_ids)
        elif role in role_slot:
            slot = role_slot[role]
            slots[slot] = normalize_ids(slots[slot] + mention_ids)
        else:
            slots["other"].append({"role": role, "mention_ids": mention_ids})
    for entry in assertion.get("modifiers") or []:
        role = str(entry.get("role") or "")
        mention_ids = normalize_ids(entry.get("mention_ids"))
        if role and mention_ids:
            slots["other"].append({"role": role, "mention_ids": mention_ids})
    slots["other"] = sorted(
        (o for o in slots["other"] if o["mention_ids"]),
        key=lambda o: (o["role"], canonical_json(o["mention_ids"])),
    )
    return slots


__all__ = [
    "CORE_SLOT_ROLES",
    "argument_role_priority",
    "canonicalize_role_entries",
    "collect_assertion_mention_refs",
    "collect_entry_token_ids",
    "collect_mention_ids_from_roles",
    "modifier_role_priority",
    "project_roles_to_slots",
    "slot_to_role_entries",
]
