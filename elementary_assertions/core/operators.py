"""Operator merging shared by assertion synthesis and suppression."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, MutableMapping

from .determinism import dedupe_and_sort_evidence


def operator_identity_key(op: Mapping[str, Any]) -> str:
    """Operators with equal kind, value, group and role merge into one."""

    return "|".join(str(op.get(key) or "") for key in ("kind", "value", "group_id", "role"))


def merge_operator(op_map: MutableMapping[str, Dict[str, Any]], op: Mapping[str, Any]) -> None:
    """Insert ``op`` into ``op_map`` or fold its evidence into an existing entry.

    Keys whose value is ``None`` are left out so optional fields do not
    serialise as ``null``.
    """

    key = operator_identity_key(op)
    existing = op_map.get(key)
    if existing is None:
        entry = {k: v for k, v in op.items() if v is not None}
        entry["evidence"] = dedupe_and_sort_evidence(op.get("evidence") or [])
        op_map[key] = entry
        return
    existing["evidence"] = dedupe_and_sort_evidence(
        list(existing.get("evidence") or []) + list(op.get("evidence") or [])
    )


def operator_sort_key(op: Mapping[str, Any]):
    return tuple(str(op.get(key) or "") for key in ("kind", "value", "group_id", "token_id", "role"))


def finalize_operators(ops: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Dedupe each operator's evidence and sort the operator list."""

    out = []
    for op in ops:
        entry = dict(op)
        entry["evidence"] = dedupe_and_sort_evidence(op.get("evidence") or [])
        out.append(entry)
    out.sort(key=operator_sort_key)
    return out


__all__ = ["finalize_operators", "merge_operator", "operator_identity_key", "operator_sort_key"]
