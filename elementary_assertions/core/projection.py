"""Project token-level relations onto the mention partition."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .determinism import sha256_hex

logger = logging.getLogger(__name__)

_MENTION_KIND_RANK = {"token": 0, "mwe": 1, "chunk": 2}


@dataclass
class ProjectionBuild:
    projected: List[Dict[str, Any]] = field(default_factory=list)
    unresolved: List[Dict[str, Any]] = field(default_factory=list)
    dropped: List[Dict[str, Any]] = field(default_factory=list)
    all: List[Dict[str, Any]] = field(default_factory=list)


def mention_kind_rank(kind: str) -> int:
    return _MENTION_KIND_RANK.get(kind, 9)


def choose_mention_id(
    candidates: Iterable[str],
    mention_by_id: Mapping[str, Any],
    prefer_primary: bool,
    exclude_id: Optional[str] = None,
) -> Optional[str]:
    """Pick one of ``candidates``; primaries first unless ``prefer_primary`` is false."""

    def sort_key(mention_id):
        mention = mention_by_id[mention_id]
        primary_rank = 0 if mention.is_primary else 1
        if not prefer_primary:
            primary_rank = -primary_rank
        return (
            primary_rank,
            mention_kind_rank(mention.kind),
            mention.segment_id,
            mention.span.start,
            mention.span.end,
            mention_id,
        )

    ids = [
        i for i in candidates or [] if isinstance(i, str) and i in mention_by_id and i != exclude_id
    ]
    return min(ids, key=sort_key) if ids else None


def _audit_sort_key(entry: Mapping[str, Any]):
    return (
        entry["segment_id"],
        entry["head_token_id"],
        entry["dep_token_id"],
        entry["label"],
        entry.get("relation_id") or "",
    )


def build_projected_relations(
    relations: Sequence[Mapping[str, Any]],
    token_to_mention: Mapping[str, str],
    token_to_all_mentions: Mapping[str, Sequence[str]],
    mention_by_id: Mapping[str, Any],
    token_by_id: Mapping[str, Mapping[str, Any]],
) -> ProjectionBuild:
    """Map every relation to a (head mention, dep mention) edge.

    Relations whose endpoints collapse to one mention, or cannot be resolved at
    all, land in ``dropped``. Every relation is echoed into ``all`` with its
    resolution metadata for auditing.
    """

    build = ProjectionBuild()
    for relation in relations:
        head_candidates = list(token_to_all_mentions.get(relation["head_token_id"], ()))
        dep_candidates = list(token_to_all_mentions.get(relation["dep_token_id"], ()))
        head_token = token_by_id[relation["head_token_id"]]
        dep_token = token_by_id.get(relation["dep_token_id"])
        segment_id = head_token["segment_id"]

        head_mention_id = token_to_mention.get(relation["head_token_id"])
        dep_mention_id = token_to_mention.get(relation["dep_token_id"])
        if not head_mention_id:
            head_mention_id = choose_mention_id(head_candidates, mention_by_id, True)
        if not dep_mention_id:
            dep_mention_id = choose_mention_id(dep_candidates, mention_by_id, True)
        if head_mention_id and dep_mention_id and head_mention_id == dep_mention_id:
            dep_alt = choose_mention_id(dep_candidates, mention_by_id, False, head_mention_id)
            if dep_alt:
                dep_mention_id = dep_alt
            else:
                head_alt = choose_mention_id(head_candidates, mention_by_id, False, dep_mention_id)
                if head_alt:
                    head_mention_id = head_alt

        build.all.append(
            {
                "relation_id": relation["id"],
                "label": relation["label"],
                "segment_id": segment_id,
                "head_token_id": relation["head_token_id"],
                "dep_token_id": relation["dep_token_id"],
                "head_primary_mention_id": head_mention_id or None,
                "dep_primary_mention_id": dep_mention_id or None,
                "head_mention_ids": head_candidates,
                "dep_mention_ids": dep_candidates,
            }
        )
        if dep_token is None or dep_token["segment_id"] != segment_id:
            continue

        dropped_entry = {
            "relation_id": relation["id"],
            "label": relation["label"],
            "segment_id": segment_id,
            "head_token_id": relation["head_token_id"],
            "dep_token_id": relation["dep_token_id"],
            "head_primary_mention_id": head_mention_id or None,
            "dep_primary_mention_id": dep_mention_id or None,
        }
        if not head_mention_id or not dep_mention_id:
            if dep_mention_id:
                build.unresolved.append(
                    {
                        "kind": "unresolved_attachment",
                        "segment_id": segment_id,
                        "mention_id": dep_mention_id,
                        "reason": "missing_primary_projection",
                        "relation": dict(relation),
                    }
                )
            dropped_entry["reason"] = "missing_primary_projection"
            build.dropped.append(dropped_entry)
            continue
        if head_mention_id == dep_mention_id:
            dropped_entry["reason"] = "self_loop_after_primary_projection"
            build.dropped.append(dropped_entry)
            continue

        head_mention = mention_by_id.get(head_mention_id)
        dep_mention = mention_by_id.get(dep_mention_id)
        if head_mention is None or dep_mention is None:
            continue
        if head_mention.segment_id != dep_mention.segment_id:
            continue
        build.projected.append(
            {
                "relation_id": relation["id"],
                "label": relation["label"],
                "head_token_id": relation["head_token_id"],
                "dep_token_id": relation["dep_token_id"],
                "head_mention_id": head_mention_id,
                "dep_mention_id": dep_mention_id,
                "segment_id": head_mention.segment_id,
                "evidence": relation.get("evidence") or {},
            }
        )

    build.projected.sort(
        key=lambda p: (
            p["segment_id"],
            token_by_id[p["head_token_id"]]["span"]["start"],
            token_by_id[p["dep_token_id"]]["span"]["start"],
            p["label"],
            p["relation_id"],
        )
    )
    build.dropped.sort(key=_audit_sort_key)
    build.all.sort(key=_audit_sort_key)
    logger.debug(
        "Projected %d relations, dropped %d", len(build.projected), len(build.dropped)
    )
    return build


def build_coordination_groups(projected: Iterable[Mapping[str, Any]]) -> Dict[str, str]:
    """Map each mention on a ``coordination`` edge to its connected-component id."""

    graph: Dict[str, set] = {}
    for edge in projected:
        if edge.get("label") != "coordination":
            continue
        graph.setdefault(edge["head_mention_id"], set()).add(edge["dep_mention_id"])
        graph.setdefault(edge["dep_mention_id"], set()).add(edge["head_mention_id"])

    groups: Dict[str, str] = {}
    seen = set()
    for node in graph:
        if node in seen:
            continue
        component = []
        queue = deque([node])
        seen.add(node)
        while queue:
            current = queue.popleft()
            component.append(current)
            for neighbour in graph.get(current, ()):
                if neighbour not in seen:
                    seen.add(neighbour)
                    queue.append(neighbour)
        component.sort()
        group_id = f"cg:{sha256_hex('|'.join(component))[:12]}"
        for member in component:
            groups[member] = group_id
    return groups


__all__ = [
    "ProjectionBuild",
    "build_coordination_groups",
    "build_projected_relations",
    "choose_mention_id",
    "mention_kind_rank",
]
