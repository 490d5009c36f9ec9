from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .determinism import find_selector

_NOUN_LIKE_TAG = re.compile(r"^(NN|NNS|NNP|NNPS|PRP|CD)")
_VERB_TAG = re.compile(r"^VB")


@dataclass(frozen=True)
class HeadResolution:
    """Outcome of picking a head token for a mention.

    ``strategy`` names the rule that fired, in precedence order ``explicit``,
    ``chunk_head``, ``dependency_head``, ``pos_fallback``, ``unresolved``.
    ``unresolved`` carries a reason whenever no structural rule decided.
    """

    head: str
    strategy: str
    unresolved: Optional[str] = None


def build_chunk_head_maps(
    heads_seed: Optional[Mapping[str, Any]],
) -> Tuple[Dict[str, Mapping[str, Any]], Dict[str, str]]:
    chunk_by_id: Dict[str, Mapping[str, Any]] = {}
    head_by_chunk_id: Dict[str, str] = {}
    for annotation in (heads_seed or {}).get("annotations") or []:
        if not isinstance(annotation, Mapping) or annotation.get("status") != "accepted":
            continue
        if annotation.get("kind") == "chunk" and isinstance(annotation.get("id"), str):
            chunk_by_id[annotation["id"]] = annotation
        head = annotation.get("head")
        if (
            annotation.get("kind") == "chunk_head"
            and isinstance(annotation.get("chunk_id"), str)
            and isinstance(head, Mapping)
            and isinstance(head.get("id"), str)
        ):
            head_by_chunk_id[annotation["chunk_id"]] = head["id"]
    return chunk_by_id, head_by_chunk_id


def build_dependency_observation_maps(
    relations_seed: Mapping[str, Any], token_by_id: Mapping[str, Any]
) -> Tuple[Dict[str, List[str]], Dict[str, List[str]]]:
    """Index observed (not accepted) dependency edges by dependent and by head."""

    incoming: Dict[str, List[str]] = {}
    outgoing: Dict[str, List[str]] = {}
    for annotation in relations_seed.get("annotations") or []:
        if not isinstance(annotation, Mapping):
            continue
        if annotation.get("kind") != "dependency" or annotation.get("status") != "observation":
            continue
        dep = annotation.get("dep")
        head = annotation.get("head")
        if not isinstance(dep, Mapping) or dep.get("id") not in token_by_id:
            continue
        if annotation.get("is_root") or not isinstance(head, Mapping) or head.get("id") not in token_by_id:
            continue
        incoming.setdefault(dep["id"], []).append(head["id"])
        outgoing.setdefault(head["id"], []).append(dep["id"])
    return incoming, outgoing


def pos_fallback_head(token_ids: Sequence[str], token_by_id: Mapping[str, Any]) -> Optional[str]:
    tokens = sorted((token_by_id[t] for t in token_ids if t in token_by_id), key=lambda t: t["i"])
    nouns = [t for t in tokens if _NOUN_LIKE_TAG.match(t["pos"]["tag"])]
    if nouns:
        return nouns[-1]["id"]
    verbs = [t for t in tokens if _VERB_TAG.match(t["pos"]["tag"])]
    if verbs:
        return verbs[0]["id"]
    return tokens[-1]["id"] if tokens else None


def resolve_mention_head(
    token_ids: Sequence[str],
    explicit_head: Optional[str],
    chunk_by_id: Mapping[str, Mapping[str, Any]],
    head_by_chunk_id: Mapping[str, str],
    incoming_inside: Mapping[str, Sequence[str]],
    token_by_id: Mapping[str, Any],
) -> HeadResolution:
    token_set = set(token_ids)
    if explicit_head and explicit_head in token_set:
        return HeadResolution(explicit_head, "explicit")

    for chunk_id in sorted(chunk_by_id):
        selector = find_selector(chunk_by_id[chunk_id], "TokenSelector")
        ids = selector.get("token_ids") if selector else None
        if not isinstance(ids, list) or len(ids) != len(token_ids):
            continue
        if not all(i in token_set for i in ids):
            continue
        head = head_by_chunk_id.get(chunk_id)
        if head and head in token_set:
            return HeadResolution(head, "chunk_head")

    roots = [
        token_id
        for token_id in token_ids
        if not any(h in token_set for h in incoming_inside.get(token_id, ()))
    ]
    if len(roots) == 1:
        return HeadResolution(roots[0], "dependency_head")

    fallback = pos_fallback_head(token_ids, token_by_id)
    if fallback:
        reason = "no_dependency_head_in_mention" if not roots else "multiple_dependency_head_candidates"
        return HeadResolution(fallback, "pos_fallback", reason)
    return HeadResolution(token_ids[0] if token_ids else "", "unresolved", "empty_mention_tokens")


__all__ = [
    "HeadResolution",
    "build_chunk_head_maps",
    "build_dependency_observation_maps",
    "pos_fallback_head",
    "resolve_mention_head",
]
