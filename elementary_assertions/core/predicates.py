"""Predicate token classification and clause geometry."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .determinism import normalize_ids

LEXICAL_VERB_TAGS = frozenset({"VB", "VBD", "VBG", "VBN", "VBP", "VBZ"})
COPULA_SURFACES = frozenset({"is", "are", "was", "were", "be", "been", "being"})
LOW_QUALITY_SURFACES = frozenset({"is", "are", "am", "be", "been", "being", "given"})
CLAUSE_BOUNDARY_SURFACES = frozenset({".", ",", ";", ":", "!", "?"})
CLAUSE_LINK_LABELS = frozenset({"complement_clause", "xcomp"})
PREDICATE_CLASSES = ("lexical_verb", "copula", "auxiliary", "preposition", "nominal_head")

_NOUN_LIKE_TAG = re.compile(r"^(NN|NNS|NNP|NNPS|PRP|PRP\$|CD)$")


def lower(value: Any) -> str:
    return str(value or "").lower()


def pos_tag(token: Optional[Mapping[str, Any]]) -> str:
    pos = (token or {}).get("pos") or {}
    return str(pos.get("tag") or "")


def is_verb_pos_tag(tag: Any) -> bool:
    return isinstance(tag, str) and tag.startswith("VB")


def is_lexical_verb_pos(tag: Any) -> bool:
    return tag in LEXICAL_VERB_TAGS


def is_noun_like_pos_tag(tag: Any) -> bool:
    return isinstance(tag, str) and bool(_NOUN_LIKE_TAG.match(tag))


def is_copula_surface(surface: Any) -> bool:
    return lower(surface) in COPULA_SURFACES


def classify_predicate_class(token: Optional[Mapping[str, Any]]) -> str:
    surface = lower((token or {}).get("surface"))
    tag = pos_tag(token).upper()
    if surface in COPULA_SURFACES:
        return "copula"
    if tag == "MD" or surface == "given":
        return "auxiliary"
    if tag in ("IN", "TO"):
        return "preposition"
    if is_lexical_verb_pos(tag):
        return "lexical_verb"
    return "nominal_head"


def is_low_quality_predicate_token(token: Optional[Mapping[str, Any]]) -> bool:
    if pos_tag(token) == "MD":
        return True
    return lower((token or {}).get("surface")) in LOW_QUALITY_SURFACES


def predicate_quality(token: Optional[Mapping[str, Any]]) -> str:
    return "low" if is_low_quality_predicate_token(token) else "ok"


def is_clause_boundary_token(token: Optional[Mapping[str, Any]]) -> bool:
    return lower((token or {}).get("surface")) in CLAUSE_BOUNDARY_SURFACES


def _index_in_segment(token_id: str, segment_tokens: Sequence[Mapping[str, Any]]) -> int:
    for idx, token in enumerate(segment_tokens):
        if token.get("id") == token_id:
            return idx
    return -1


def clause_window(token_id: str, segment_tokens: Sequence[Mapping[str, Any]]) -> Optional[tuple]:
    """Return the ``(left, right)`` indexes of the punctuation-bounded window."""

    idx = _index_in_segment(token_id, segment_tokens)
    if idx < 0:
        return None
    left = right = idx
    while left - 1 >= 0 and not is_clause_boundary_token(segment_tokens[left - 1]):
        left -= 1
    while right + 1 < len(segment_tokens) and not is_clause_boundary_token(segment_tokens[right + 1]):
        right += 1
    return left, right


def assertion_clause_window_key(
    assertion: Mapping[str, Any],
    tokens_by_segment: Mapping[str, Sequence[Mapping[str, Any]]],
) -> str:
    segment_id = str(assertion.get("segment_id") or "")
    pred_token_id = str((assertion.get("predicate") or {}).get("head_token_id") or "")
    if not segment_id or not pred_token_id:
        return f"{segment_id}|window:unknown"
    segment_tokens = tokens_by_segment.get(segment_id) or []
    window = clause_window(pred_token_id, segment_tokens)
    if window is None:
        return f"{segment_id}|window:unknown"
    left, right = window
    return f"{segment_id}|{segment_tokens[left]['id']}|{segment_tokens[right]['id']}"


def is_make_sure_scaffold_predicate(
    pred_token: Mapping[str, Any],
    projected: Sequence[Mapping[str, Any]],
    tokens_by_segment: Mapping[str, Sequence[Mapping[str, Any]]],
    lookahead: int = 3,
) -> bool:
    """True for ``make`` heading a clause link and followed by ``sure``."""

    if lower(pred_token.get("surface")) != "make":
        return False
    has_incoming_clause_link = any(
        r.get("dep_token_id") == pred_token["id"]
        and r.get("label") in ("complement_clause", "xcomp", "ccomp", "purpose")
        for r in projected
    )
    if not has_incoming_clause_link:
        return False
    segment_tokens = tokens_by_segment.get(pred_token["segment_id"]) or []
    idx = _index_in_segment(pred_token["id"], segment_tokens)
    if idx < 0:
        return False
    for token in segment_tokens[idx + 1 : idx + 1 + lookahead]:
        surface = lower(token.get("surface"))
        if not surface or surface in (",", ";", ":"):
            continue
        return surface == "sure"
    return False


def choose_predicate_upgrade_candidate(
    current_token_id: str,
    relations: Sequence[Mapping[str, Any]],
    token_by_id: Mapping[str, Mapping[str, Any]],
) -> Optional[Dict[str, Any]]:
    """Find a lexical verb to stand in for a weak predicate.

    Candidates come from ``modality_unified`` evidence (class 1), then
    ``copula_frame`` evidence (class 2), then clause-link dependents (class 3).
    The lowest class wins, ties broken by token index and id.
    """

    current = token_by_id.get(current_token_id)
    if current is None:
        return None

    by_token: Dict[str, Dict[str, Any]] = {}

    def consider(token_id: Any, cls: int, relation_id: str) -> None:
        if not isinstance(token_id, str) or not token_id or token_id == current_token_id:
            return
        token = token_by_id.get(token_id)
        if token is None or token["segment_id"] != current["segment_id"]:
            return
        if not is_lexical_verb_pos(pos_tag(token)):
            return
        item = by_token.setdefault(token_id, {"token_id": token_id, "class_priority": cls, "relation_ids": set()})
        item["class_priority"] = min(item["class_priority"], cls)
        if relation_id:
            item["relation_ids"].add(relation_id)

    for relation in relations or []:
        if not isinstance(relation, Mapping):
            continue
        evidence = relation.get("evidence") if isinstance(relation.get("evidence"), Mapping) else {}
        relation_id = relation["relation_id"] if isinstance(relation.get("relation_id"), str) else ""
        if evidence.get("pattern") == "modality_unified" and isinstance(evidence.get("chosen_predicate_token_id"), str):
            consider(evidence["chosen_predicate_token_id"], 1, relation_id)
        if evidence.get("pattern") == "copula_frame" and isinstance(evidence.get("verb_token_id"), str):
            consider(evidence["verb_token_id"], 2, relation_id)
        if str(relation.get("label") or "") in CLAUSE_LINK_LABELS:
            consider(relation.get("dep_token_id"), 3, relation_id)

    if not by_token:
        return None
    selected = min(
        by_token.values(),
        key=lambda c: (c["class_priority"], token_by_id[c["token_id"]]["i"], c["token_id"]),
    )
    return {
        "token_id": selected["token_id"],
        "upstream_relation_ids": normalize_ids(selected["relation_ids"]),
    }


def tokens_by_segment(token_by_id: Mapping[str, Mapping[str, Any]]) -> Dict[str, List[Mapping[str, Any]]]:
    grouped: Dict[str, List[Mapping[str, Any]]] = {}
    for token in token_by_id.values():
        grouped.setdefault(token["segment_id"], []).append(token)
    for segment_tokens in grouped.values():
        segment_tokens.sort(key=lambda t: t["i"])
    return grouped


__all__ = [
    "CLAUSE_LINK_LABELS",
    "COPULA_SURFACES",
    "PREDICATE_CLASSES",
    "assertion_clause_window_key",
    "choose_predicate_upgrade_candidate",
    "classify_predicate_class",
    "clause_window",
    "is_clause_boundary_token",
    "is_copula_surface",
    "is_lexical_verb_pos",
    "is_low_quality_predicate_token",
    "is_make_sure_scaffold_predicate",
    "is_noun_like_pos_tag",
    "is_verb_pos_tag",
    "lower",
    "pos_tag",
    "predicate_quality",
    "tokens_by_segment",
]
