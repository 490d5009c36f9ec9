"""Rewriting passes over an assertion's role buckets.

Each pass reads the assertion's current ``arguments``/``modifiers`` as slot
buckets, edits the buckets and writes them back through
:func:`apply_role_buckets`, so the serialised role entries stay canonical
after every step.
"""

from __future__ import annotations

import sys
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from .determinism import normalize_ids
from .operators import merge_operator, operator_sort_key
from .predicates import is_copula_surface, is_noun_like_pos_tag, is_verb_pos_tag, lower, pos_tag
from .roles import collect_assertion_mention_refs, project_roles_to_slots, slot_to_role_entries

CORE_SLOTS = ("actor", "theme", "attr", "topic", "location")
ALL_SLOTS = CORE_SLOTS + ("other",)

_RELATIVE_BOUNDARY_SURFACES = frozenset({"where", "that", "which", "who", "whom", "whose", "when", "while"})
_RELATIVE_BOUNDARY_TAGS = frozenset({"WDT", "WP", "WP$", "WRB"})
_CLAUSE_MARKER_SURFACES = frozenset({"that", "which", "who", "where", "before", "while", ","})

assertion_role_buckets = project_roles_to_slots


def empty_role_buckets() -> Dict[str, Any]:
    return {slot: [] for slot in ALL_SLOTS}


def role_buckets_are_semantically_empty(buckets: Mapping[str, Any]) -> bool:
    return all(not buckets.get(slot) for slot in ALL_SLOTS)


def apply_role_buckets(
    assertion: MutableMapping[str, Any], buckets: Mapping[str, Any], mention_by_id: Mapping[str, Any]
) -> None:
    assertion.update(slot_to_role_entries(buckets, mention_by_id))


def _sort_other(other: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(other, key=lambda o: str(o.get("role") or ""))


def add_to_other_slot(
    host: Optional[MutableMapping[str, Any]],
    role: str,
    mention_ids: Iterable[str],
    mention_by_id: Mapping[str, Any],
) -> bool:
    """Merge ``mention_ids`` into the host's ``role`` bucket; report whether it changed."""

    if host is None:
        return False
    buckets = assertion_role_buckets(host)
    cleaned = normalize_ids(mention_ids)
    if not cleaned:
        return False
    existing = next((o for o in buckets["other"] if o.get("role") == role), None)
    if existing is None:
        buckets["other"].append({"role": role, "mention_ids": cleaned})
    else:
        merged = normalize_ids(list(existing["mention_ids"]) + cleaned)
        if merged == existing["mention_ids"]:
            return False
        existing["mention_ids"] = merged
    buckets["other"] = _sort_other(buckets["other"])
    apply_role_buckets(host, buckets, mention_by_id)
    return True


def collect_role_bucket_mention_ids(source: Mapping[str, Any], include_slots: Iterable[str]) -> List[str]:
    buckets = assertion_role_buckets(source)
    out = set()
    for slot in include_slots or []:
        if slot == "other":
            for entry in buckets["other"]:
                out.update(entry["mention_ids"])
        else:
            out.update(buckets.get(slot) or [])
    return normalize_ids(out)


def transfer_role_carrier_buckets_to_host(
    source: Mapping[str, Any], host: MutableMapping[str, Any], mention_by_id: Mapping[str, Any]
) -> List[str]:
    """Copy every source bucket the host lacks into ``attached_<slot>`` buckets."""

    transferred = set()
    host_refs = collect_assertion_mention_refs(host)
    source_buckets = assertion_role_buckets(source)
    for slot in CORE_SLOTS:
        missing = [i for i in normalize_ids(source_buckets[slot]) if i not in host_refs]
        if missing and add_to_other_slot(host, f"attached_{slot}", missing, mention_by_id):
            transferred.add(slot)
            host_refs.update(missing)
    for entry in source_buckets["other"]:
        missing = [i for i in normalize_ids(entry["mention_ids"]) if i not in host_refs]
        if missing and add_to_other_slot(host, f"attached_{entry['role'] or 'other'}", missing, mention_by_id):
            transferred.add("other")
            host_refs.update(missing)
    return normalize_ids(transferred)


def transfer_named_buckets_to_host_other(
    source: Mapping[str, Any],
    host: MutableMapping[str, Any],
    mapping: Sequence[tuple],
    mention_by_id: Mapping[str, Any],
) -> Dict[str, List[str]]:
    """Move source buckets into host ``other`` buckets named by ``mapping``.

    ``mapping`` holds ``(from_slot, to_role)`` pairs. ``transferred_mention_ids``
    reports every source mention in a mapped bucket, whether or not the host
    already referenced it.
    """

    transferred_slots = set()
    transferred_mention_ids = set()
    source_mention_ids = set()
    host_refs = collect_assertion_mention_refs(host)
    buckets = assertion_role_buckets(source)

    def move(slot_name: str, ids: List[str], to_role: str) -> None:
        source_mention_ids.update(ids)
        missing = [i for i in ids if i not in host_refs]
        if missing and add_to_other_slot(host, to_role, missing, mention_by_id):
            transferred_slots.add(slot_name)
            host_refs.update(missing)
            transferred_mention_ids.update(missing)

    for from_slot, to_role in mapping:
        if not from_slot or not to_role:
            continue
        if from_slot == "other":
            for entry in buckets["other"]:
                ids = normalize_ids(entry["mention_ids"])
                if ids:
                    move("other", ids, to_role)
            continue
        ids = normalize_ids(buckets.get(from_slot))
        if ids:
            move(from_slot, ids, to_role)

    return {
        "transferred_buckets": normalize_ids(transferred_slots),
        "transferred_mention_ids": normalize_ids(source_mention_ids or transferred_mention_ids),
    }


def transfer_operators_to_host(source: Mapping[str, Any], host: MutableMapping[str, Any]) -> List[str]:
    source_ops = source.get("operators") or []
    if not source_ops:
        return []
    op_map: Dict[str, Dict[str, Any]] = {}
    for op in host.get("operators") or []:
        merge_operator(op_map, op)
    kinds = set()
    for op in source_ops:
        merge_operator(op_map, op)
        if op.get("kind"):
            kinds.add(str(op["kind"]))
    host["operators"] = sorted(op_map.values(), key=operator_sort_key)
    return normalize_ids(kinds)


def dedupe_other_mentions_against_core_buckets(
    assertion: Optional[MutableMapping[str, Any]], mention_by_id: Mapping[str, Any]
) -> None:
    if assertion is None:
        return
    buckets = assertion_role_buckets(assertion)
    core = set(buckets["theme"]) | set(buckets["attr"]) | set(buckets["topic"]) | set(buckets["location"])
    if not core:
        return
    cleaned = []
    for entry in buckets["other"]:
        kept = normalize_ids(i for i in entry["mention_ids"] if i not in core)
        if kept:
            cleaned.append({"role": entry["role"], "mention_ids": kept})
    buckets["other"] = _sort_other(cleaned)
    apply_role_buckets(assertion, buckets, mention_by_id)


def enforce_core_bucket_token_disjointness(
    assertion: MutableMapping[str, Any],
    mention_by_id: Mapping[str, Any],
    token_by_id: Mapping[str, Mapping[str, Any]],
) -> None:
    """Drop bucket mentions that collide with the predicate or an earlier bucket.

    Verbal predicates reject any token overlap. Other predicates only reject a
    mention whose token set equals the predicate's. Buckets are visited in
    ``actor, location, theme, attr, topic, other`` order and each kept mention
    reserves its tokens for the buckets that follow.
    """

    if not assertion.get("predicate"):
        return
    buckets = assertion_role_buckets(assertion)
    pred_mention = mention_by_id.get(str(assertion["predicate"].get("mention_id") or ""))
    pred_token = token_by_id.get(pred_mention.head_token_id) if pred_mention is not None else None
    strict = is_verb_pos_tag(pos_tag(pred_token))
    predicate_token_ids = set(pred_mention.token_ids) if pred_mention is not None else set()
    reserved = set(predicate_token_ids)

    def keep(mention_id: str) -> bool:
        mention = mention_by_id.get(mention_id)
        token_ids = list(mention.token_ids) if mention is not None else []
        if strict:
            overlaps = any(t in reserved for t in token_ids)
        else:
            overlaps = len(token_ids) == len(predicate_token_ids) and all(
                t in predicate_token_ids for t in token_ids
            )
        if overlaps:
            return False
        reserved.update(token_ids)
        return True

    for slot in ("actor", "location", "theme", "attr", "topic"):
        buckets[slot] = normalize_ids([i for i in normalize_ids(buckets[slot]) if keep(i)])
    cleaned = []
    for entry in buckets["other"]:
        kept = [i for i in normalize_ids(entry["mention_ids"]) if keep(i)]
        if kept:
            cleaned.append({"role": entry["role"], "mention_ids": kept})
    buckets["other"] = _sort_other(cleaned)
    apply_role_buckets(assertion, buckets, mention_by_id)


def _mention_token_bounds(mention: Any, token_by_id: Mapping[str, Mapping[str, Any]]) -> Optional[Dict[str, int]]:
    if mention is None:
        return None
    tokens = [token_by_id[t] for t in mention.token_ids if t in token_by_id]
    if not tokens:
        return None
    return {
        "min_i": min(t["i"] for t in tokens),
        "max_i": max(t["i"] for t in tokens),
        "token_count": len(tokens),
        "span_len": mention.span.end - mention.span.start,
    }


def prune_low_copula_buckets(
    assertion: MutableMapping[str, Any],
    mention_by_id: Mapping[str, Any],
    token_by_id: Mapping[str, Mapping[str, Any]],
    tokens_by_segment: Mapping[str, Sequence[Mapping[str, Any]]],
) -> None:
    """Keep a low-quality copula's buckets inside its own relative clause.

    Mentions ending at or after the first relative-clause marker following the
    copula are dropped, and the theme is narrowed to its earliest, smallest
    mention.
    """

    if not assertion.get("predicate"):
        return
    if str((assertion.get("diagnostics") or {}).get("predicate_quality") or "") != "low":
        return
    pred_mention = mention_by_id.get(str(assertion["predicate"].get("mention_id") or ""))
    if pred_mention is None:
        return
    pred_token = token_by_id.get(pred_mention.head_token_id)
    if pred_token is None or not is_copula_surface(pred_token.get("surface")):
        return
    buckets = assertion_role_buckets(assertion)

    boundary_i = None
    for token in tokens_by_segment.get(pred_mention.segment_id) or []:
        if token["i"] <= pred_token["i"]:
            continue
        if lower(token.get("surface")) in _RELATIVE_BOUNDARY_SURFACES or pos_tag(token).upper() in _RELATIVE_BOUNDARY_TAGS:
            boundary_i = token["i"]
            break

    def before_boundary(mention_id: str) -> bool:
        if boundary_i is None:
            return True
        bounds = _mention_token_bounds(mention_by_id.get(mention_id), token_by_id)
        return bounds is not None and bounds["max_i"] < boundary_i

    raw_theme = normalize_ids(buckets["theme"])
    theme_candidates = [i for i in raw_theme if before_boundary(i)] or raw_theme
    if theme_candidates:

        def theme_key(mention_id: str):
            bounds = _mention_token_bounds(mention_by_id.get(mention_id), token_by_id)
            if bounds is None:
                return (sys.maxsize, sys.maxsize, sys.maxsize, mention_id)
            return (bounds["min_i"], bounds["token_count"], bounds["span_len"], mention_id)

        buckets["theme"] = [min(theme_candidates, key=theme_key)]

    for slot in ("attr", "topic", "location"):
        buckets[slot] = normalize_ids(i for i in buckets[slot] if before_boundary(i))
    cleaned = []
    for entry in buckets["other"]:
        kept = normalize_ids(i for i in entry["mention_ids"] if before_boundary(i))
        if kept:
            cleaned.append({"role": entry["role"], "mention_ids": kept})
    buckets["other"] = _sort_other(cleaned)
    apply_role_buckets(assertion, buckets, mention_by_id)


def trim_catch_all_theme_buckets(
    assertion: MutableMapping[str, Any],
    mention_by_id: Mapping[str, Any],
    token_by_id: Mapping[str, Mapping[str, Any]],
    tokens_by_segment: Mapping[str, Sequence[Mapping[str, Any]]],
    oversized_tokens: int = 5,
) -> None:
    """Replace clause-sized theme mentions with a noun-like sub-mention.

    For a verbal predicate, themes containing another verb are dropped. Themes
    of ``oversized_tokens`` or more tokens that contain a verb or a clause
    marker are swapped for the best contained noun-headed mention, preferring
    one after the predicate (before it for ``VBN`` predicates), not preceded by
    a preposition, widest first.
    """

    if not assertion.get("predicate"):
        return
    buckets = assertion_role_buckets(assertion)
    raw_theme = normalize_ids(buckets["theme"])
    if not raw_theme:
        return
    pred_mention_id = str(assertion["predicate"].get("mention_id") or "")
    pred_mention = mention_by_id.get(pred_mention_id)
    if pred_mention is None:
        return
    pred_token = token_by_id.get(pred_mention.head_token_id)
    pred_is_verb = is_verb_pos_tag(pos_tag(pred_token))
    pred_token_ids = {pred_mention.head_token_id} if pred_mention.head_token_id else set()
    token_by_i = {t["i"]: t for t in tokens_by_segment.get(pred_mention.segment_id) or []}

    def sorted_tokens(mention) -> List[Mapping[str, Any]]:
        return sorted((token_by_id[t] for t in mention.token_ids if t in token_by_id), key=lambda t: t["i"])

    def pick_trimmed(theme) -> Optional[str]:
        theme_set = set(theme.token_ids)
        candidates = []
        for mention in mention_by_id.values():
            if mention.segment_id != pred_mention.segment_id or mention.id == theme.id:
                continue
            if not mention.token_ids or not all(t in theme_set for t in mention.token_ids):
                continue
            tokens = sorted_tokens(mention)
            if not tokens or any(is_verb_pos_tag(pos_tag(t)) for t in tokens):
                continue
            if not is_noun_like_pos_tag(pos_tag(token_by_id.get(mention.head_token_id))):
                continue
            start_i = tokens[0]["i"]
            prev_tag = pos_tag(token_by_i.get(start_i - 1)).upper()
            prep_penalty = 1 if prev_tag in ("IN", "TO") else 0
            if pred_token is None:
                after_predicate = 1
            elif pos_tag(pred_token) == "VBN":
                after_predicate = 0 if start_i < pred_token["i"] else 1
            else:
                after_predicate = 0 if start_i > pred_token["i"] else 1
            candidates.append((after_predicate, prep_penalty, -len(tokens), start_i, mention.id))
        return min(candidates)[4] if candidates else None

    cleaned = []
    for mention_id in raw_theme:
        mention = mention_by_id.get(mention_id)
        tokens = sorted_tokens(mention) if mention is not None else []
        if not tokens or mention_id == pred_mention_id:
            continue
        has_verb = any(is_verb_pos_tag(pos_tag(t)) for t in tokens)
        has_foreign_verb = any(is_verb_pos_tag(pos_tag(t)) and t["id"] not in pred_token_ids for t in tokens)
        if pred_is_verb and has_foreign_verb:
            continue
        has_clause_markers = any(
            lower(t.get("surface")) in _CLAUSE_MARKER_SURFACES or pos_tag(t).upper() == "," for t in tokens
        )
        if len(tokens) >= oversized_tokens and (has_clause_markers or has_verb):
            trimmed = pick_trimmed(mention)
            if trimmed:
                cleaned.append(trimmed)
            continue
        cleaned.append(mention_id)

    buckets["theme"] = normalize_ids(cleaned)
    apply_role_buckets(assertion, buckets, mention_by_id)


__all__ = [
    "ALL_SLOTS",
    "CORE_SLOTS",
    "add_to_other_slot",
    "apply_role_buckets",
    "assertion_role_buckets",
    "collect_role_bucket_mention_ids",
    "dedupe_other_mentions_against_core_buckets",
    "empty_role_buckets",
    "enforce_core_bucket_token_disjointness",
    "prune_low_copula_buckets",
    "role_buckets_are_semantically_empty",
    "transfer_named_buckets_to_host_other",
    "transfer_operators_to_host",
    "transfer_role_carrier_buckets_to_host",
    "trim_catch_all_theme_buckets",
]
