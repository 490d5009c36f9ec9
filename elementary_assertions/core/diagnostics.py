"""Coverage gaps, fragmentation metrics and upstream evidence audits."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from .determinism import UNRESOLVED_REASON_PRECEDENCE, find_selector, normalize_ids
from .mention_evidence import WIKIPEDIA_TITLE_INDEX_SOURCE
from .mentions import (
    has_positive_wiki_signal,
    is_compare_label,
    is_quantifier_label,
    is_subject_role_label,
    mention_has_lexicon_evidence,
)
from .projection import ProjectionBuild
from .upstream import RELATION_EXTRACTION_SOURCE, annotation_has_source

ROLE_LABELS = frozenset({"theme", "patient", "obj", "dobj", "attribute", "topic", "location", "recipient"})
OPERATOR_LABELS = frozenset({"modality", "negation", "coordination", "complement_clause", "purpose"})
CONTROL_PATTERNS = frozenset({"control_inherit_subject", "control_propagation"})
QUANTIFIER_SURFACES = frozenset({"each", "every", "all", "some", "no", "only"})
COMPARATIVE_SURFACES = frozenset({"greater", "less", "more", "fewer"})
WIKI_FIELD_TERMS = ("wiki", "wikipedia", "title_index", "lexicon")

_INDEX_PATTERN = re.compile(r"\[\d+\]")


def _coord_type(evidence: Optional[Mapping[str, Any]]) -> Any:
    evidence = evidence or {}
    return evidence.get("coord_type") or evidence.get("coordination_type") or evidence.get("coordinator_type")


def pick_reason_by_precedence(candidates: Iterable[Optional[str]]) -> str:
    present = {c for c in candidates if c}
    for reason in UNRESOLVED_REASON_PRECEDENCE:
        if reason in present:
            return reason
    return "projection_failed"


def classify_unresolved_reason(
    mention_id: str,
    predicate_quality_by_mention_id: Mapping[str, str],
    role_relation_ids_by_mention: Mapping[str, Set[str]],
    operator_relation_ids_by_mention: Mapping[str, Set[str]],
    coord_missing_type_ids_by_mention: Mapping[str, Set[str]],
) -> str:
    """Pick the single highest-precedence reason a mention stayed unresolved."""

    reasons = []
    if predicate_quality_by_mention_id.get(mention_id) == "low":
        reasons.append("predicate_invalid")
    role_ids = role_relation_ids_by_mention.get(mention_id)
    if coord_missing_type_ids_by_mention.get(mention_id):
        reasons.append("coord_type_missing")
    if not role_ids and operator_relation_ids_by_mention.get(mention_id):
        reasons.append("operator_scope_open")
    reasons.append("projection_failed" if role_ids else "missing_relation")
    return pick_reason_by_precedence(reasons)


def _relation_id(relation: Mapping[str, Any]) -> str:
    if isinstance(relation.get("relation_id"), str) and relation["relation_id"]:
        return relation["relation_id"]
    return relation["id"] if isinstance(relation.get("id"), str) else ""


def build_unresolved(
    mentions: Sequence[Any],
    unresolved_head_map: Mapping[str, str],
    projected_unresolved: Sequence[Mapping[str, Any]],
    mention_by_id: Mapping[str, Any],
    assertions: Sequence[Mapping[str, Any]],
    projected: Sequence[Mapping[str, Any]],
    uncovered_primary_mention_ids: Iterable[str],
) -> List[Dict[str, Any]]:
    """Classify every uncovered primary mention with exactly one reason.

    Unresolved heads and unresolved relation attachments contribute evidence to
    the entry of the mention they concern. The first kind recorded for a
    mention (``unresolved_head`` before ``unresolved_attachment``) is kept, and
    only uncovered mentions are reported so the list stays in step with
    ``coverage.uncovered_primary_mention_ids``.
    """

    quality_by_mention = {}
    for assertion in assertions:
        mention_id = (assertion.get("predicate") or {}).get("mention_id")
        quality = (assertion.get("diagnostics") or {}).get("predicate_quality")
        if isinstance(mention_id, str) and isinstance(quality, str) and quality:
            quality_by_mention[mention_id] = quality

    role_ids: Dict[str, Set[str]] = {}
    operator_ids: Dict[str, Set[str]] = {}
    coord_missing_ids: Dict[str, Set[str]] = {}

    def add(index: Dict[str, Set[str]], mention_id: Any, relation_id: str) -> None:
        if isinstance(mention_id, str) and mention_id and relation_id:
            index.setdefault(mention_id, set()).add(relation_id)

    for relation in projected:
        relation_id = _relation_id(relation)
        label = str(relation.get("label") or "")
        evidence = relation.get("evidence") or {}
        if label in ROLE_LABELS or is_subject_role_label(label):
            add(role_ids, relation.get("head_mention_id"), relation_id)
        if label in OPERATOR_LABELS or evidence.get("pattern") in CONTROL_PATTERNS:
            add(operator_ids, relation.get("head_mention_id"), relation_id)
        if label == "coordination" and not _coord_type(evidence):
            add(coord_missing_ids, relation.get("head_mention_id"), relation_id)
            add(coord_missing_ids, relation.get("dep_mention_id"), relation_id)

    grouped: Dict[str, Dict[str, Any]] = {}

    def put(kind, segment_id, mention_id, mention_ids, token_ids, span, upstream_relation_ids) -> None:
        reason = classify_unresolved_reason(mention_id, quality_by_mention, role_ids, operator_ids, coord_missing_ids)
        group = grouped.setdefault(
            mention_id,
            {
                "kind": kind,
                "segment_id": segment_id,
                "mention_id": mention_id,
                "mention_ids": set(),
                "reason": reason,
                "token_ids": set(),
                "upstream_relation_ids": set(),
                "span": span,
            },
        )
        group["mention_ids"].add(mention_id)
        group["mention_ids"].update(i for i in mention_ids if isinstance(i, str) and i)
        group["token_ids"].update(token_ids)
        group["upstream_relation_ids"].update(i for i in upstream_relation_ids if isinstance(i, str) and i)
        if group["span"] is None and span is not None:
            group["span"] = span

    for mention in mentions:
        if unresolved_head_map.get(mention.id):
            put("unresolved_head", mention.segment_id, mention.id, [mention.id], mention.token_ids, mention.span.to_dict(), [])

    for entry in projected_unresolved:
        mention = mention_by_id.get(entry.get("mention_id"))
        if mention is None:
            continue
        relation = entry.get("relation") or {}
        relation_id = _relation_id(relation)
        mention_ids = [entry["mention_id"], relation.get("head_mention_id"), relation.get("dep_mention_id")]
        put(
            "unresolved_attachment",
            entry["segment_id"],
            entry["mention_id"],
            mention_ids,
            mention.token_ids,
            mention.span.to_dict(),
            [relation_id] if relation_id else [],
        )

    uncovered = set()
    for mention_id in uncovered_primary_mention_ids:
        mention = mention_by_id.get(mention_id) if isinstance(mention_id, str) and mention_id else None
        if mention is None:
            continue
        uncovered.add(mention.id)
        put("unresolved_attachment", mention.segment_id, mention.id, [mention.id], mention.token_ids, mention.span.to_dict(), [])

    out = []
    for group in grouped.values():
        if group["mention_id"] not in uncovered:
            continue
        evidence: Dict[str, Any] = {
            "token_ids": normalize_ids(group["token_ids"]),
            "upstream_relation_ids": normalize_ids(group["upstream_relation_ids"]),
        }
        if group["span"] is not None:
            evidence["span"] = group["span"]
        out.append(
            {
                "kind": group["kind"],
                "segment_id": group["segment_id"],
                "mention_id": group["mention_id"],
                "mention_ids": normalize_ids(group["mention_ids"]),
                "reason": group["reason"],
                "evidence": evidence,
            }
        )
    out.sort(key=lambda u: (u["segment_id"], u["mention_id"], u["kind"], u["reason"]))
    return out


def build_subject_role_gaps(
    assertions: Sequence[Mapping[str, Any]], projected: Sequence[Mapping[str, Any]]
) -> List[Dict[str, Any]]:
    """Lexical-verb assertions with no actor and no upstream subject relation."""

    subject_relations: Dict[str, Set[str]] = {}
    for relation in projected:
        if not is_subject_role_label(relation.get("label")):
            continue
        predicate_mention_id = str(relation.get("head_mention_id") or "")
        if not predicate_mention_id:
            continue
        ids = subject_relations.setdefault(predicate_mention_id, set())
        relation_id = str(relation.get("relation_id") or relation.get("id") or "")
        if relation_id:
            ids.add(relation_id)

    gaps = []
    for assertion in assertions:
        predicate = assertion.get("predicate") or {}
        if not isinstance(predicate.get("mention_id"), str):
            continue
        if (assertion.get("diagnostics") or {}).get("predicate_class") != "lexical_verb":
            continue
        actors = [
            mention_id
            for entry in assertion.get("arguments") or []
            if entry.get("role") == "actor"
            for mention_id in entry.get("mention_ids") or []
        ]
        if normalize_ids(actors) or subject_relations.get(predicate["mention_id"]):
            continue
        head_token_id = str(predicate.get("head_token_id") or "")
        gaps.append(
            {
                "segment_id": str(assertion.get("segment_id") or ""),
                "assertion_id": str(assertion.get("id") or ""),
                "predicate_mention_id": predicate["mention_id"],
                "predicate_head_token_id": head_token_id,
                "reason": "missing_subject_role",
                "evidence": {"token_ids": normalize_ids([head_token_id]), "upstream_relation_ids": []},
            }
        )
    gaps.sort(key=lambda g: (g["segment_id"], g["assertion_id"], g["predicate_mention_id"]))
    return gaps


def _coordination_groups(assertions: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    groups: Dict[str, Dict[str, Any]] = {}
    for assertion in assertions:
        for op in assertion.get("operators") or []:
            if op.get("kind") != "coordination_group" or not isinstance(op.get("group_id"), str):
                continue
            value = op.get("value") if isinstance(op.get("value"), str) and op.get("value") else None
            group = groups.setdefault(op["group_id"], {"id": op["group_id"], "type": value, "members": set()})
            group["members"].add(assertion["id"])
            if group["type"] is None and value:
                group["type"] = value
    return [
        {"id": g["id"], "type": g["type"], "member_assertion_ids": normalize_ids(g["members"])}
        for g in sorted(groups.values(), key=lambda g: g["id"])
    ]


def _fragmentation(assertions: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    per_segment: Dict[str, Dict[str, Any]] = {}
    for assertion in assertions:
        if not isinstance(assertion.get("segment_id"), str):
            continue
        bucket = per_segment.setdefault(
            assertion["segment_id"],
            {
                "segment_id": assertion["segment_id"],
                "predicate_assertion_count": 0,
                "lexical_verb_count": 0,
                "tolerated_auxiliary_count": 0,
                "structural_fragment_count": 0,
                "clause_fragmentation_warning": False,
            },
        )
        diagnostics = assertion.get("diagnostics") or {}
        cls = diagnostics.get("predicate_class")
        bucket["predicate_assertion_count"] += 1
        if cls == "lexical_verb":
            bucket["lexical_verb_count"] += 1
        if cls in ("auxiliary", "copula"):
            bucket["tolerated_auxiliary_count"] += 1
        if diagnostics.get("structural_fragment") is True:
            bucket["structural_fragment_count"] += 1
    segments = sorted(per_segment.values(), key=lambda s: s["segment_id"])
    for segment in segments:
        segment["clause_fragmentation_warning"] = segment["predicate_assertion_count"] > (
            segment["lexical_verb_count"] + segment["tolerated_auxiliary_count"]
        )
    total = len(assertions)
    noise = sum(
        1
        for a in assertions
        if (a.get("diagnostics") or {}).get("predicate_class") in ("preposition", "nominal_head")
    )
    return {
        "structural_fragment_count": sum(s["structural_fragment_count"] for s in segments),
        "predicate_noise_index": round(noise / total, 6) if total else 0,
        "per_segment": segments,
    }


def build_diagnostics(
    token_wiki_by_id: Mapping[str, Any],
    mentions: Sequence[Any],
    assertions: Sequence[Mapping[str, Any]],
    projection: ProjectionBuild,
    relations_seed: Mapping[str, Any],
    wti_endpoint: Optional[str],
    suppressed_assertions: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    projected = projection.projected
    warnings = []
    if isinstance(wti_endpoint, str) and wti_endpoint.strip() and not token_wiki_by_id:
        warnings.append("wti_configured_but_no_token_wiki_signals")
    if projection.dropped:
        warnings.append("relation_projection_drops_present")

    coord_type_missing = any(
        r.get("label") == "coordination"
        and not any(
            isinstance((r.get("evidence") or {}).get(k), str) and (r.get("evidence") or {}).get(k)
            for k in ("coord_type", "coordination_type", "coordinator_type")
        )
        for r in projected
    )
    compare_present = any(is_compare_label(r.get("label")) for r in projected)
    quantifier_present = any(is_quantifier_label(r.get("label")) for r in projected)

    surfaces_by_segment: Dict[str, List[str]] = {}
    for token in relations_seed.get("tokens") or []:
        if isinstance(token, Mapping) and isinstance(token.get("segment_id"), str):
            surfaces_by_segment.setdefault(token["segment_id"], []).append(str(token.get("surface") or "").lower())
    comparative_surface = any(
        "than" in surfaces and any(s in COMPARATIVE_SURFACES for s in surfaces)
        for surfaces in surfaces_by_segment.values()
    )
    quantifier_surface = any(
        any(s in QUANTIFIER_SURFACES for s in surfaces) for surfaces in surfaces_by_segment.values()
    )
    comparative_gap = comparative_surface and not compare_present
    quantifier_gap = quantifier_surface and not quantifier_present
    if coord_type_missing:
        warnings.append("coordination_type_missing")
    if comparative_gap:
        warnings.append("comparative_gap")
    if quantifier_gap:
        warnings.append("quantifier_scope_gap")

    return {
        "token_wiki_signal_count": len(token_wiki_by_id),
        "mentions_with_lexicon_evidence": sum(1 for m in mentions if mention_has_lexicon_evidence(m)),
        "assertions_with_wiki_signals": sum(
            1 for a in assertions if isinstance((a.get("evidence") or {}).get("wiki_signals"), Mapping)
        ),
        "projected_relation_count": len(projected),
        "dropped_relation_count": len(projection.dropped),
        "fragmentation": _fragmentation(assertions),
        "gap_signals": {
            "coordination_type_missing": coord_type_missing,
            "comparative_gap": comparative_gap,
            "quantifier_scope_gap": quantifier_gap,
        },
        "coordination_groups": _coordination_groups(assertions),
        "subject_role_gaps": build_subject_role_gaps(assertions, projected),
        "suppressed_assertions": list(suppressed_assertions or []),
        "warnings": normalize_ids(warnings),
    }


def _summarize_value(value: Any) -> str:
    try:
        raw = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)
    return raw[:177] + "..." if len(raw) > 180 else raw


def collect_wiki_field_diagnostics(document: Any) -> List[Dict[str, Any]]:
    """List every wiki/lexicon-looking key path in ``document`` with a sample value."""

    buckets: Dict[str, Dict[str, Any]] = {}

    def visit(node: Any, prefix: str) -> None:
        if isinstance(node, list):
            for index, item in enumerate(node):
                visit(item, f"{prefix}[{index}]")
            return
        if not isinstance(node, Mapping):
            return
        for key, value in node.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            if any(term in str(key).lower() for term in WIKI_FIELD_TERMS):
                bucket_key = _INDEX_PATTERN.sub("[]", path)
                bucket = buckets.setdefault(bucket_key, {"path": bucket_key, "count": 0, "example": ""})
                bucket["count"] += 1
                if not bucket["example"]:
                    bucket["example"] = _summarize_value(value)
            visit(value, path)

    visit(document, "")
    return sorted(buckets.values(), key=lambda b: b["path"])


def analyze_upstream_wiki_evidence(document: Mapping[str, Any]) -> Dict[str, Any]:
    """Summarise positive wiki signals on upstream tokens, MWEs and predicates."""

    tokens = document.get("tokens") if isinstance(document.get("tokens"), list) else []
    annotations = document.get("annotations") if isinstance(document.get("annotations"), list) else []
    accepted_mwes = [
        a for a in annotations if isinstance(a, Mapping) and a.get("kind") == "mwe" and a.get("status") == "accepted"
    ]

    has_evidence: Dict[str, bool] = {}
    order: List[str] = []
    for token in tokens:
        if not isinstance(token, Mapping) or not isinstance(token.get("id"), str):
            continue
        mention_id = f"token:{token['id']}"
        order.append(mention_id)
        lexicon = token.get("lexicon") if isinstance(token.get("lexicon"), Mapping) else {}
        has_evidence[mention_id] = has_positive_wiki_signal(lexicon.get("wikipedia_title_index"))
    for mwe in accepted_mwes:
        if not isinstance(mwe.get("id"), str) or not mwe["id"]:
            continue
        mention_id = f"mwe:{mwe['id']}"
        order.append(mention_id)
        has_evidence[mention_id] = any(
            isinstance(s, Mapping)
            and s.get("name") == WIKIPEDIA_TITLE_INDEX_SOURCE
            and has_positive_wiki_signal(s.get("evidence"))
            for s in mwe.get("sources") or []
        )

    ranked_mwes = []
    for mwe in accepted_mwes:
        selector = find_selector(mwe, "TokenSelector")
        token_ids = normalize_ids(selector.get("token_ids")) if selector and isinstance(selector.get("token_ids"), list) else []
        position = find_selector(mwe, "TextPositionSelector")
        span = (position or {}).get("span") or {}
        start = span.get("start") if isinstance(span.get("start"), (int, float)) else float("inf")
        mwe_id = mwe.get("id") if isinstance(mwe.get("id"), str) else ""
        if mwe_id and token_ids:
            ranked_mwes.append((-len(token_ids), start, mwe_id, token_ids))
    mwe_by_token: Dict[str, List[str]] = {}
    for _, _, mwe_id, token_ids in sorted(ranked_mwes, key=lambda m: m[:3]):
        for token_id in token_ids:
            mwe_by_token.setdefault(token_id, []).append(f"mwe:{mwe_id}")

    predicate_ids = normalize_ids(
        (mwe_by_token.get(a["head"]["id"]) or [f"token:{a['head']['id']}"])[0]
        for a in annotations
        if isinstance(a, Mapping)
        and a.get("kind") == "dependency"
        and a.get("status") == "accepted"
        and annotation_has_source(a, RELATION_EXTRACTION_SOURCE)
        and isinstance(a.get("head"), Mapping)
        and isinstance(a["head"].get("id"), str)
        and a["head"]["id"]
    )

    missing = [i for i in order if not has_evidence.get(i)]
    predicates_without = [i for i in predicate_ids if not has_evidence.get(i)]
    return {
        "evidence_definition": "positive_signal_only",
        "total_mentions": len(order),
        "mentions_with_wiki_evidence": len(order) - len(missing),
        "mentions_without_wiki_evidence": len(missing),
        "total_predicates": len(predicate_ids),
        "predicates_with_wiki_evidence": len(predicate_ids) - len(predicates_without),
        "predicates_without_wiki_evidence": len(predicates_without),
        "sample_missing_mention_ids": missing[:10],
        "sample_missing_predicate_ids": predicates_without[:10],
        "wiki_related_fields": collect_wiki_field_diagnostics(document),
    }


__all__ = [
    "analyze_upstream_wiki_evidence",
    "build_diagnostics",
    "build_subject_role_gaps",
    "build_unresolved",
    "classify_unresolved_reason",
    "collect_wiki_field_diagnostics",
    "pick_reason_by_precedence",
]
