"""Assertion suppression: modality merge and role-carrier redirects.

Both passes take the current assertion list and return a new one together
with suppression traces. A suppressed assertion is never edited in place: it
is dropped from the list, its residue is merged into a host assertion, and a
trace records the host, the reason and what moved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .buckets import (
    assertion_role_buckets,
    collect_role_bucket_mention_ids,
    role_buckets_are_semantically_empty,
    transfer_named_buckets_to_host_other,
    transfer_operators_to_host,
    transfer_role_carrier_buckets_to_host,
)
from .determinism import deep_clone_json, normalize_ids
from .operators import finalize_operators, merge_operator
from .predicates import (
    CLAUSE_LINK_LABELS,
    assertion_clause_window_key,
    is_copula_surface,
    is_lexical_verb_pos,
    is_low_quality_predicate_token,
    pos_tag,
)
from .roles import collect_assertion_mention_refs

logger = logging.getLogger(__name__)

CARRIER_CLASSES = frozenset({"preposition", "nominal_head", "auxiliary", "copula"})
BLOCKING_OPERATOR_KINDS = frozenset({"modality", "negation", "coordination_group"})
COMPARE_QUANTIFIER_KINDS = frozenset({"compare", "compare_gt", "compare_lt", "quantifier"})
COPULA_DISALLOWED_KINDS = frozenset(
    {"modality", "negation", "coordination_group", "control_inherit_subject", "control_propagation"}
)

_ATTACHED_MAPPING = (
    ("theme", "attached_theme"),
    ("attr", "attached_attr"),
    ("topic", "attached_topic"),
    ("location", "attached_location"),
    ("other", "attached_other"),
)
_COPULA_MAPPING = (
    ("theme", "attached_copula_theme"),
    ("attr", "attached_copula_attr"),
    ("other", "attached_copula_other"),
)


@dataclass
class SuppressionResult:
    assertions: List[Dict[str, Any]]
    traces: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class CarrierEligibility:
    """Which carrier rule, if any, lets an assertion fold into a lexical host."""

    predicate_class: str
    nominal: bool
    preposition: bool
    low_auxiliary: bool
    copula: bool
    bounded_preposition: bool
    has_blocking_ops: bool
    no_core_slots: bool
    has_residue: bool
    actor_ids: Tuple[str, ...]
    non_operator_token_ids: Tuple[str, ...]

    @property
    def any_class(self) -> bool:
        return self.nominal or self.preposition or self.copula or self.bounded_preposition or self.low_auxiliary

    @property
    def blocked_by_ops(self) -> bool:
        return self.has_blocking_ops and not (self.bounded_preposition or self.low_auxiliary or self.nominal)

    @property
    def containment_required(self) -> bool:
        return (
            self.bounded_preposition
            or (self.nominal and not self.no_core_slots)
            or (self.low_auxiliary and not self.no_core_slots)
        )


def _diagnostic(assertion: Mapping[str, Any], key: str) -> str:
    return str((assertion.get("diagnostics") or {}).get(key) or "")


def _op_kinds(assertion: Mapping[str, Any]) -> List[str]:
    return [str(op.get("kind") or "") for op in assertion.get("operators") or []]


def _evidence_token_ids(assertion: Optional[Mapping[str, Any]]) -> List[str]:
    return normalize_ids(((assertion or {}).get("evidence") or {}).get("token_ids"))


def assertion_has_blocking_operators(assertion: Mapping[str, Any]) -> bool:
    return any(kind in BLOCKING_OPERATOR_KINDS for kind in _op_kinds(assertion))


def evaluate_carrier_eligibility(
    source: Mapping[str, Any], token_by_id: Mapping[str, Mapping[str, Any]]
) -> Optional[CarrierEligibility]:
    source_token = token_by_id.get((source.get("predicate") or {}).get("head_token_id"))
    if source_token is None:
        return None
    buckets = assertion_role_buckets(source)
    cls = _diagnostic(source, "predicate_class")
    quality = _diagnostic(source, "predicate_quality")
    kinds = _op_kinds(source)
    has_any_ops = bool(kinds)
    has_compare_quantifier = any(k in COMPARE_QUANTIFIER_KINDS for k in kinds)
    predicate_mention_id = str(source["predicate"].get("mention_id") or "")

    actor_ids = normalize_ids(buckets["actor"])
    self_shaped_actor = not actor_ids or actor_ids == [predicate_mention_id]
    no_core_slots = not any(buckets[slot] for slot in ("actor", "theme", "attr", "topic", "location"))
    has_residue = bool(buckets["other"]) or has_any_ops

    copula = False
    if (cls == "copula" or is_copula_surface(source_token.get("surface"))) and quality == "low" and not has_compare_quantifier:
        has_attachable = bool(buckets["theme"] or buckets["attr"] or buckets["other"])
        copula = has_attachable and not any(k in COPULA_DISALLOWED_KINDS for k in kinds)

    operator_token_ids = {str(op.get("token_id")) for op in source.get("operators") or [] if op.get("token_id")}
    return CarrierEligibility(
        predicate_class=cls,
        nominal=(
            cls == "nominal_head"
            and quality in ("ok", "low")
            and self_shaped_actor
            and no_core_slots
            and has_residue
        ),
        preposition=cls == "preposition" and not has_any_ops,
        low_auxiliary=(
            cls == "auxiliary" and quality == "low" and self_shaped_actor and not has_compare_quantifier
        ),
        copula=copula,
        bounded_preposition=(
            cls == "preposition"
            and no_core_slots
            and not any(k in ("modality", "negation") for k in kinds)
        ),
        has_blocking_ops=assertion_has_blocking_operators(source),
        no_core_slots=no_core_slots,
        has_residue=has_residue,
        actor_ids=tuple(actor_ids),
        non_operator_token_ids=tuple(i for i in _evidence_token_ids(source) if i not in operator_token_ids),
    )


def _host_candidates(
    source: Mapping[str, Any],
    assertions: Sequence[Mapping[str, Any]],
    token_by_id: Mapping[str, Mapping[str, Any]],
    excluded_ids=frozenset(),
) -> List[Tuple[int, str, Mapping[str, Any]]]:
    """Same-segment lexical-verb hosts as ``(distance, id, host)``, nearest first."""

    source_token = token_by_id[source["predicate"]["head_token_id"]]
    candidates = []
    for host in assertions:
        if host["id"] == source["id"] or host["id"] in excluded_ids:
            continue
        if host["segment_id"] != source["segment_id"] or _diagnostic(host, "predicate_class") != "lexical_verb":
            continue
        host_token = token_by_id.get(host["predicate"]["head_token_id"])
        if host_token is None:
            continue
        candidates.append((abs(source_token["i"] - host_token["i"]), host["id"], host))
    candidates.sort(key=lambda c: (c[0], c[1]))
    return candidates


def _contains_tokens(host: Mapping[str, Any], token_ids: Sequence[str]) -> bool:
    host_ids = set(_evidence_token_ids(host))
    return all(t in host_ids for t in token_ids)


def build_suppression_eligibility_trace(
    source: Mapping[str, Any],
    assertions: Sequence[Mapping[str, Any]],
    token_by_id: Mapping[str, Mapping[str, Any]],
    clause_key_by_assertion_id: Mapping[str, str],
) -> Optional[Dict[str, Any]]:
    """Explain whether role-carrier suppression could fold ``source`` into a host."""

    if not source.get("predicate") or _diagnostic(source, "predicate_class") not in CARRIER_CLASSES:
        return None
    eligibility = evaluate_carrier_eligibility(source, token_by_id)
    if eligibility is None:
        return None

    segment_hosts = _host_candidates(source, assertions, token_by_id)
    source_clause = clause_key_by_assertion_id.get(source["id"])
    host_pool = [c for c in segment_hosts if clause_key_by_assertion_id.get(c[1]) == source_clause]
    if not host_pool and eligibility.no_core_slots:
        host_pool = segment_hosts
    chosen_host = host_pool[0][2] if host_pool else None

    host_token_ids = _evidence_token_ids(chosen_host)
    host_token_set = set(host_token_ids)
    missing = [t for t in eligibility.non_operator_token_ids if t not in host_token_set]
    containment_pass = chosen_host is not None and not missing

    eligible = (
        eligibility.any_class
        and not eligibility.blocked_by_ops
        and eligibility.no_core_slots
        and chosen_host is not None
        and (not eligibility.containment_required or containment_pass)
        and eligibility.has_residue
    )
    failure_reason = None
    if not eligible:
        if not eligibility.no_core_slots:
            failure_reason = "has_core_slots"
        elif chosen_host is None:
            failure_reason = "no_host"
        else:
            failure_reason = "no_containment"
    chosen_host_token = token_by_id.get(chosen_host["predicate"]["head_token_id"]) if chosen_host else None

    return {
        "eligible": eligible,
        "failure_reason": failure_reason,
        "candidate_class": eligibility.predicate_class,
        "segment_id": str(source.get("segment_id") or ""),
        "assertion_id": str(source.get("id") or ""),
        "chosen_host_assertion_id": str(chosen_host["id"]) if chosen_host else None,
        "chosen_host_predicate": str(chosen_host_token.get("surface") or "") if chosen_host_token else None,
        "chosen_host_predicate_class": _diagnostic(chosen_host, "predicate_class") if chosen_host else None,
        "source_non_operator_token_ids": list(eligibility.non_operator_token_ids),
        "chosen_host_token_ids": host_token_ids,
        "missing_in_host_token_ids": missing,
    }


def _with_operator_kinds(transfer: Dict[str, List[str]], kinds: List[str]) -> Dict[str, List[str]]:
    if kinds:
        transfer["transferred_buckets"] = normalize_ids(
            transfer["transferred_buckets"] + [f"operator:{k}" for k in kinds]
        )
    return transfer


def _transfer_residue(
    eligibility: CarrierEligibility,
    source: Mapping[str, Any],
    host: Dict[str, Any],
    mention_by_id: Mapping[str, Any],
) -> Tuple[Dict[str, List[str]], str]:
    if eligibility.copula:
        transfer = transfer_named_buckets_to_host_other(source, host, _COPULA_MAPPING, mention_by_id)
        return transfer, "copula_bucket_sink_suppressed"
    if eligibility.nominal:
        transfer = transfer_named_buckets_to_host_other(source, host, _ATTACHED_MAPPING, mention_by_id)
        return _with_operator_kinds(transfer, transfer_operators_to_host(source, host)), "role_carrier_suppressed_v2_nominal"
    if eligibility.low_auxiliary:
        transfer = transfer_named_buckets_to_host_other(source, host, _ATTACHED_MAPPING, mention_by_id)
        return _with_operator_kinds(transfer, transfer_operators_to_host(source, host)), "role_carrier_suppressed"
    if eligibility.bounded_preposition:
        transfer = transfer_named_buckets_to_host_other(source, host, (("other", "attached_other"),), mention_by_id)
        return _with_operator_kinds(transfer, transfer_operators_to_host(source, host)), "role_carrier_suppressed"
    transfer = {
        "transferred_buckets": transfer_role_carrier_buckets_to_host(source, host, mention_by_id),
        "transferred_mention_ids": collect_role_bucket_mention_ids(
            source, ("actor", "theme", "attr", "topic", "location", "other")
        ),
    }
    return transfer, "role_carrier_suppressed"


def suppress_role_carrier_assertions(
    assertions: Sequence[Mapping[str, Any]],
    token_by_id: Mapping[str, Mapping[str, Any]],
    tokens_by_segment: Mapping[str, Sequence[Mapping[str, Any]]],
    mention_by_id: Mapping[str, Any],
) -> SuppressionResult:
    """Fold weak carrier assertions into the nearest lexical-verb host.

    Sources are visited in id order so the outcome does not depend on the
    order of ``assertions``.
    """

    out = [deep_clone_json(dict(a)) for a in assertions]
    clause_keys = {a["id"]: assertion_clause_window_key(a, tokens_by_segment) for a in out}
    suppressed = set()
    traces = []

    for source in sorted(out, key=lambda a: a["id"]):
        if source["id"] in suppressed:
            continue
        eligibility = evaluate_carrier_eligibility(source, token_by_id)
        if eligibility is None:
            continue
        segment_hosts = _host_candidates(source, out, token_by_id, suppressed)
        if not segment_hosts:
            continue
        if not eligibility.any_class or eligibility.blocked_by_ops:
            continue

        host_pool = [c for c in segment_hosts if clause_keys.get(c[1]) == clause_keys.get(source["id"])]
        if eligibility.containment_required:
            needed = eligibility.non_operator_token_ids
            host_pool = [c for c in host_pool if _contains_tokens(c[2], needed)]
            if not host_pool and eligibility.no_core_slots:
                host_pool = [c for c in segment_hosts if _contains_tokens(c[2], needed)]
        if not host_pool:
            continue

        chosen = host_pool[0]
        if eligibility.copula:
            shared = [c for c in host_pool if set(eligibility.actor_ids) & collect_assertion_mention_refs(c[2])]
            pool = shared or (host_pool if not eligibility.actor_ids else [])
            if not pool:
                continue
            chosen = pool[0]
        host = chosen[2]

        transfer, reason = _transfer_residue(eligibility, source, host, mention_by_id)
        has_transferred_mentions = bool(transfer["transferred_mention_ids"])
        has_operator_residue = any(b.startswith("operator:") for b in transfer["transferred_buckets"])
        host_refs = collect_assertion_mention_refs(host)
        source_residue = [
            i
            for i in collect_role_bucket_mention_ids(source, ("actor", "theme", "attr", "topic", "location", "other"))
            if i not in host_refs
        ]
        redundant = (
            (eligibility.copula or eligibility.nominal or eligibility.low_auxiliary)
            and not source_residue
            and not has_operator_residue
        )
        if not has_transferred_mentions and not has_operator_residue and not redundant:
            continue

        source_head = source["predicate"]["head_token_id"]
        host_head = host["predicate"]["head_token_id"]
        host.setdefault("evidence", {})
        host["evidence"]["token_ids"] = normalize_ids(
            _evidence_token_ids(host) + _evidence_token_ids(source) + [source_head, host_head]
        )
        token_ids = normalize_ids(_evidence_token_ids(source) + [source_head, host_head])
        traces.append(
            {
                "id": source["id"],
                "segment_id": source["segment_id"],
                "predicate": {"mention_id": source["predicate"]["mention_id"], "head_token_id": source_head},
                "diagnostics": {
                    "predicate_quality": _diagnostic(source, "predicate_quality"),
                    "suppressed_by": {
                        "kind": "predicate_redirect",
                        "target_assertion_id": host["id"],
                        "reason": reason,
                        "evidence": {"upstream_relation_ids": [], "token_ids": token_ids},
                    },
                },
                "suppressed_assertion_id": source["id"],
                "host_assertion_id": host["id"],
                "reason": reason,
                "predicate_class": eligibility.predicate_class,
                "transferred_buckets": transfer["transferred_buckets"],
                "transferred_mention_ids": transfer["transferred_mention_ids"],
                "evidence": {"token_ids": token_ids},
            }
        )
        suppressed.add(source["id"])

    traces.sort(key=lambda t: t["id"])
    logger.debug("Role-carrier suppression removed %d assertions", len(suppressed))
    return SuppressionResult([a for a in out if a["id"] not in suppressed], traces)


def _find_link_relation_ids(projected: Sequence[Mapping[str, Any]], from_id: str, to_id: str) -> List[str]:
    out = []
    for relation in projected:
        if str(relation.get("label") or "") not in CLAUSE_LINK_LABELS:
            continue
        pair = (relation.get("head_mention_id"), relation.get("dep_mention_id"))
        if pair not in ((from_id, to_id), (to_id, from_id)):
            continue
        if isinstance(relation.get("relation_id"), str) and relation["relation_id"]:
            out.append(relation["relation_id"])
    return normalize_ids(out)


def assertion_sort_key(token_by_id: Mapping[str, Mapping[str, Any]]):
    def key(assertion: Mapping[str, Any]):
        token = token_by_id[assertion["predicate"]["head_token_id"]]
        return (assertion["segment_id"], token["span"]["start"], assertion["id"])

    return key


def merge_modality_copula_assertions(
    assertions: Sequence[Mapping[str, Any]],
    projected: Sequence[Mapping[str, Any]],
    mention_by_id: Mapping[str, Any],
    token_by_id: Mapping[str, Mapping[str, Any]],
) -> SuppressionResult:
    """Move the modality of an empty modal/copula assertion onto its lexical verb.

    A target must be linked to the source by an explicit ``complement_clause``
    or ``xcomp`` relation; proximity alone never justifies a merge. Among
    linked targets the nearest by token distance wins.
    """

    out = [deep_clone_json(dict(a)) for a in assertions]
    suppressed = set()
    traces = []

    def head_token(assertion):
        mention = mention_by_id.get(assertion["predicate"]["mention_id"])
        return token_by_id.get(mention.head_token_id) if mention is not None else None

    def modality_ops(assertion):
        return [op for op in assertion.get("operators") or [] if op.get("kind") == "modality"]

    candidates = [
        a
        for a in out
        if _diagnostic(a, "predicate_quality") == "low"
        and is_low_quality_predicate_token(head_token(a))
        and modality_ops(a)
        and len(modality_ops(a)) == len(a.get("operators") or [])
        and role_buckets_are_semantically_empty(assertion_role_buckets(a))
    ]
    for source in sorted(candidates, key=lambda a: a["id"]):
        source_token = head_token(source)
        if source["id"] in suppressed or source_token is None:
            continue
        targets = []
        for target in out:
            if target["id"] == source["id"] or target["id"] in suppressed:
                continue
            if target["segment_id"] != source["segment_id"] or _diagnostic(target, "predicate_quality") == "low":
                continue
            target_token = head_token(target)
            if target_token is None or not is_lexical_verb_pos(pos_tag(target_token)):
                continue
            link_ids = _find_link_relation_ids(
                projected, source["predicate"]["mention_id"], target["predicate"]["mention_id"]
            )
            if not link_ids:
                continue
            distance = abs(target_token["i"] - source_token["i"])
            targets.append((distance, target_token["i"], target["id"], target, link_ids))
        if not targets:
            continue
        _, _, _, target, link_ids = min(targets, key=lambda t: t[:3])

        op_map: Dict[str, Dict[str, Any]] = {}
        for op in list(target.get("operators") or []) + modality_ops(source):
            merge_operator(op_map, op)
        target["operators"] = finalize_operators(op_map.values())

        token_ids = {source["predicate"]["head_token_id"], target["predicate"]["head_token_id"]}
        for op in modality_ops(source):
            for item in op.get("evidence") or []:
                if isinstance(item.get("to_token_id"), str):
                    token_ids.add(item["to_token_id"])
        suppressed.add(source["id"])
        traces.append(
            {
                "id": source["id"],
                "segment_id": source["segment_id"],
                "predicate": {
                    "mention_id": source["predicate"]["mention_id"],
                    "head_token_id": source["predicate"]["head_token_id"],
                },
                "diagnostics": {
                    "predicate_quality": _diagnostic(source, "predicate_quality") or "low",
                    "suppressed_by": {
                        "kind": "predicate_redirect",
                        "target_assertion_id": target["id"],
                        "reason": "modality_moved_to_lexical",
                        "evidence": {"upstream_relation_ids": link_ids, "token_ids": normalize_ids(token_ids)},
                    },
                },
            }
        )

    kept = sorted((a for a in out if a["id"] not in suppressed), key=assertion_sort_key(token_by_id))
    traces.sort(key=lambda t: t["id"])
    return SuppressionResult(kept, traces)


__all__ = [
    "CarrierEligibility",
    "SuppressionResult",
    "assertion_has_blocking_operators",
    "assertion_sort_key",
    "build_suppression_eligibility_trace",
    "evaluate_carrier_eligibility",
    "merge_modality_copula_assertions",
    "suppress_role_carrier_assertions",
]
