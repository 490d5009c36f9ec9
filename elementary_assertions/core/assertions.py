"""Assertion synthesis over projected mention relations.

:func:`build_assertions` runs the passes in a fixed order:

1. one assertion per projected head mention, with weak predicates upgraded to
   a linked lexical verb where the relations name one;
2. fallback assertions for verb tokens no relation anchored;
3. modality/copula merge and role-carrier suppression
   (:mod:`elementary_assertions.core.suppression`);
4. assertions for coordinated verbs whose peer already has one;
5. predicate class, structural fragment and suppression eligibility tags on
   the final set.
"""

from __future__ import annotations

import logging
import math
import re
import sys
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from ..config import HeuristicWindows
from .buckets import (
    apply_role_buckets,
    assertion_role_buckets,
    dedupe_other_mentions_against_core_buckets,
    empty_role_buckets,
    enforce_core_bucket_token_disjointness,
    prune_low_copula_buckets,
    role_buckets_are_semantically_empty,
    trim_catch_all_theme_buckets,
)
from .determinism import (
    canonical_json,
    canonicalize_operators_for_hash,
    dedupe_and_sort_evidence,
    evidence_sort_key,
    normalize_ids,
    sha256_hex,
)
from .mention_evidence import build_assertion_wiki_signals
from .mentions import MentionChoice, choose_best_mention_for_token, is_compare_label, is_quantifier_label, role_to_slot
from .operators import finalize_operators, merge_operator
from .predicates import (
    assertion_clause_window_key,
    choose_predicate_upgrade_candidate,
    classify_predicate_class,
    clause_window,
    is_copula_surface,
    is_lexical_verb_pos,
    is_make_sure_scaffold_predicate,
    is_noun_like_pos_tag,
    is_verb_pos_tag,
    lower,
    pos_tag,
    predicate_quality,
    tokens_by_segment,
)
from .projection import build_coordination_groups
from .suppression import (
    assertion_sort_key,
    build_suppression_eligibility_trace,
    merge_modality_copula_assertions,
    suppress_role_carrier_assertions,
)

logger = logging.getLogger(__name__)

SPATIAL_PREPOSITIONS = frozenset(
    {"in", "into", "on", "onto", "at", "to", "from", "inside", "within", "under", "over", "near"}
)
STRUCTURAL_ONLY_LABELS = frozenset({"coordination", "punctuation", "complement_clause"})
_ADJECTIVE_TAG = re.compile(r"^(JJ|JJR|JJS)$")


@dataclass
class AssertionBuild:
    assertions: List[Dict[str, Any]]
    covered_mentions: Set[str] = field(default_factory=set)
    suppressed_assertions: List[Dict[str, Any]] = field(default_factory=list)


def _evidence_item(relation: Mapping[str, Any]) -> Dict[str, str]:
    return {
        "annotation_id": relation.get("relation_id") or "r:unknown",
        "from_token_id": str(relation.get("head_token_id") or ""),
        "to_token_id": str(relation.get("dep_token_id") or ""),
        "label": str(relation.get("label") or ""),
    }


def _dedupe_relation_evidence(items: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    ordered = sorted(items, key=evidence_sort_key)
    seen = set()
    out = []
    for item in ordered:
        key = canonical_json(item)
        if key not in seen:
            seen.add(key)
            out.append(dict(item))
    return out


def assertion_id(segment_id: str, predicate_mention_id: str, role_payload: Mapping[str, Any], operators) -> str:
    """Content-addressed id over the canonical roles and operators."""

    roles_json = canonical_json({"arguments": role_payload["arguments"], "modifiers": role_payload["modifiers"]})
    ops_json = canonical_json(canonicalize_operators_for_hash(operators))
    digest = sha256_hex(f"{roles_json}|{ops_json}")[:12]
    return f"a:{segment_id}:{predicate_mention_id}:{digest}"


def fallback_coordination_group_id(pred_id: str, key: Optional[str]) -> str:
    """Group id for a coordination edge whose predicate is outside every component."""

    key = key or ""
    return "cg:" + sha256_hex(f"{pred_id}|{key}")[:12]


def _other_from_role_map(role_map: Mapping[str, Set[str]]) -> List[Dict[str, Any]]:
    return [{"role": role, "mention_ids": normalize_ids(ids)} for role, ids in sorted(role_map.items())]


class _AssertionBuilder:
    """Shared lookups and heuristics for one :func:`build_assertions` call."""

    def __init__(
        self,
        projected: Sequence[Mapping[str, Any]],
        mention_by_id: Mapping[str, Any],
        token_by_id: Mapping[str, Mapping[str, Any]],
        windows: HeuristicWindows,
    ) -> None:
        self.projected = projected
        self.mention_by_id = mention_by_id
        self.token_by_id = token_by_id
        self.windows = windows
        self.covered: Set[str] = set()
        self.coord_groups = build_coordination_groups(projected)
        self.by_segment = tokens_by_segment(token_by_id)

        self.token_mention_ids: Dict[str, List[str]] = {}
        self.primary_by_segment: Dict[str, List[Any]] = {}
        for mention in mention_by_id.values():
            for token_id in mention.token_ids:
                self.token_mention_ids.setdefault(token_id, []).append(mention.id)
            if mention.is_primary:
                self.primary_by_segment.setdefault(mention.segment_id, []).append(mention)
        for ids in self.token_mention_ids.values():
            ids.sort()
        for mentions in self.primary_by_segment.values():
            mentions.sort(key=lambda m: (m.span.start, m.span.end, m.id))

        self.projected_mention_ids: Set[str] = set()
        self.coord_evidence_by_mention: Dict[str, List[Dict[str, str]]] = {}
        self.coord_evidence_by_group: Dict[str, List[Dict[str, str]]] = {}
        for relation in projected:
            self.projected_mention_ids.update((relation["head_mention_id"], relation["dep_mention_id"]))
            if relation["label"] != "coordination":
                continue
            item = _evidence_item(relation)
            for mention_id in (relation["head_mention_id"], relation["dep_mention_id"]):
                self.coord_evidence_by_mention.setdefault(mention_id, []).append(item)
            group_id = self.coord_groups.get(relation["head_mention_id"]) or self.coord_groups.get(
                relation["dep_mention_id"]
            )
            if group_id:
                self.coord_evidence_by_group.setdefault(group_id, []).append(item)

    # -- mention helpers -------------------------------------------------

    def mention_start_i(self, mention: Any) -> int:
        indexes = [self.token_by_id[t]["i"] for t in mention.token_ids if t in self.token_by_id]
        return min(indexes) if indexes else sys.maxsize

    def _is_nominal_candidate(self, mention: Any) -> bool:
        return mention.kind == "mwe" or is_noun_like_pos_tag(pos_tag(self.token_by_id.get(mention.head_token_id)))

    def mention_overlaps(self, mention_id: Optional[str], token_ids: Set[str]) -> bool:
        if not mention_id or not token_ids:
            return False
        mention = self.mention_by_id.get(mention_id)
        return mention is not None and any(t in token_ids for t in mention.token_ids)

    def choose_mention_for_token(
        self,
        token_id: str,
        segment_id: str,
        exclude_mention_id: Optional[str] = None,
        exclude_token_ids: Optional[Set[str]] = None,
    ) -> MentionChoice:
        candidates = [
            i for i in self.token_mention_ids.get(token_id, []) if not self.mention_overlaps(i, exclude_token_ids or set())
        ]
        return choose_best_mention_for_token(
            token_id, segment_id, self.mention_by_id, candidates, exclude_mention_id
        )

    def choose_theme_mention(self, pred_token: Mapping[str, Any], existing_ids: Iterable[str]) -> Optional[Any]:
        """Nearest small noun-like primary mention starting after the predicate."""

        used = set(existing_ids or [])
        span = pred_token["span"]
        own_token_mention_id = f"m:{pred_token['segment_id']}:{span['start']}-{span['end']}:token"
        candidates = []
        for mention in self.primary_by_segment.get(pred_token["segment_id"], []):
            if mention.id in used or mention.id == own_token_mention_id:
                continue
            if mention.span.start < span["end"]:
                continue
            start_i = self.mention_start_i(mention)
            if start_i - pred_token["i"] > self.windows.theme:
                continue
            if self._is_nominal_candidate(mention):
                candidates.append(
                    (len(mention.token_ids), abs(start_i - pred_token["i"]), mention.span.start, mention.id, mention)
                )
        return min(candidates, key=lambda c: c[:4])[4] if candidates else None

    def choose_location_mention(self, pred_token: Mapping[str, Any], existing_ids: Iterable[str]) -> Optional[Any]:
        """Noun-like mention shortly after a spatial preposition following the predicate."""

        segment_tokens = self.by_segment.get(pred_token["segment_id"], [])
        idx = next((n for n, t in enumerate(segment_tokens) if t["id"] == pred_token["id"]), -1)
        if idx < 0:
            return None
        used = set(existing_ids or [])
        for token in segment_tokens[idx + 1 : idx + self.windows.location_preposition]:
            if pos_tag(token) != "IN" or lower(token.get("surface")) not in SPATIAL_PREPOSITIONS:
                continue
            candidates = []
            for mention in self.primary_by_segment.get(pred_token["segment_id"], []):
                if mention.id in used:
                    continue
                offset = self.mention_start_i(mention) - token["i"]
                if offset <= 0 or offset > self.windows.location_noun:
                    continue
                if self._is_nominal_candidate(mention):
                    candidates.append((len(mention.token_ids), offset, mention.id, mention))
            if candidates:
                return min(candidates, key=lambda c: c[:3])[3]
        return None

    def post_process_buckets(
        self, predicate_mention_id: str, buckets: Mapping[str, Any], quality: Optional[str]
    ) -> Dict[str, Any]:
        """Run the disjointness, copula pruning and theme trimming passes."""

        working: Dict[str, Any] = {"predicate": {"mention_id": predicate_mention_id}}
        if quality is not None:
            working["diagnostics"] = {"predicate_quality": quality}
        apply_role_buckets(working, buckets, self.mention_by_id)
        enforce_core_bucket_token_disjointness(working, self.mention_by_id, self.token_by_id)
        if quality is not None:
            prune_low_copula_buckets(working, self.mention_by_id, self.token_by_id, self.by_segment)
        trim_catch_all_theme_buckets(
            working,
            self.mention_by_id,
            self.token_by_id,
            self.by_segment,
            self.windows.oversized_theme_tokens,
        )
        return assertion_role_buckets(working)

    def is_make_sure_scaffold(self, token: Mapping[str, Any]) -> bool:
        return is_make_sure_scaffold_predicate(
            token, self.projected, self.by_segment, self.windows.make_sure_lookahead
        )

    # -- passes ------------------------------------------------------------

    def predicate_assertions(self) -> tuple:
        """One assertion per projected head mention, plus upgrade traces."""

        by_predicate: Dict[str, List[Mapping[str, Any]]] = {}
        for relation in self.projected:
            by_predicate.setdefault(relation["head_mention_id"], []).append(relation)

        def predicate_order(mention_id: str):
            mention = self.mention_by_id[mention_id]
            return (mention.segment_id, mention.span.start, mention_id)

        assertions: List[Dict[str, Any]] = []
        traces: List[Dict[str, Any]] = []
        for pred_id in sorted(by_predicate, key=predicate_order):
            original = self.mention_by_id.get(pred_id)
            if original is None:
                continue
            relations = sorted(
                by_predicate[pred_id],
                key=lambda r: (self.token_by_id[r["dep_token_id"]]["span"]["start"], r["label"], r["relation_id"]),
            )
            built = self._predicate_assertion(original, relations)
            if built is None:
                continue
            assertion, trace = built
            assertions.append(assertion)
            if trace is not None:
                traces.append(trace)
        return assertions, traces

    def _predicate_assertion(self, original: Any, relations: List[Mapping[str, Any]]):
        original_token = self.token_by_id.get(original.head_token_id)
        original_class = classify_predicate_class(original_token)
        effective = original
        upgrade = None
        if predicate_quality(original_token) == "low" or original_class in ("preposition", "nominal_head"):
            candidate = choose_predicate_upgrade_candidate(original.head_token_id, relations, self.token_by_id)
            if candidate is not None:
                mention_id = self.choose_mention_for_token(candidate["token_id"], original.segment_id).mention_id
                if mention_id and mention_id in self.mention_by_id:
                    effective = self.mention_by_id[mention_id]
                    upgrade = candidate
        if original_class == "preposition" and upgrade is None:
            return None
        if original_token is not None and self.is_make_sure_scaffold(original_token):
            self.covered.add(original.id)
            return None

        pred_id = effective.id
        pred_token = self.token_by_id.get(effective.head_token_id)
        pred_tag = pos_tag(pred_token)
        predicate_token_ids = set(effective.token_ids) if is_verb_pos_tag(pred_tag) else set()
        strict_theme_clause = pred_tag == "VBN"
        clause_bounds = (-math.inf, math.inf)
        segment_tokens = self.by_segment.get(effective.segment_id, [])
        window = clause_window(effective.head_token_id, segment_tokens)
        if window is not None:
            clause_bounds = (segment_tokens[window[0]]["i"], segment_tokens[window[1]]["i"])

        def inside_clause(mention_id: str) -> bool:
            mention = self.mention_by_id.get(mention_id)
            if mention is None:
                return True
            return all(
                clause_bounds[0] <= self.token_by_id[t]["i"] <= clause_bounds[1]
                for t in mention.token_ids
                if t in self.token_by_id
            )

        buckets = empty_role_buckets()
        other_roles: Dict[str, Set[str]] = {}
        op_map: Dict[str, Dict[str, Any]] = {}
        evidence_items = []
        evidence_token_ids = set(effective.token_ids)
        projection_choice = None

        for relation in relations:
            item = _evidence_item(relation)
            evidence_items.append(item)
            evidence_token_ids.add(relation["dep_token_id"])
            pick = self.choose_mention_for_token(
                relation["dep_token_id"], effective.segment_id, pred_id, predicate_token_ids
            )
            dep_id = pick.mention_id or relation.get("dep_mention_id")
            if self.mention_overlaps(dep_id, predicate_token_ids):
                dep_id = None
            dep_mention = self.mention_by_id.get(dep_id) if dep_id else None
            if dep_mention is not None:
                evidence_token_ids.update(dep_mention.token_ids)

            label = relation["label"]
            operator = self._relation_operator(relation, item, pred_id, dep_id)
            if operator is not None:
                merge_operator(op_map, operator)
                if dep_id:
                    self.covered.add(dep_id)
                continue
            rel_evidence = relation.get("evidence") or {}
            if label == "complement_clause" or rel_evidence.get("pattern") == "control_inherit_subject":
                merge_operator(op_map, {"kind": "control_inherit_subject", "evidence": [item]})
            if label == "purpose" or rel_evidence.get("pattern") == "control_propagation":
                merge_operator(op_map, {"kind": "control_propagation", "evidence": [item]})

            if (
                projection_choice is None
                and dep_id
                and pick.candidate_count >= 2
                and not pick.chosen_was_first
            ):
                projection_choice = {"candidate_count": pick.candidate_count, "chosen_mention_id": dep_id}
            if not dep_id:
                continue
            slot, other_role = role_to_slot(label)
            if slot == "theme" and strict_theme_clause and not inside_clause(dep_id):
                continue
            if slot == "other":
                other_roles.setdefault(other_role or label, set()).add(dep_id)
            else:
                buckets[slot].append(dep_id)
            self.covered.add(dep_id)

        if pred_id in self.coord_groups:
            merge_operator(
                op_map,
                {
                    "kind": "coordination_group",
                    "group_id": self.coord_groups[pred_id],
                    "evidence": self.coord_evidence_by_mention.get(pred_id, []),
                },
            )

        for slot in ("actor", "theme", "attr", "topic", "location"):
            buckets[slot] = normalize_ids(buckets[slot])
        buckets["other"] = _other_from_role_map(other_roles)
        self._copula_attribute_fallback(buckets, effective, pred_token, predicate_token_ids)
        self._verb_slot_fallback(buckets, pred_token)

        buckets = self.post_process_buckets(pred_id, buckets, predicate_quality(pred_token))
        operators = finalize_operators(op_map.values())
        relation_evidence = _dedupe_relation_evidence(evidence_items)
        if not relation_evidence:
            return None
        if self._is_scaffold(effective, pred_tag, original_class, buckets, operators):
            return None

        role_payload = {"arguments": [], "modifiers": []}
        apply_role_buckets(role_payload, buckets, self.mention_by_id)
        new_id = assertion_id(effective.segment_id, pred_id, role_payload, operators)

        trace = None
        if upgrade is not None:
            trace = {
                "id": assertion_id(original.segment_id, original.id, role_payload, operators),
                "segment_id": original.segment_id,
                "predicate": {"mention_id": original.id, "head_token_id": original.head_token_id},
                "diagnostics": {
                    "predicate_quality": predicate_quality(original_token),
                    "suppressed_by": {
                        "kind": "predicate_redirect",
                        "target_assertion_id": new_id,
                        "reason": "predicate_upgraded_to_lexical",
                        "evidence": {
                            "upstream_relation_ids": normalize_ids(upgrade["upstream_relation_ids"]),
                            "token_ids": normalize_ids([original.head_token_id, effective.head_token_id]),
                        },
                    },
                },
            }

        evidence: Dict[str, Any] = {
            "relation_evidence": relation_evidence,
            "token_ids": normalize_ids(evidence_token_ids),
        }
        wiki_signals = build_assertion_wiki_signals(pred_id, relations, self.mention_by_id)
        if wiki_signals is not None:
            evidence["wiki_signals"] = wiki_signals
        diagnostics: Dict[str, Any] = {"predicate_quality": predicate_quality(pred_token)}
        if projection_choice is not None:
            diagnostics["slot_projection_choice"] = projection_choice
        self.covered.add(pred_id)
        assertion = {
            "id": new_id,
            "segment_id": effective.segment_id,
            "predicate": {"mention_id": pred_id, "head_token_id": effective.head_token_id},
            "arguments": role_payload["arguments"],
            "modifiers": role_payload["modifiers"],
            "operators": operators,
            "evidence": evidence,
            "diagnostics": diagnostics,
        }
        return assertion, trace

    def _relation_operator(
        self, relation: Mapping[str, Any], item: Dict[str, str], pred_id: str, dep_id: Optional[str]
    ) -> Optional[Dict[str, Any]]:
        """Operator for an operator-only label, or ``None`` for role labels."""

        label = relation["label"]
        dep_token = self.token_by_id.get(relation["dep_token_id"])
        if label == "modality":
            return {"kind": "modality", "value": dep_token["surface"] if dep_token else "", "evidence": [item]}
        if label == "negation":
            return {"kind": "negation", "token_id": relation["dep_token_id"], "evidence": [item]}
        if label == "coordination":
            group_id = self.coord_groups.get(pred_id) or fallback_coordination_group_id(pred_id, dep_id)
            rel_evidence = relation.get("evidence") or {}
            coord_type = (
                rel_evidence.get("coord_type")
                or rel_evidence.get("coordination_type")
                or rel_evidence.get("coordinator_type")
            )
            return {
                "kind": "coordination_group",
                "group_id": group_id,
                "value": coord_type.lower() if isinstance(coord_type, str) and coord_type else None,
                "evidence": [item],
            }
        if is_compare_label(label):
            return {"kind": label, "token_id": relation["dep_token_id"], "evidence": [item]}
        if is_quantifier_label(label):
            surface = dep_token.get("surface") if dep_token else None
            return {
                "kind": "quantifier",
                "token_id": relation["dep_token_id"],
                "value": surface.lower() if isinstance(surface, str) else "",
                "evidence": [item],
            }
        return None

    def _copula_attribute_fallback(self, buckets, effective, pred_token, predicate_token_ids) -> None:
        if buckets["attr"] or buckets["theme"] or pred_token is None:
            return
        if not is_copula_surface(pred_token.get("surface")):
            return
        segment_tokens = self.by_segment.get(pred_token["segment_id"], [])
        idx = next((n for n, t in enumerate(segment_tokens) if t["id"] == pred_token["id"]), -1)
        if idx < 0:
            return
        lookahead = segment_tokens[idx + 1 : idx + 1 + self.windows.copula_attribute]
        adjective = next((t for t in lookahead if _ADJECTIVE_TAG.match(pos_tag(t))), None)
        if adjective is None:
            return
        mention_id = self.choose_mention_for_token(
            adjective["id"], effective.segment_id, effective.id, predicate_token_ids
        ).mention_id
        if mention_id:
            buckets["attr"].append(mention_id)
            self.covered.add(mention_id)

    def _verb_slot_fallback(self, buckets, pred_token) -> None:
        if pred_token is None or not is_verb_pos_tag(pos_tag(pred_token)):
            return
        if is_copula_surface(pred_token.get("surface")):
            return
        if not buckets["theme"]:
            theme = self.choose_theme_mention(
                pred_token, buckets["actor"] + buckets["attr"] + buckets["topic"] + buckets["location"]
            )
            if theme is not None and theme.id in self.projected_mention_ids:
                buckets["theme"] = normalize_ids(buckets["theme"] + [theme.id])
                self.covered.add(theme.id)
        if not buckets["location"]:
            location = self.choose_location_mention(
                pred_token, buckets["actor"] + buckets["theme"] + buckets["attr"] + buckets["topic"]
            )
            if location is not None and location.id in self.projected_mention_ids:
                buckets["location"] = normalize_ids(buckets["location"] + [location.id])
                self.covered.add(location.id)

    @staticmethod
    def _is_scaffold(effective, pred_tag: str, original_class: str, buckets, operators) -> bool:
        """Reject gerund, coordination-only and nominal-fragment scaffolding."""

        core_empty = not any(buckets[s] for s in ("actor", "attr", "topic", "location"))
        only_theme = core_empty and not buckets["other"] and bool(buckets["theme"])
        if effective.kind == "token" and pred_tag == "VBG" and only_theme and not operators:
            return True
        empty = role_buckets_are_semantically_empty(buckets)
        if (
            not is_verb_pos_tag(pred_tag)
            and empty
            and operators
            and all(op["kind"] == "coordination_group" for op in operators)
        ):
            return True
        if original_class == "nominal_head" and not is_verb_pos_tag(pred_tag) and not operators:
            modifier_only = (
                core_empty
                and not buckets["theme"]
                and bool(buckets["other"])
                and all(entry["role"] == "modifier" for entry in buckets["other"])
            )
            return only_theme or empty or modifier_only
        return False

    def fallback_assertions(self, asserted_mention_ids: Set[str]) -> List[Dict[str, Any]]:
        """Minimal assertions for verb tokens that head no projected relation."""

        pending = sorted(
            (
                m
                for m in self.mention_by_id.values()
                if m.is_primary and m.kind == "token" and m.id not in asserted_mention_ids
            ),
            key=lambda m: (m.segment_id, m.span.start, m.id),
        )
        out = []
        for pred_mention in pending:
            pred_token = self.token_by_id.get(pred_mention.head_token_id)
            if pred_token is None:
                continue
            tag = pos_tag(pred_token)
            surface = lower(pred_token.get("surface"))
            if (not is_verb_pos_tag(tag) and surface != "complete") or is_copula_surface(surface):
                continue
            if tag == "VBG":
                continue
            if self.is_make_sure_scaffold(pred_token):
                self.covered.add(pred_mention.id)
                continue

            buckets = empty_role_buckets()
            theme = self.choose_theme_mention(pred_token, [])
            if theme is not None:
                buckets["theme"] = [theme.id]
            location = self.choose_location_mention(pred_token, buckets["theme"])
            if location is not None:
                buckets["location"] = [location.id]
            supported = any(i in self.projected_mention_ids for i in buckets["theme"] + buckets["location"])
            touches_graph = any(
                r["head_token_id"] == pred_token["id"] or r["dep_token_id"] == pred_token["id"]
                for r in self.projected
            )
            if not supported and not touches_graph:
                continue

            op_map: Dict[str, Dict[str, Any]] = {}
            group_id = next((self.coord_groups[i] for i in buckets["theme"] if i in self.coord_groups), None)
            if group_id:
                merge_operator(
                    op_map,
                    {
                        "kind": "coordination_group",
                        "group_id": group_id,
                        "evidence": self.coord_evidence_by_group.get(group_id, []),
                    },
                )
            operators = finalize_operators(op_map.values())

            evidence_token_ids = set(pred_mention.token_ids)
            for mention_id in buckets["theme"] + buckets["location"]:
                mention = self.mention_by_id.get(mention_id)
                if mention is None:
                    continue
                evidence_token_ids.update(mention.token_ids)
                self.covered.add(mention_id)

            target_id = next((buckets[s][0] for s in ("theme", "location", "actor", "attr", "topic") if buckets[s]), None)
            target = self.mention_by_id.get(target_id) if target_id else None
            role_payload = {"arguments": [], "modifiers": []}
            apply_role_buckets(role_payload, buckets, self.mention_by_id)
            evidence: Dict[str, Any] = {
                "relation_evidence": [
                    {
                        "annotation_id": f"synthetic:fallback:{pred_mention.head_token_id}",
                        "from_token_id": pred_mention.head_token_id,
                        "to_token_id": target.token_ids[0] if target is not None and target.token_ids else pred_mention.head_token_id,
                        "label": "synthetic_support",
                    }
                ],
                "token_ids": normalize_ids(evidence_token_ids),
            }
            wiki_signals = build_assertion_wiki_signals(pred_mention.id, [], self.mention_by_id)
            if wiki_signals is not None:
                evidence["wiki_signals"] = wiki_signals
            out.append(
                {
                    "id": assertion_id(pred_mention.segment_id, pred_mention.id, role_payload, operators),
                    "segment_id": pred_mention.segment_id,
                    "predicate": {"mention_id": pred_mention.id, "head_token_id": pred_mention.head_token_id},
                    "arguments": role_payload["arguments"],
                    "modifiers": role_payload["modifiers"],
                    "operators": operators,
                    "evidence": evidence,
                    "diagnostics": {"predicate_quality": predicate_quality(pred_token)},
                }
            )
            self.covered.add(pred_mention.id)
        return out

    def coordination_peer_assertions(self, assertions: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Assertions for coordinated verbs whose coordination peer is asserted."""

        asserted_heads = {a["predicate"]["head_token_id"] for a in assertions if a["predicate"].get("head_token_id")}
        asserted_mentions = {a["predicate"]["mention_id"] for a in assertions}
        refs_by_token: Dict[str, List[Mapping[str, Any]]] = {}
        coord_refs_by_token: Dict[str, List[Mapping[str, Any]]] = {}
        for relation in self.projected:
            for token_id in (relation.get("head_token_id"), relation.get("dep_token_id")):
                if not token_id:
                    continue
                refs_by_token.setdefault(token_id, []).append(relation)
                if relation.get("label") == "coordination":
                    coord_refs_by_token.setdefault(token_id, []).append(relation)

        verb_tokens = sorted(
            (
                self.token_by_id[t]
                for t in refs_by_token
                if t in self.token_by_id
                and (
                    is_lexical_verb_pos(pos_tag(self.token_by_id[t]))
                    or str((self.token_by_id[t].get("pos") or {}).get("coarse") or "").upper() == "VERB"
                )
            ),
            key=lambda t: (t["segment_id"], t["i"], t["id"]),
        )

        added = []
        for token in verb_tokens:
            token_id = token["id"]
            if token_id in asserted_heads:
                continue
            semantic_refs = [r for r in refs_by_token[token_id] if r.get("label") not in STRUCTURAL_ONLY_LABELS]
            coord_refs = coord_refs_by_token.get(token_id, [])
            if not semantic_refs or not coord_refs:
                continue
            if not any(
                (r["dep_token_id"] if r["head_token_id"] == token_id else r["head_token_id"]) in asserted_heads
                for r in coord_refs
            ):
                continue
            pred_id = choose_best_mention_for_token(
                token_id, token["segment_id"], self.mention_by_id, self.token_mention_ids.get(token_id, [])
            ).mention_id
            pred_mention = self.mention_by_id.get(pred_id) if pred_id else None
            if pred_mention is None:
                continue
            if pred_id in asserted_mentions:
                asserted_heads.add(token_id)
                continue
            assertion = self._coordination_peer_assertion(token, pred_mention, semantic_refs, coord_refs)
            if assertion is None:
                continue
            added.append(assertion)
            asserted_heads.add(token_id)
            asserted_mentions.add(pred_id)
            self.covered.add(pred_id)
        return added

    def _coordination_peer_assertion(self, token, pred_mention, semantic_refs, coord_refs):
        pred_id = pred_mention.id
        pred_token_ids = set(pred_mention.token_ids)
        buckets = empty_role_buckets()
        other_roles: Dict[str, Set[str]] = {}
        evidence_token_ids = {token["id"]}
        evidence_items = []
        for relation in semantic_refs:
            item = _evidence_item(relation)
            evidence_items.append(item)
            evidence_token_ids.update(t for t in (item["from_token_id"], item["to_token_id"]) if t)
            if item["from_token_id"] != token["id"]:
                continue
            pick = choose_best_mention_for_token(
                item["to_token_id"],
                token["segment_id"],
                self.mention_by_id,
                self.token_mention_ids.get(item["to_token_id"], []),
                pred_id,
            )
            dep_id = pick.mention_id or relation.get("dep_mention_id")
            if self.mention_overlaps(dep_id, pred_token_ids):
                dep_id = None
            if not dep_id or dep_id == pred_id:
                continue
            slot, other_role = role_to_slot(relation["label"])
            if slot == "other":
                other_roles.setdefault(other_role or relation["label"], set()).add(dep_id)
            else:
                buckets[slot].append(dep_id)
            self.covered.add(dep_id)

        op_map: Dict[str, Dict[str, Any]] = {}
        for relation in coord_refs:
            item = _evidence_item(relation)
            fallback_key = relation.get("relation_id") or item["from_token_id"]
            merge_operator(
                op_map,
                {
                    "kind": "coordination_group",
                    "group_id": self.coord_groups.get(pred_id) or fallback_coordination_group_id(pred_id, fallback_key),
                    "evidence": [item],
                },
            )

        for slot in ("actor", "theme", "attr", "topic", "location"):
            buckets[slot] = normalize_ids(buckets[slot])
        buckets["other"] = _other_from_role_map(other_roles)
        buckets = self.post_process_buckets(pred_id, buckets, None)
        operators = finalize_operators(op_map.values())
        relation_evidence = _dedupe_relation_evidence(evidence_items)
        if not relation_evidence:
            return None
        role_payload = {"arguments": [], "modifiers": []}
        apply_role_buckets(role_payload, buckets, self.mention_by_id)
        return {
            "id": assertion_id(pred_mention.segment_id, pred_id, role_payload, operators),
            "segment_id": pred_mention.segment_id,
            "predicate": {"mention_id": pred_id, "head_token_id": pred_mention.head_token_id},
            "arguments": role_payload["arguments"],
            "modifiers": role_payload["modifiers"],
            "operators": operators,
            "evidence": {"relation_evidence": relation_evidence, "token_ids": normalize_ids(evidence_token_ids)},
            "diagnostics": {"predicate_quality": predicate_quality(token)},
        }

    def tag_final_assertions(self, assertions: List[Dict[str, Any]]) -> None:
        """Set predicate class, structural fragment flag and eligibility traces."""

        lexical_segments = set()
        for assertion in assertions:
            cls = classify_predicate_class(self.token_by_id.get(assertion["predicate"]["head_token_id"]))
            assertion.setdefault("diagnostics", {})["predicate_class"] = cls
            if cls == "lexical_verb":
                lexical_segments.add(assertion["segment_id"])
        for assertion in assertions:
            diagnostics = assertion["diagnostics"]
            diagnostics["structural_fragment"] = (
                diagnostics["predicate_class"] in ("preposition", "nominal_head")
                and assertion["segment_id"] in lexical_segments
            )
        clause_keys = {a["id"]: assertion_clause_window_key(a, self.by_segment) for a in assertions}
        for assertion in assertions:
            diagnostics = assertion["diagnostics"]
            if diagnostics["structural_fragment"] is not True:
                continue
            if diagnostics["predicate_class"] not in ("preposition", "nominal_head", "auxiliary"):
                continue
            trace = build_suppression_eligibility_trace(assertion, assertions, self.token_by_id, clause_keys)
            if trace is not None:
                diagnostics["suppression_eligibility"] = trace


def _unique_by_id(assertions: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    by_id: Dict[str, Dict[str, Any]] = {}
    for assertion in assertions:
        by_id.setdefault(assertion["id"], assertion)
    return list(by_id.values())


def build_assertions(
    projected: Sequence[Mapping[str, Any]],
    mention_by_id: Mapping[str, Any],
    token_by_id: Mapping[str, Mapping[str, Any]],
    windows: Optional[HeuristicWindows] = None,
) -> AssertionBuild:
    """Derive the final assertions, covered mentions and suppression traces."""

    builder = _AssertionBuilder(projected, mention_by_id, token_by_id, windows or HeuristicWindows())
    sort_key = assertion_sort_key(token_by_id)

    assertions, upgrade_traces = builder.predicate_assertions()
    assertions.extend(builder.fallback_assertions({a["predicate"]["mention_id"] for a in assertions}))
    assertions = _unique_by_id(assertions)
    for assertion in assertions:
        token = token_by_id.get(assertion["predicate"]["head_token_id"])
        assertion["diagnostics"]["predicate_class"] = classify_predicate_class(token)
    assertions.sort(key=sort_key)

    merged = merge_modality_copula_assertions(assertions, projected, mention_by_id, token_by_id)
    for trace in merged.traces:
        builder.covered.discard(trace["predicate"]["mention_id"])
    carriers = suppress_role_carrier_assertions(merged.assertions, token_by_id, builder.by_segment, mention_by_id)

    final = list(carriers.assertions)
    for assertion in final:
        dedupe_other_mentions_against_core_buckets(assertion, mention_by_id)
    final = _unique_by_id(final + builder.coordination_peer_assertions(final))
    builder.tag_final_assertions(final)
    final.sort(key=sort_key)

    suppressed = sorted(_unique_by_id(upgrade_traces + merged.traces + carriers.traces), key=lambda t: t["id"])
    logger.debug(
        "Built %d assertions (%d suppressed, %d covered mentions)",
        len(final),
        len(suppressed),
        len(builder.covered),
    )
    return AssertionBuild(final, builder.covered, suppressed)


__all__ = [
    "AssertionBuild",
    "SPATIAL_PREPOSITIONS",
    "assertion_id",
    "build_assertions",
    "fallback_coordination_group_id",
]
