"""Assembly of the final elementary assertions document."""

from __future__ import annotations

import re
import unicodedata
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..errors import InputContractError
from .determinism import deep_clone_json, normalize_ids
from .mentions import normalize_wiki_surface
from .projection import ProjectionBuild
from .tokens import get_token_metadata_projection, get_token_wikipedia_evidence

STAGE = "elementary_assertions"
INDEX_BASIS = {"text_field": "canonical_text", "span_unit": "utf16_code_units"}
WIKI_NORMALIZATION = {
    "unicode_form": "NFKC",
    "punctuation_map": {"apostrophes": "['\\u2018\\u2019\\u02bc]->'", "dashes": "[\\u2010-\\u2015]->-"},
    "whitespace": "collapse_spaces_trim",
    "casefold": "toLowerCase",
}
LEGACY_SLOTS_MESSAGE = "Invalid input: legacy assertions[*].slots is not supported."

_CONTENT_POS_TAG = re.compile(r"^(NN|NNS|NNP|NNPS|VB|VBD|VBG|VBN|VBP|VBZ|JJ|JJR|JJS|RB|RBR|RBS|CD|PRP|PRP\$|FW|UH)$")


def utf16_slice(text: str, start: int, end: int) -> str:
    """Slice ``text`` by UTF-16 code unit offsets."""

    encoded = str(text or "").encode("utf-16-le")
    return encoded[start * 2 : end * 2].decode("utf-16-le", errors="replace")


def mention_surface_text(mention: Any, token_by_id: Mapping[str, Mapping[str, Any]], canonical_text: str) -> str:
    if mention is None:
        return ""
    if mention.span is not None:
        return utf16_slice(canonical_text, mention.span.start, mention.span.end)
    tokens = sorted(
        (token_by_id[t] for t in mention.token_ids if t in token_by_id),
        key=lambda t: t["i"],
    )
    return " ".join(str(t.get("surface") or "") for t in tokens)


def _merge_titles(target: List[str], seen: set, titles: Any) -> None:
    for title in titles if isinstance(titles, list) else []:
        if isinstance(title, str) and title not in seen:
            seen.add(title)
            target.append(title)


def build_wiki_title_evidence_from_upstream(
    mentions: Sequence[Any],
    assertions: Sequence[Mapping[str, Any]],
    token_by_id: Mapping[str, Mapping[str, Any]],
    canonical_text: str,
) -> Dict[str, Any]:
    """Aggregate exact and prefix title matches per mention and per predicate.

    The block is informational only and is computed after every assertion is
    final.
    """

    mention_by_id = {m.id: m for m in mentions}
    targets = normalize_ids(
        [m.id for m in mentions if m.is_primary]
        + [(a.get("predicate") or {}).get("mention_id") for a in assertions]
    )

    by_mention = []
    for mention_id in targets:
        mention = mention_by_id.get(mention_id)
        if mention is None:
            continue
        exact: List[str] = []
        prefix: List[str] = []
        exact_seen: set = set()
        prefix_seen: set = set()
        lexicon = mention.lexicon_evidence or {}
        sources = []
        if isinstance(lexicon.get("mwe"), Mapping):
            sources.append(lexicon["mwe"])
        for entry in lexicon.get("tokens") or []:
            if isinstance(entry, Mapping) and isinstance(entry.get("evidence"), Mapping):
                sources.append(entry["evidence"])
        for evidence in sources:
            _merge_titles(exact, exact_seen, evidence.get("exact_titles"))
            _merge_titles(prefix, prefix_seen, evidence.get("prefix_titles"))
        by_mention.append(
            {
                "mention_id": mention_id,
                "normalized_surface": normalize_wiki_surface(mention_surface_text(mention, token_by_id, canonical_text)),
                "exact_titles": exact,
                "prefix_titles": prefix,
            }
        )

    matches = {m["mention_id"]: m for m in by_mention}
    by_assertion = []
    for assertion in assertions:
        predicate_mention_id = (assertion.get("predicate") or {}).get("mention_id")
        match = matches.get(predicate_mention_id)
        if match is None or not isinstance(assertion.get("id"), str):
            continue
        by_assertion.append(
            {
                "assertion_id": assertion["id"],
                "predicate_mention_id": predicate_mention_id,
                "exact_titles": list(match["exact_titles"]),
                "prefix_titles": list(match["prefix_titles"]),
            }
        )
    by_assertion.sort(key=lambda a: a["assertion_id"])

    return {
        "normalization": deep_clone_json(WIKI_NORMALIZATION),
        "mention_matches": by_mention,
        "assertion_predicate_matches": by_assertion,
    }


def is_content_pos_tag(tag: Any) -> bool:
    return isinstance(tag, str) and bool(_CONTENT_POS_TAG.match(tag))


def is_punctuation_surface(surface: Any) -> bool:
    if not isinstance(surface, str) or not surface:
        return False
    return all(unicodedata.category(ch)[0] in ("P", "S") for ch in surface)


def build_coverage_domain_mention_ids(
    mentions: Iterable[Any], token_by_id: Mapping[str, Mapping[str, Any]]
) -> List[str]:
    """Primary mentions whose head token is content-bearing."""

    ids = []
    for mention in mentions:
        if not mention.is_primary:
            continue
        head = token_by_id.get(mention.head_token_id)
        if head is None:
            continue
        tag = (head.get("pos") or {}).get("tag")
        if not is_content_pos_tag(tag) or is_punctuation_surface(head.get("surface")):
            continue
        ids.append(mention.id)
    return normalize_ids(ids)


def _project_segment(segment: Mapping[str, Any]) -> Dict[str, Any]:
    token_range = segment.get("token_range") if isinstance(segment.get("token_range"), Mapping) else {}
    return {
        "id": segment["id"],
        "span": {"start": segment["span"]["start"], "end": segment["span"]["end"]},
        "token_range": {
            "start": token_range.get("start") if isinstance(token_range.get("start"), int) else 0,
            "end": token_range.get("end") if isinstance(token_range.get("end"), int) else 0,
        },
    }


def _project_token(token: Mapping[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": token["id"],
        "i": token["i"],
        "segment_id": token["segment_id"],
        "span": {"start": token["span"]["start"], "end": token["span"]["end"]},
        "surface": token.get("surface"),
    }
    pos = token.get("pos") if isinstance(token.get("pos"), Mapping) else {}
    if isinstance(pos.get("tag"), str):
        out["pos"] = {"tag": pos["tag"]}
        if isinstance(pos.get("coarse"), str):
            out["pos"]["coarse"] = pos["coarse"]
    out.update(get_token_metadata_projection(token))
    wiki = get_token_wikipedia_evidence(token)
    if wiki is not None:
        out["lexicon"] = {"wikipedia_title_index": wiki}
    return out


def _project_relation(relation: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        key: relation.get(key)
        for key in (
            "relation_id",
            "label",
            "segment_id",
            "head_token_id",
            "dep_token_id",
            "head_mention_id",
            "dep_mention_id",
        )
    }


def build_output(
    relations_seed: Mapping[str, Any],
    mentions: Sequence[Any],
    assertions: Sequence[Dict[str, Any]],
    covered_mentions: Iterable[str],
    unresolved: List[Dict[str, Any]],
    source_inputs: List[Dict[str, Any]],
    pipeline_trace: Dict[str, Any],
    accepted_annotations: List[Dict[str, Any]],
    diagnostics: Dict[str, Any],
    projection: ProjectionBuild,
    wiki_title_evidence: Dict[str, Any],
    schema_version: Optional[str] = None,
) -> Dict[str, Any]:
    token_by_id = {t["id"]: t for t in relations_seed.get("tokens") or []}
    covered_set = set(covered_mentions or ())
    primary = build_coverage_domain_mention_ids(mentions, token_by_id)
    domain = set(primary)

    out: Dict[str, Any] = {}
    if "seed_id" in relations_seed:
        out["seed_id"] = relations_seed["seed_id"]
    out.update(
        {
            "stage": STAGE,
            "index_basis": dict(INDEX_BASIS),
            "canonical_text": relations_seed.get("canonical_text"),
            "segments": [_project_segment(s) for s in relations_seed.get("segments") or []],
            "tokens": [_project_token(t) for t in relations_seed.get("tokens") or []],
            "mentions": [m.to_dict() for m in mentions],
            "assertions": list(assertions),
            "relation_projection": {
                "all_relations": list(projection.all),
                "projected_relations": [_project_relation(r) for r in projection.projected],
                "dropped_relations": list(projection.dropped),
            },
            "accepted_annotations": accepted_annotations,
            "wiki_title_evidence": wiki_title_evidence,
            "diagnostics": diagnostics,
            "coverage": {
                "primary_mention_ids": primary,
                "covered_primary_mention_ids": normalize_ids(i for i in covered_set if i in domain),
                "uncovered_primary_mention_ids": [i for i in primary if i not in covered_set],
                "unresolved": unresolved,
            },
            "sources": {"inputs": source_inputs, "pipeline": pipeline_trace},
        }
    )
    if isinstance(schema_version, str) and schema_version:
        out["schema_version"] = schema_version
    return out


def build_coverage_audit(document: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Explain, per primary mention, which mechanisms cover it.

    Mechanisms are ``slot`` (role entry), ``operator`` (operator token),
    ``evidence`` (assertion evidence token) and ``transfer`` (moved onto a host
    by role-carrier suppression).
    """

    mentions = [m for m in document.get("mentions") or [] if isinstance(m, Mapping)]
    coverage = document.get("coverage") or {}
    primary_ids = set(normalize_ids(coverage.get("primary_mention_ids")))
    covered_ids = set(normalize_ids(coverage.get("covered_primary_mention_ids")))
    suppressed = (document.get("diagnostics") or {}).get("suppressed_assertions") or []

    reason_by_mention = {
        u["mention_id"]: str(u.get("reason") or "other")
        for u in coverage.get("unresolved") or []
        if isinstance(u, Mapping) and isinstance(u.get("mention_id"), str)
    }
    primary_mentions = sorted((m for m in mentions if m.get("id") in primary_ids), key=lambda m: str(m["id"]))

    covered_by: Dict[str, set] = {}

    def add(mention_id: Any, mechanism: str) -> None:
        if isinstance(mention_id, str) and mention_id:
            covered_by.setdefault(mention_id, set()).add(mechanism)

    for assertion in document.get("assertions") or []:
        if not isinstance(assertion, Mapping):
            continue
        if "slots" in assertion:
            raise InputContractError(LEGACY_SLOTS_MESSAGE)
        for entry in list(assertion.get("arguments") or []) + list(assertion.get("modifiers") or []):
            for mention_id in entry.get("mention_ids") or []:
                add(mention_id, "slot")
        for op in assertion.get("operators") or []:
            token_id = str((op or {}).get("token_id") or "")
            if not token_id:
                continue
            for mention in primary_mentions:
                if token_id in (mention.get("token_ids") or []):
                    add(mention["id"], "operator")
        evidence_token_ids = set(normalize_ids((assertion.get("evidence") or {}).get("token_ids")))
        if evidence_token_ids:
            for mention in primary_mentions:
                if evidence_token_ids.intersection(mention.get("token_ids") or []):
                    add(mention["id"], "evidence")

    for trace in suppressed:
        for mention_id in (trace or {}).get("transferred_mention_ids") or []:
            add(mention_id, "transfer")

    audit = []
    for mention in primary_mentions:
        covered = mention["id"] in covered_ids
        audit.append(
            {
                "mention_id": mention["id"],
                "covered": covered,
                "covered_by": normalize_ids(covered_by.get(mention["id"])) if covered else [],
                "uncovered_reason": None if covered else reason_by_mention.get(mention["id"], "other"),
            }
        )
    return audit


__all__ = [
    "INDEX_BASIS",
    "LEGACY_SLOTS_MESSAGE",
    "STAGE",
    "build_coverage_audit",
    "build_coverage_domain_mention_ids",
    "build_output",
    "build_wiki_title_evidence_from_upstream",
    "is_content_pos_tag",
    "is_punctuation_surface",
    "mention_surface_text",
    "utf16_slice",
]
