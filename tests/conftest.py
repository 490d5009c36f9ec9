from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

import pytest
from hypothesis import HealthCheck, settings

settings.register_profile(
    "ci",
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
settings.load_profile("ci")


POSITIVE_WIKI = {"wiki_exact_match": True, "wiki_prefix_count": 0, "exact_titles": ["Alpha"]}


def make_token(
    token_id: str,
    i: int,
    surface: str,
    tag: str,
    start: int,
    end: int,
    segment_id: str = "s1",
    wiki: Optional[Dict[str, Any]] = None,
    coarse: Optional[str] = None,
) -> Dict[str, Any]:
    token: Dict[str, Any] = {
        "id": token_id,
        "i": i,
        "segment_id": segment_id,
        "span": {"start": start, "end": end},
        "surface": surface,
        "pos": {"tag": tag},
    }
    if coarse:
        token["pos"]["coarse"] = coarse
    if wiki is not None:
        token["lexicon"] = {"wikipedia_title_index": dict(wiki)}
    return token


def make_dependency(
    annotation_id: str,
    label: str,
    head: str,
    dep: str,
    evidence: Optional[Dict[str, Any]] = None,
    status: str = "accepted",
) -> Dict[str, Any]:
    return {
        "id": annotation_id,
        "kind": "dependency",
        "status": status,
        "label": label,
        "head": {"id": head},
        "dep": {"id": dep},
        "sources": [{"name": "relation-extraction", "evidence": dict(evidence or {})}],
    }


def make_mwe(annotation_id: str, token_ids: List[str], start: int, end: int, head: Optional[str] = None) -> Dict[str, Any]:
    sources = []
    if head:
        sources.append({"name": "mwe-materialization", "evidence": {"head_token_id": head}})
    return {
        "id": annotation_id,
        "kind": "mwe",
        "status": "accepted",
        "anchor": {
            "selectors": [
                {"type": "TokenSelector", "token_ids": list(token_ids)},
                {"type": "TextPositionSelector", "span": {"start": start, "end": end}},
            ]
        },
        "sources": sources,
    }


def make_relations_doc(text: str, tokens: List[Dict[str, Any]], annotations: List[Dict[str, Any]]) -> Dict[str, Any]:
    segment_ids = sorted({t["segment_id"] for t in tokens})
    segments = []
    for segment_id in segment_ids:
        members = [t for t in tokens if t["segment_id"] == segment_id]
        segments.append(
            {
                "id": segment_id,
                "span": {
                    "start": min(t["span"]["start"] for t in members),
                    "end": max(t["span"]["end"] for t in members),
                },
                "token_range": {"start": min(t["i"] for t in members), "end": max(t["i"] for t in members) + 1},
            }
        )
    return {
        "seed_id": "seed-test",
        "stage": "relations_extracted",
        "canonical_text": text,
        "segments": segments,
        "tokens": tokens,
        "annotations": annotations,
    }


def alpha_builds_carts(wiki: bool = False) -> Dict[str, Any]:
    """``Alpha builds carts.`` with subject and object dependencies."""

    tokens = [
        make_token("t1", 0, "Alpha", "NNP", 0, 5, wiki=POSITIVE_WIKI if wiki else None),
        make_token("t2", 1, "builds", "VBZ", 6, 12),
        make_token("t3", 2, "carts", "NNS", 13, 18),
        make_token("t4", 3, ".", ".", 18, 19),
    ]
    annotations = [
        make_dependency("r1", "nsubj", "t2", "t1"),
        make_dependency("r2", "obj", "t2", "t3"),
    ]
    return make_relations_doc("Alpha builds carts.", tokens, annotations)


def alpha_runs() -> Dict[str, Any]:
    tokens = [
        make_token("t1", 0, "Alpha", "NNP", 0, 5),
        make_token("t2", 1, "runs", "VBZ", 6, 10),
        make_token("t3", 2, ".", ".", 10, 11),
    ]
    return make_relations_doc("Alpha runs.", tokens, [make_dependency("ann:dep:1", "nsubj", "t2", "t1")])


def carts_in_yards() -> Dict[str, Any]:
    """A preposition heading its own relation next to a lexical verb."""

    tokens = [
        make_token("t1", 0, "Alpha", "NNP", 0, 5),
        make_token("t2", 1, "builds", "VBZ", 6, 12),
        make_token("t3", 2, "carts", "NNS", 13, 18),
        make_token("t4", 3, "in", "IN", 19, 21),
        make_token("t5", 4, "yards", "NNS", 22, 27),
        make_token("t6", 5, ".", ".", 27, 28),
    ]
    annotations = [
        make_dependency("r1", "nsubj", "t2", "t1"),
        make_dependency("r2", "obj", "t2", "t3"),
        make_dependency("r3", "pobj", "t4", "t5"),
    ]
    return make_relations_doc("Alpha builds carts in yards.", tokens, annotations)


def it_is_used() -> Dict[str, Any]:
    """A copula whose relation names the lexical verb through ``copula_frame``."""

    tokens = [
        make_token("t1", 0, "It", "PRP", 0, 2),
        make_token("t2", 1, "is", "VBZ", 3, 5),
        make_token("t3", 2, "used", "VBN", 6, 10),
        make_token("t4", 3, ".", ".", 10, 11),
    ]
    annotations = [
        make_dependency("r1", "nsubj", "t2", "t1", {"pattern": "copula_frame", "verb_token_id": "t3"}),
    ]
    return make_relations_doc("It is used.", tokens, annotations)


def it_is_used_and_sold() -> Dict[str, Any]:
    """A copula coordinated with a verb, redirected to its clause complement."""

    tokens = [
        make_token("t1", 0, "It", "PRP", 0, 2),
        make_token("t2", 1, "is", "VBZ", 3, 5),
        make_token("t3", 2, "used", "VBN", 6, 10),
        make_token("t4", 3, "and", "CC", 11, 14),
        make_token("t5", 4, "sold", "VBN", 15, 19),
        make_token("t6", 5, ".", ".", 19, 20),
    ]
    annotations = [
        make_dependency("r1", "complement_clause", "t2", "t3"),
        make_dependency("r2", "coordination", "t2", "t5", {"coord_type": "and"}),
    ]
    return make_relations_doc("It is used and sold.", tokens, annotations)


def it_may_be_used() -> Dict[str, Any]:
    """A modal on a copula whose xcomp names the lexical verb."""

    tokens = [
        make_token("t1", 0, "It", "PRP", 0, 2),
        make_token("t2", 1, "may", "MD", 3, 6),
        make_token("t3", 2, "be", "VB", 7, 9),
        make_token("t4", 3, "used", "VBN", 10, 14),
        make_token("t5", 4, ".", ".", 14, 15),
    ]
    annotations = [
        make_dependency("r1", "modality", "t3", "t2"),
        make_dependency("r2", "xcomp", "t3", "t4"),
    ]
    return make_relations_doc("It may be used.", tokens, annotations)


def alpha_will_soon_build_carts() -> Dict[str, Any]:
    """A modal heading only an adverb, next to a lexical verb with subject and object."""

    tokens = [
        make_token("t1", 0, "Alpha", "NNP", 0, 5),
        make_token("t2", 1, "will", "MD", 6, 10),
        make_token("t3", 2, "soon", "RB", 11, 15),
        make_token("t4", 3, "build", "VB", 16, 21),
        make_token("t5", 4, "carts", "NNS", 22, 27),
        make_token("t6", 5, ".", ".", 27, 28),
    ]
    annotations = [
        make_dependency("r1", "nsubj", "t4", "t1"),
        make_dependency("r2", "obj", "t4", "t5"),
        make_dependency("r3", "advmod", "t2", "t3"),
    ]
    return make_relations_doc("Alpha will soon build carts.", tokens, annotations)


def new_york_city_grows() -> Dict[str, Any]:
    tokens = [
        make_token("t1", 0, "New", "NNP", 0, 3),
        make_token("t2", 1, "York", "NNP", 4, 8),
        make_token("t3", 2, "City", "NNP", 9, 13),
        make_token("t4", 3, "grows", "VBZ", 14, 19),
        make_token("t5", 4, ".", ".", 19, 20),
    ]
    annotations = [
        make_mwe("mwe:1", ["t1", "t2", "t3"], 0, 13, head="t3"),
        make_mwe("mwe:2", ["t3", "t4"], 9, 19),
        make_dependency("r1", "nsubj", "t4", "t3"),
    ]
    return make_relations_doc("New York City grows.", tokens, annotations)


def assertion_document() -> Dict[str, Any]:
    """A small, valid elementary assertions document."""

    return {
        "seed_id": "seed-test",
        "stage": "elementary_assertions",
        "index_basis": {"text_field": "canonical_text", "span_unit": "utf16_code_units"},
        "canonical_text": "Alpha builds carts.",
        "segments": [{"id": "s1", "span": {"start": 0, "end": 19}, "token_range": {"start": 0, "end": 3}}],
        "tokens": [
            {"id": "t1", "i": 0, "segment_id": "s1", "span": {"start": 0, "end": 5}, "surface": "Alpha", "pos": {"tag": "NNP", "coarse": "NOUN"}},
            {"id": "t2", "i": 1, "segment_id": "s1", "span": {"start": 6, "end": 12}, "surface": "builds", "pos": {"tag": "VBZ", "coarse": "VERB"}},
            {"id": "t3", "i": 2, "segment_id": "s1", "span": {"start": 13, "end": 18}, "surface": "carts", "pos": {"tag": "NNS", "coarse": "NOUN"}},
        ],
        "mentions": [
            {"id": "m1", "kind": "token", "priority": 0, "token_ids": ["t1"], "head_token_id": "t1", "span": {"start": 0, "end": 5}, "segment_id": "s1", "is_primary": True},
            {"id": "m2", "kind": "token", "priority": 0, "token_ids": ["t2"], "head_token_id": "t2", "span": {"start": 6, "end": 12}, "segment_id": "s1", "is_primary": True},
            {"id": "m3", "kind": "token", "priority": 0, "token_ids": ["t3"], "head_token_id": "t3", "span": {"start": 13, "end": 18}, "segment_id": "s1", "is_primary": True},
        ],
        "assertions": [
            {
                "id": "a1",
                "segment_id": "s1",
                "predicate": {"mention_id": "m2", "head_token_id": "t2"},
                "arguments": [
                    {"role": "actor", "mention_ids": ["m1"], "evidence": {"relation_ids": ["r1"], "token_ids": ["t1", "t2"]}},
                    {"role": "theme", "mention_ids": ["m3"], "evidence": {"relation_ids": ["r2"], "token_ids": ["t2", "t3"]}},
                ],
                "modifiers": [],
                "operators": [],
                "evidence": {
                    "relation_evidence": [
                        {"annotation_id": "r1", "from_token_id": "t2", "to_token_id": "t1", "label": "nsubj"},
                        {"annotation_id": "r2", "from_token_id": "t2", "to_token_id": "t3", "label": "obj"},
                    ],
                    "token_ids": ["t1", "t2", "t3"],
                },
                "diagnostics": {"predicate_quality": "ok"},
            }
        ],
        "relation_projection": {"all_relations": [], "projected_relations": [], "dropped_relations": []},
        "accepted_annotations": [],
        "coverage": {
            "primary_mention_ids": ["m1", "m2", "m3"],
            "covered_primary_mention_ids": ["m1", "m2", "m3"],
            "uncovered_primary_mention_ids": [],
            "unresolved": [],
        },
        "diagnostics": {
            "token_wiki_signal_count": 0,
            "mentions_with_lexicon_evidence": 0,
            "assertions_with_wiki_signals": 0,
            "projected_relation_count": 0,
            "dropped_relation_count": 0,
            "subject_role_gaps": [],
            "warnings": [],
            "suppressed_assertions": [],
        },
        "wiki_title_evidence": {
            "normalization": {
                "unicode_form": "NFKC",
                "punctuation_map": {},
                "whitespace": "collapse_spaces_trim",
                "casefold": "toLowerCase",
            },
            "mention_matches": [],
            "assertion_predicate_matches": [],
        },
        "sources": {
            "inputs": [{"artifact": "seed.text.in_memory", "digest": "d-seed"}],
            "pipeline": {
                "target": "relations_extracted",
                "relations_extracted_digest": "d-rel",
                "token_count": 3,
                "annotation_count": 2,
                "wikipedia_title_index_configured": False,
            },
        },
    }


@pytest.fixture
def document() -> Dict[str, Any]:
    return copy.deepcopy(assertion_document())
