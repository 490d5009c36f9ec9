from __future__ import annotations

import pytest

from elementary_assertions.core.diagnostics import (
    analyze_upstream_wiki_evidence,
    build_subject_role_gaps,
    classify_unresolved_reason,
    collect_wiki_field_diagnostics,
    pick_reason_by_precedence,
)
from elementary_assertions.run import run_from_relations
from tests.conftest import alpha_builds_carts, make_dependency, new_york_city_grows


@pytest.mark.parametrize(
    "candidates, expected",
    [
        (["projection_failed", "predicate_invalid"], "predicate_invalid"),
        (["missing_relation", "coord_type_missing"], "coord_type_missing"),
        (["missing_relation", "operator_scope_open"], "operator_scope_open"),
        ([None, ""], "projection_failed"),
        (["unknown"], "projection_failed"),
    ],
)
def test_pick_reason_by_precedence(candidates, expected) -> None:
    assert pick_reason_by_precedence(candidates) == expected


def test_classify_unresolved_reason() -> None:
    no_quality = {}
    assert classify_unresolved_reason("m", no_quality, {}, {}, {}) == "missing_relation"
    assert classify_unresolved_reason("m", no_quality, {"m": {"r1"}}, {}, {}) == "projection_failed"
    assert classify_unresolved_reason("m", no_quality, {}, {"m": {"r2"}}, {}) == "operator_scope_open"
    assert classify_unresolved_reason("m", no_quality, {"m": {"r1"}}, {"m": {"r2"}}, {}) == "projection_failed"
    assert classify_unresolved_reason("m", no_quality, {}, {}, {"m": {"r3"}}) == "coord_type_missing"
    assert classify_unresolved_reason("m", {"m": "low"}, {}, {}, {"m": {"r3"}}) == "predicate_invalid"


def _lexical(assertion_id, mention_id, actors=()):
    arguments = [{"role": "actor", "mention_ids": list(actors)}] if actors else []
    return {
        "id": assertion_id,
        "segment_id": "s1",
        "predicate": {"mention_id": mention_id, "head_token_id": "t2"},
        "arguments": arguments,
        "diagnostics": {"predicate_class": "lexical_verb"},
    }


def test_subject_role_gap_needs_no_actor_and_no_subject_relation() -> None:
    assertions = [
        _lexical("a1", "m2"),
        _lexical("a2", "m3", actors=["m1"]),
        _lexical("a3", "m4"),
        dict(_lexical("a4", "m5"), diagnostics={"predicate_class": "copula"}),
    ]
    projected = [{"label": "nsubj", "relation_id": "r1", "head_mention_id": "m4", "dep_mention_id": "m1"}]
    gaps = build_subject_role_gaps(assertions, projected)
    assert gaps == [
        {
            "segment_id": "s1",
            "assertion_id": "a1",
            "predicate_mention_id": "m2",
            "predicate_head_token_id": "t2",
            "reason": "missing_subject_role",
            "evidence": {"token_ids": ["t2"], "upstream_relation_ids": []},
        }
    ]


def test_pipeline_reports_subject_gap_for_object_only_clause() -> None:
    relations = alpha_builds_carts()
    relations["annotations"] = [a for a in relations["annotations"] if a["label"] != "nsubj"]
    document = run_from_relations(relations)
    gaps = document["diagnostics"]["subject_role_gaps"]
    assert [g["predicate_mention_id"] for g in gaps] == ["m:s1:6-12:token"]


def test_coordination_without_type_is_flagged() -> None:
    relations = alpha_builds_carts()
    relations["annotations"].append(make_dependency("r3", "coordination", "t1", "t3"))
    document = run_from_relations(relations)
    assert document["diagnostics"]["gap_signals"]["coordination_type_missing"] is True
    assert "coordination_type_missing" in document["diagnostics"]["warnings"]


def test_fragmentation_counts_lexical_verbs() -> None:
    document = run_from_relations(alpha_builds_carts())
    fragmentation = document["diagnostics"]["fragmentation"]
    assert fragmentation["per_segment"][0]["lexical_verb_count"] == 1
    assert fragmentation["per_segment"][0]["clause_fragmentation_warning"] is False
    assert fragmentation["predicate_noise_index"] == 0


def test_upstream_wiki_analysis_counts_tokens_mwes_and_predicates() -> None:
    report = analyze_upstream_wiki_evidence(alpha_builds_carts(wiki=True))
    assert report["total_mentions"] == 4
    assert report["mentions_with_wiki_evidence"] == 1
    assert report["sample_missing_mention_ids"] == ["token:t2", "token:t3", "token:t4"]
    assert report["total_predicates"] == 1
    assert report["predicates_without_wiki_evidence"] == 1
    assert report["sample_missing_predicate_ids"] == ["token:t2"]


def test_upstream_wiki_analysis_maps_predicate_to_longest_mwe() -> None:
    report = analyze_upstream_wiki_evidence(new_york_city_grows())
    assert report["total_mentions"] == 7
    assert report["sample_missing_predicate_ids"] == ["mwe:mwe:2"]


def test_wiki_field_diagnostics_bucket_array_indexes() -> None:
    fields = collect_wiki_field_diagnostics(alpha_builds_carts(wiki=True))
    paths = [f["path"] for f in fields]
    assert paths == [
        "tokens[].lexicon",
        "tokens[].lexicon.wikipedia_title_index",
        "tokens[].lexicon.wikipedia_title_index.wiki_exact_match",
        "tokens[].lexicon.wikipedia_title_index.wiki_prefix_count",
    ]
    assert all(f["count"] == 1 for f in fields)
    assert fields[1]["example"].startswith('{"wiki_exact_match":true')
