from __future__ import annotations

import copy
import json

import pytest
from jsonschema import Draft202012Validator

from elementary_assertions import InputContractError, run_from_relations, validate_elementary_assertions
from elementary_assertions.config import HeuristicWindows
from elementary_assertions.core.assertions import fallback_coordination_group_id
from elementary_assertions.core.determinism import canonical_json, sha256_hex
from elementary_assertions.schema_utils import load_schema
from tests.conftest import (
    POSITIVE_WIKI,
    alpha_builds_carts,
    alpha_runs,
    alpha_will_soon_build_carts,
    carts_in_yards,
    it_is_used,
    it_is_used_and_sold,
    it_may_be_used,
    make_dependency,
    new_york_city_grows,
)


def _assertion_for(document, head_token_id):
    matches = [a for a in document["assertions"] if a["predicate"]["head_token_id"] == head_token_id]
    assert len(matches) == 1, f"expected one assertion headed by {head_token_id}"
    return matches[0]


def _role(assertion, role):
    return next((e["mention_ids"] for e in assertion["arguments"] if e["role"] == role), [])


def test_subject_and_object_become_actor_and_theme() -> None:
    out = run_from_relations(alpha_builds_carts())

    assert len(out["assertions"]) == 1
    assertion = out["assertions"][0]
    assert assertion["predicate"] == {"mention_id": "m:s1:6-12:token", "head_token_id": "t2"}
    assert _role(assertion, "actor") == ["m:s1:0-5:token"]
    assert _role(assertion, "theme") == ["m:s1:13-18:token"]
    assert [e["role"] for e in assertion["arguments"]] == ["actor", "theme"]
    assert assertion["modifiers"] == []
    assert assertion["operators"] == []
    assert assertion["diagnostics"]["predicate_class"] == "lexical_verb"
    assert assertion["diagnostics"]["predicate_quality"] == "ok"
    assert assertion["diagnostics"]["structural_fragment"] is False
    assert assertion["evidence"]["token_ids"] == ["t1", "t2", "t3"]
    assert [e["annotation_id"] for e in assertion["evidence"]["relation_evidence"]] == ["r1", "r2"]


def test_assertion_id_is_content_addressed() -> None:
    assertion = run_from_relations(alpha_builds_carts())["assertions"][0]
    prefix, segment_id, rest = assertion["id"].split(":", 2)
    assert prefix == "a"
    assert segment_id == "s1"
    assert rest.startswith("m:s1:6-12:token:")
    digest = rest.rsplit(":", 1)[1]
    assert len(digest) == 12
    assert all(c in "0123456789abcdef" for c in digest)


def test_output_envelope() -> None:
    relations = alpha_builds_carts()
    out = run_from_relations(relations)

    assert out["seed_id"] == "seed-test"
    assert out["stage"] == "elementary_assertions"
    assert out["index_basis"] == {"text_field": "canonical_text", "span_unit": "utf16_code_units"}
    assert out["canonical_text"] == "Alpha builds carts."
    assert [t["id"] for t in out["tokens"]] == ["t1", "t2", "t3", "t4"]
    assert out["sources"]["inputs"] == [
        {"artifact": "relations_extracted.in_memory", "digest": sha256_hex(canonical_json(relations))}
    ]
    pipeline = out["sources"]["pipeline"]
    assert pipeline["target"] == "relations_extracted"
    assert pipeline["token_count"] == 4
    assert pipeline["annotation_count"] == 2
    assert pipeline["wikipedia_title_index_configured"] is False


def test_punctuation_is_outside_the_coverage_domain() -> None:
    coverage = run_from_relations(alpha_builds_carts())["coverage"]

    assert coverage["primary_mention_ids"] == ["m:s1:0-5:token", "m:s1:13-18:token", "m:s1:6-12:token"]
    assert coverage["covered_primary_mention_ids"] == coverage["primary_mention_ids"]
    assert coverage["uncovered_primary_mention_ids"] == []
    assert coverage["unresolved"] == []


def test_output_validates_strictly_and_against_schema() -> None:
    for relations in (alpha_builds_carts(), carts_in_yards(), it_is_used(), new_york_city_grows()):
        out = run_from_relations(relations)
        assert validate_elementary_assertions(out, strict=True) == {"ok": True}
        assert list(Draft202012Validator(load_schema()).iter_errors(out)) == []


def test_output_is_json_serialisable_and_deterministic() -> None:
    first = json.dumps(run_from_relations(alpha_builds_carts()))
    second = json.dumps(run_from_relations(alpha_builds_carts()))
    assert first == second


def test_input_document_is_not_mutated() -> None:
    relations = carts_in_yards()
    before = copy.deepcopy(relations)
    run_from_relations(relations)
    assert relations == before


def test_preposition_without_lexical_link_is_dropped() -> None:
    out = run_from_relations(carts_in_yards())

    assert [a["predicate"]["head_token_id"] for a in out["assertions"]] == ["t2"]
    builds = out["assertions"][0]
    assert [e["role"] for e in builds["arguments"]] == ["actor", "location", "theme"]
    assert _role(builds, "location") == ["m:s1:22-27:token"]
    assert out["coverage"]["uncovered_primary_mention_ids"] == []


def test_copula_frame_upgrades_predicate_to_lexical_verb() -> None:
    out = run_from_relations(it_is_used())

    used = _assertion_for(out, "t3")
    assert used["predicate"]["mention_id"] == "m:s1:6-10:token"
    assert used["diagnostics"]["predicate_class"] == "lexical_verb"
    assert _role(used, "actor") == ["m:s1:0-2:token"]
    assert not [a for a in out["assertions"] if a["predicate"]["head_token_id"] == "t2"]

    traces = out["diagnostics"]["suppressed_assertions"]
    assert len(traces) == 1
    suppressed_by = traces[0]["diagnostics"]["suppressed_by"]
    assert traces[0]["predicate"] == {"mention_id": "m:s1:3-5:token", "head_token_id": "t2"}
    assert suppressed_by["kind"] == "predicate_redirect"
    assert suppressed_by["reason"] == "predicate_upgraded_to_lexical"
    assert suppressed_by["target_assertion_id"] == used["id"]
    assert suppressed_by["evidence"] == {"upstream_relation_ids": ["r1"], "token_ids": ["t2", "t3"]}


def test_upgraded_copula_is_reported_uncovered_once() -> None:
    coverage = run_from_relations(it_is_used())["coverage"]

    assert coverage["uncovered_primary_mention_ids"] == ["m:s1:3-5:token"]
    assert len(coverage["unresolved"]) == 1
    entry = coverage["unresolved"][0]
    assert entry["mention_id"] == "m:s1:3-5:token"
    assert entry["kind"] == "unresolved_attachment"
    assert entry["reason"] == "projection_failed"


def test_modal_copula_redirects_to_xcomp_verb_and_keeps_modality() -> None:
    out = run_from_relations(it_may_be_used())

    assert len(out["assertions"]) == 1
    used = out["assertions"][0]
    assert used["predicate"] == {"mention_id": "m:s1:10-14:token", "head_token_id": "t4"}
    assert used["diagnostics"]["predicate_class"] == "lexical_verb"
    assert [(op["kind"], op.get("value")) for op in used["operators"]] == [("modality", "may")]

    traces = out["diagnostics"]["suppressed_assertions"]
    assert len(traces) == 1
    assert traces[0]["predicate"] == {"mention_id": "m:s1:7-9:token", "head_token_id": "t3"}
    suppressed_by = traces[0]["diagnostics"]["suppressed_by"]
    assert suppressed_by["reason"] == "predicate_upgraded_to_lexical"
    assert suppressed_by["target_assertion_id"] == used["id"]
    assert suppressed_by["evidence"] == {"upstream_relation_ids": ["r2"], "token_ids": ["t3", "t4"]}
    assert validate_elementary_assertions(out, strict=True) == {"ok": True}


def test_low_auxiliary_carrier_folds_into_lexical_host() -> None:
    out = run_from_relations(alpha_will_soon_build_carts())

    assert [a["predicate"]["head_token_id"] for a in out["assertions"]] == ["t4"]
    build = out["assertions"][0]
    assert _role(build, "actor") == ["m:s1:0-5:token"]
    assert _role(build, "theme") == ["m:s1:22-27:token"]
    assert [(e["role"], e["mention_ids"]) for e in build["modifiers"]] == [("attached_other", ["m:s1:11-15:token"])]
    assert build["evidence"]["token_ids"] == ["t1", "t2", "t3", "t4", "t5"]

    traces = out["diagnostics"]["suppressed_assertions"]
    assert len(traces) == 1
    trace = traces[0]
    assert trace["predicate"] == {"mention_id": "m:s1:6-10:token", "head_token_id": "t2"}
    assert trace["reason"] == "role_carrier_suppressed"
    assert trace["predicate_class"] == "auxiliary"
    assert trace["host_assertion_id"] == build["id"]
    assert trace["suppressed_assertion_id"] == trace["id"]
    assert trace["transferred_mention_ids"] == ["m:s1:11-15:token"]
    assert trace["transferred_buckets"] == ["other"]
    suppressed_by = trace["diagnostics"]["suppressed_by"]
    assert suppressed_by["reason"] == "role_carrier_suppressed"
    assert suppressed_by["target_assertion_id"] == build["id"]
    assert suppressed_by["evidence"]["token_ids"] == ["t2", "t3", "t4"]
    assert trace["evidence"] == {"token_ids": ["t2", "t3", "t4"]}
    assert validate_elementary_assertions(out, strict=True) == {"ok": True}


def test_redirected_predicate_gets_fallback_coordination_group() -> None:
    out = run_from_relations(it_is_used_and_sold())

    assert not [a for a in out["assertions"] if a["predicate"]["head_token_id"] == "t2"]
    used = _assertion_for(out, "t3")
    assert used["predicate"]["mention_id"] == "m:s1:6-10:token"
    groups = [op for op in used["operators"] if op["kind"] == "coordination_group"]
    assert len(groups) == 1
    assert groups[0]["value"] == "and"
    assert groups[0]["group_id"] == fallback_coordination_group_id("m:s1:6-10:token", "m:s1:15-19:token")
    assert groups[0]["group_id"] != f"cg:{sha256_hex('m:s1:15-19:token|m:s1:3-5:token')[:12]}"

    assert [g["id"] for g in out["diagnostics"]["coordination_groups"]] == [groups[0]["group_id"]]
    assert validate_elementary_assertions(out, strict=True) == {"ok": True}


def test_fallback_coordination_group_id_hashes_predicate_and_key() -> None:
    assert fallback_coordination_group_id("m:s1:0-2:token", "r7") == f"cg:{sha256_hex('m:s1:0-2:token|r7')[:12]}"
    assert fallback_coordination_group_id("m", None) == f"cg:{sha256_hex('m|')[:12]}"
    assert fallback_coordination_group_id("m", "") == fallback_coordination_group_id("m", None)


def test_mwe_winner_fills_the_actor_role() -> None:
    out = run_from_relations(new_york_city_grows())

    grows = _assertion_for(out, "t4")
    assert _role(grows, "actor") == ["m:s1:0-13:mwe"]
    primary = [m["id"] for m in out["mentions"] if m["is_primary"]]
    assert primary == ["m:s1:0-13:mwe", "m:s1:14-19:token", "m:s1:19-20:token"]


def test_self_loop_relation_is_dropped_with_warning() -> None:
    relations = alpha_runs()
    relations["annotations"].append(make_dependency("r9", "dep", "t1", "t1"))
    out = run_from_relations(relations)

    dropped = out["relation_projection"]["dropped_relations"]
    assert [(d["relation_id"], d["reason"]) for d in dropped] == [("r9", "self_loop_after_primary_projection")]
    assert {r["relation_id"] for r in out["relation_projection"]["all_relations"]} == {"ann:dep:1", "r9"}
    assert "relation_projection_drops_present" in out["diagnostics"]["warnings"]
    assert out["diagnostics"]["dropped_relation_count"] == 1


def test_only_accepted_relation_extraction_dependencies_project() -> None:
    relations = alpha_runs()
    observed = make_dependency("r-obs", "obj", "t2", "t1", status="observation")
    foreign = make_dependency("r-foreign", "obj", "t2", "t1")
    foreign["sources"] = [{"name": "someone-else", "evidence": {}}]
    relations["annotations"].extend([observed, foreign])

    projected = run_from_relations(relations)["relation_projection"]["projected_relations"]
    assert [p["relation_id"] for p in projected] == ["ann:dep:1"]


def test_legacy_slots_are_rejected() -> None:
    relations = alpha_runs()
    relations["assertions"] = [{"id": "a1", "slots": {"actor": []}}]
    with pytest.raises(InputContractError, match=r"legacy assertions\[\*\]\.slots"):
        run_from_relations(relations)


def test_missing_tokens_are_rejected() -> None:
    relations = alpha_runs()
    del relations["tokens"]
    with pytest.raises(InputContractError, match=r"must include tokens\[\]"):
        run_from_relations(relations)


def test_token_without_segment_is_rejected() -> None:
    relations = alpha_runs()
    del relations["tokens"][1]["segment_id"]
    with pytest.raises(InputContractError, match="token t2 missing segment_id"):
        run_from_relations(relations)


def test_non_mapping_input_is_rejected() -> None:
    with pytest.raises(InputContractError):
        run_from_relations(["not", "a", "document"])


def test_stage_label_is_ignored_and_extra_fields_tolerated() -> None:
    relations = alpha_runs()
    relations["stage"] = "something_else"
    relations["extra"] = {"ignored": True}
    out = run_from_relations(relations)
    assert out["stage"] == "elementary_assertions"
    assert "extra" not in out


def test_schema_version_is_copied_only_when_present() -> None:
    assert "schema_version" not in run_from_relations(alpha_runs())

    relations = alpha_runs()
    relations["schema_version"] = "1.2.0"
    assert run_from_relations(relations)["schema_version"] == "1.2.0"


def test_caller_inputs_and_suppressed_default_source() -> None:
    inputs = [{"artifact": "seed.relations.yaml", "digest": "abc"}]
    out = run_from_relations(alpha_runs(), source_inputs=inputs, suppress_default_relations_source=True)
    assert out["sources"]["inputs"] == inputs


def test_wti_evidence_gate_is_opt_in() -> None:
    from elementary_assertions import WtiEvidenceMissingError

    run_from_relations(alpha_runs())
    with pytest.raises(WtiEvidenceMissingError):
        run_from_relations(alpha_runs(), require_wti_evidence=True)
    run_from_relations(alpha_builds_carts(wiki=True), require_wti_evidence=True)


def test_endpoint_without_token_signals_warns() -> None:
    out = run_from_relations(alpha_runs(), wti_endpoint="http://wti.local")
    assert "wti_configured_but_no_token_wiki_signals" in out["diagnostics"]["warnings"]
    assert out["sources"]["pipeline"]["wikipedia_title_index_configured"] is True


def test_wiki_title_evidence_is_aggregated_per_mention() -> None:
    out = run_from_relations(alpha_builds_carts(wiki=True))

    evidence = out["wiki_title_evidence"]
    assert evidence["normalization"]["unicode_form"] == "NFKC"
    alpha = next(m for m in evidence["mention_matches"] if m["mention_id"] == "m:s1:0-5:token")
    assert alpha["exact_titles"] == POSITIVE_WIKI["exact_titles"]
    assert alpha["normalized_surface"] == "alpha"
    assert out["tokens"][0]["lexicon"] == {"wikipedia_title_index": POSITIVE_WIKI}
    assert out["diagnostics"]["token_wiki_signal_count"] == 1


def test_theme_window_is_configurable() -> None:
    relations = alpha_runs()
    relations["canonical_text"] = "Alpha runs fast carts."
    relations["tokens"] = relations["tokens"][:2] + [
        {"id": "t3", "i": 2, "segment_id": "s1", "span": {"start": 11, "end": 15}, "surface": "fast", "pos": {"tag": "JJ"}},
        {"id": "t4", "i": 3, "segment_id": "s1", "span": {"start": 16, "end": 21}, "surface": "carts", "pos": {"tag": "NNS"}},
        {"id": "t5", "i": 4, "segment_id": "s1", "span": {"start": 21, "end": 22}, "surface": ".", "pos": {"tag": "."}},
    ]
    relations["segments"][0]["span"]["end"] = 22
    relations["annotations"].append(make_dependency("r2", "amod", "t4", "t3"))

    wide = run_from_relations(relations)
    assert _role(_assertion_for(wide, "t2"), "theme") == ["m:s1:16-21:token"]

    narrow = run_from_relations(relations, windows=HeuristicWindows(theme=1))
    assert _role(_assertion_for(narrow, "t2"), "theme") == []
