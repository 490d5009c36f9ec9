from __future__ import annotations

import copy

from elementary_assertions.core.models import Mention, Span
from elementary_assertions.core.operators import finalize_operators, merge_operator, operator_identity_key
from elementary_assertions.core.predicates import tokens_by_segment
from elementary_assertions.core.suppression import (
    build_suppression_eligibility_trace,
    evaluate_carrier_eligibility,
    merge_modality_copula_assertions,
    suppress_role_carrier_assertions,
)
from elementary_assertions.core.tokens import build_token_index
from tests.conftest import make_relations_doc, make_token


def _token_mentions(tokens):
    return {
        f"m{t['i'] + 1}": Mention(
            id=f"m{t['i'] + 1}",
            kind="token",
            priority=1,
            token_ids=(t["id"],),
            head_token_id=t["id"],
            span=Span(t["span"]["start"], t["span"]["end"]),
            segment_id=t["segment_id"],
            is_primary=True,
        )
        for t in tokens
    }


def _assertion(assertion_id, mention_id, head, cls, quality, arguments=(), modifiers=(), operators=(), token_ids=()):
    return {
        "id": assertion_id,
        "segment_id": "s1",
        "predicate": {"mention_id": mention_id, "head_token_id": head},
        "arguments": list(arguments),
        "modifiers": list(modifiers),
        "operators": list(operators),
        "evidence": {"relation_evidence": [], "token_ids": list(token_ids)},
        "diagnostics": {"predicate_class": cls, "predicate_quality": quality},
    }


def _entry(role, mention_ids, token_ids):
    return {"role": role, "mention_ids": list(mention_ids), "evidence": {"relation_ids": [], "token_ids": list(token_ids)}}


MODAL_TOKENS = [
    make_token("t1", 0, "It", "PRP", 0, 2),
    make_token("t2", 1, "may", "MD", 3, 6),
    make_token("t3", 2, "be", "VB", 7, 9),
    make_token("t4", 3, "used", "VBN", 10, 14),
    make_token("t5", 4, ".", ".", 14, 15),
]
MAY = {
    "kind": "modality",
    "value": "may",
    "token_id": "t2",
    "evidence": [{"annotation_id": "r1", "from_token_id": "t3", "to_token_id": "t2", "label": "modality"}],
}


def _modal_case():
    token_by_id = build_token_index(make_relations_doc("It may be used.", MODAL_TOKENS, []))
    mention_by_id = _token_mentions(MODAL_TOKENS)
    source = _assertion("a-be", "m3", "t3", "copula", "low", operators=[MAY], token_ids=["t2", "t3"])
    target = _assertion(
        "a-used",
        "m4",
        "t4",
        "lexical_verb",
        "ok",
        arguments=[_entry("actor", ["m1"], ["t1"])],
        token_ids=["t1", "t4"],
    )
    return source, target, token_by_id, mention_by_id


def _xcomp(head_mention_id, dep_mention_id):
    return {
        "relation_id": "r2",
        "label": "xcomp",
        "head_mention_id": head_mention_id,
        "dep_mention_id": dep_mention_id,
        "head_token_id": "t3",
        "dep_token_id": "t4",
        "segment_id": "s1",
    }


def test_modality_moves_to_linked_lexical_verb() -> None:
    source, target, token_by_id, mention_by_id = _modal_case()
    result = merge_modality_copula_assertions([source, target], [_xcomp("m3", "m4")], mention_by_id, token_by_id)

    assert [a["id"] for a in result.assertions] == ["a-used"]
    assert result.assertions[0]["operators"] == [MAY]
    assert len(result.traces) == 1
    suppressed_by = result.traces[0]["diagnostics"]["suppressed_by"]
    assert suppressed_by["target_assertion_id"] == "a-used"
    assert suppressed_by["reason"] == "modality_moved_to_lexical"
    assert suppressed_by["evidence"] == {"upstream_relation_ids": ["r2"], "token_ids": ["t2", "t3", "t4"]}


def test_modality_link_may_point_either_way() -> None:
    source, target, token_by_id, mention_by_id = _modal_case()
    result = merge_modality_copula_assertions([target, source], [_xcomp("m4", "m3")], mention_by_id, token_by_id)
    assert [a["id"] for a in result.assertions] == ["a-used"]


def test_modality_stays_without_explicit_link() -> None:
    source, target, token_by_id, mention_by_id = _modal_case()
    original = copy.deepcopy([source, target])
    result = merge_modality_copula_assertions([source, target], [], mention_by_id, token_by_id)
    assert [a["id"] for a in result.assertions] == ["a-be", "a-used"]
    assert result.traces == []
    assert [source, target] == original


def test_modality_source_with_roles_is_not_merged() -> None:
    source, target, token_by_id, mention_by_id = _modal_case()
    source["arguments"] = [_entry("actor", ["m1"], ["t1"])]
    result = merge_modality_copula_assertions([source, target], [_xcomp("m3", "m4")], mention_by_id, token_by_id)
    assert len(result.assertions) == 2


CARRIER_TOKENS = [
    make_token("t1", 0, "Alpha", "NNP", 0, 5),
    make_token("t2", 1, "runs", "VBZ", 6, 10),
    make_token("t3", 2, "fast", "JJ", 11, 15),
    make_token("t4", 3, "carts", "NNS", 16, 21),
    make_token("t5", 4, ".", ".", 21, 22),
]


def _carrier_case(source_class="nominal_head", operators=()):
    token_by_id = build_token_index(make_relations_doc("Alpha runs fast carts.", CARRIER_TOKENS, []))
    mention_by_id = _token_mentions(CARRIER_TOKENS)
    host = _assertion(
        "a-host",
        "m2",
        "t2",
        "lexical_verb",
        "ok",
        arguments=[_entry("actor", ["m1"], ["t1"]), _entry("theme", ["m4"], ["t4"])],
        token_ids=["t1", "t2", "t4"],
    )
    source = _assertion(
        "a-carts",
        "m4",
        "t4",
        source_class,
        "ok",
        modifiers=[_entry("amod", ["m3"], ["t3"])],
        operators=operators,
        token_ids=["t3", "t4"],
    )
    return host, source, token_by_id, mention_by_id


def test_nominal_carrier_folds_into_lexical_host() -> None:
    host, source, token_by_id, mention_by_id = _carrier_case()
    result = suppress_role_carrier_assertions(
        [host, source], token_by_id, tokens_by_segment(token_by_id), mention_by_id
    )

    assert [a["id"] for a in result.assertions] == ["a-host"]
    kept = result.assertions[0]
    assert kept["modifiers"] == [_entry("attached_other", ["m3"], ["t3"])]
    assert kept["evidence"]["token_ids"] == ["t1", "t2", "t3", "t4"]

    trace = result.traces[0]
    assert trace["reason"] == "role_carrier_suppressed_v2_nominal"
    assert trace["host_assertion_id"] == "a-host"
    assert trace["transferred_mention_ids"] == ["m3"]
    assert trace["diagnostics"]["suppressed_by"]["evidence"]["token_ids"] == ["t2", "t3", "t4"]


def test_carrier_eligibility_flags() -> None:
    host, source, token_by_id, _ = _carrier_case()
    eligibility = evaluate_carrier_eligibility(source, token_by_id)
    assert eligibility.nominal is True
    assert eligibility.no_core_slots is True
    assert eligibility.containment_required is False
    assert evaluate_carrier_eligibility(host, token_by_id).any_class is False


def test_eligibility_trace_reports_missing_host_tokens() -> None:
    host, source, token_by_id, _ = _carrier_case()
    keys = {"a-host": "s1|t1|t4", "a-carts": "s1|t1|t4"}
    trace = build_suppression_eligibility_trace(source, [host, source], token_by_id, keys)
    assert trace["eligible"] is True
    assert trace["failure_reason"] is None
    assert trace["chosen_host_assertion_id"] == "a-host"
    assert trace["missing_in_host_token_ids"] == ["t3"]
    assert build_suppression_eligibility_trace(host, [host, source], token_by_id, keys) is None


def test_preposition_carrier_with_modality_is_kept() -> None:
    may = dict(MAY, token_id="t3")
    host, source, token_by_id, mention_by_id = _carrier_case("preposition", operators=[may])
    result = suppress_role_carrier_assertions(
        [host, source], token_by_id, tokens_by_segment(token_by_id), mention_by_id
    )
    assert sorted(a["id"] for a in result.assertions) == ["a-carts", "a-host"]
    assert result.traces == []


def test_merge_operator_folds_evidence() -> None:
    op_map = {}
    first = {"kind": "negation", "value": "not", "token_id": "t2", "evidence": [{"from_token_id": "t3", "to_token_id": "t2"}]}
    second = {"kind": "negation", "value": "not", "token_id": None, "evidence": [{"from_token_id": "t1", "to_token_id": "t2"}]}
    merge_operator(op_map, first)
    merge_operator(op_map, second)
    merge_operator(op_map, first)

    assert list(op_map) == [operator_identity_key(first)]
    merged = op_map[operator_identity_key(first)]
    assert [e["from_token_id"] for e in merged["evidence"]] == ["t1", "t3"]


def test_merge_operator_drops_null_fields() -> None:
    op_map = {}
    merge_operator(op_map, {"kind": "modality", "value": None, "evidence": []})
    assert op_map["modality|||"] == {"kind": "modality", "evidence": []}


def test_finalize_operators_sorts_by_kind_then_value() -> None:
    ops = [
        {"kind": "negation", "value": "not"},
        {"kind": "modality", "value": "must"},
        {"kind": "modality", "value": "may"},
    ]
    assert [(o["kind"], o["value"]) for o in finalize_operators(ops)] == [
        ("modality", "may"),
        ("modality", "must"),
        ("negation", "not"),
    ]
