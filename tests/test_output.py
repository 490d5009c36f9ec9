from __future__ import annotations

import pytest

from elementary_assertions.core.mention_builder import build_mentions
from elementary_assertions.core.output import (
    build_coverage_audit,
    build_coverage_domain_mention_ids,
    is_punctuation_surface,
    utf16_slice,
)
from elementary_assertions.core.tokens import build_token_index, build_token_wiki_by_id
from elementary_assertions.errors import InputContractError
from elementary_assertions.run import run_from_relations
from tests.conftest import carts_in_yards, it_is_used


def test_utf16_slice_counts_surrogate_pairs_as_two_units() -> None:
    text = "\U0001F600 Alpha"
    assert utf16_slice(text, 0, 2) == "\U0001F600"
    assert utf16_slice(text, 3, 8) == "Alpha"
    assert utf16_slice("é", 0, 1) == "é"


@pytest.mark.parametrize("surface, expected", [(".", True), ("--", True), ("$", True), ("a.", False), ("", False)])
def test_is_punctuation_surface(surface, expected) -> None:
    assert is_punctuation_surface(surface) is expected


def test_coverage_domain_skips_prepositions_and_punctuation() -> None:
    relations = carts_in_yards()
    token_by_id = build_token_index(relations)
    build = build_mentions(relations, {}, {}, token_by_id, build_token_wiki_by_id(relations))
    assert build_coverage_domain_mention_ids(build.mentions, token_by_id) == [
        "m:s1:0-5:token",
        "m:s1:13-18:token",
        "m:s1:22-27:token",
        "m:s1:6-12:token",
    ]


def test_coverage_audit_explains_each_primary_mention(document) -> None:
    audit = build_coverage_audit(document)
    assert [a["mention_id"] for a in audit] == ["m1", "m2", "m3"]
    by_id = {a["mention_id"]: a for a in audit}
    assert by_id["m1"] == {"mention_id": "m1", "covered": True, "covered_by": ["evidence", "slot"], "uncovered_reason": None}
    assert by_id["m2"]["covered_by"] == ["evidence"]


def test_coverage_audit_reports_unresolved_reason() -> None:
    document = run_from_relations(it_is_used())
    audit = {a["mention_id"]: a for a in build_coverage_audit(document)}
    assert audit["m:s1:3-5:token"]["covered"] is False
    assert audit["m:s1:3-5:token"]["uncovered_reason"] == "projection_failed"
    assert "slot" in audit["m:s1:0-2:token"]["covered_by"]


def test_coverage_audit_rejects_legacy_slots(document) -> None:
    document["assertions"][0]["slots"] = {}
    with pytest.raises(InputContractError):
        build_coverage_audit(document)
