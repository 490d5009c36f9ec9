from __future__ import annotations

from elementary_assertions.core.determinism import sha256_hex
from elementary_assertions.core.mention_builder import build_mentions
from elementary_assertions.core.projection import (
    build_coordination_groups,
    build_projected_relations,
    choose_mention_id,
)
from elementary_assertions.core.roles import project_roles_to_slots, slot_to_role_entries
from elementary_assertions.core.tokens import build_token_index, build_token_wiki_by_id
from elementary_assertions.core.upstream import collect_step_relations
from tests.conftest import alpha_builds_carts, make_dependency, new_york_city_grows


def _project(relations):
    token_by_id = build_token_index(relations)
    mwes = {"annotations": [a for a in relations["annotations"] if a.get("kind") == "mwe"]}
    build = build_mentions(relations, mwes, {"annotations": []}, token_by_id, build_token_wiki_by_id(relations))
    projection = build_projected_relations(
        collect_step_relations(relations, token_by_id),
        build.token_to_primary_mention,
        build.token_to_all_mentions,
        build.mention_by_id,
        token_by_id,
    )
    return projection, build


def test_relations_project_onto_primary_mentions() -> None:
    projection, _ = _project(alpha_builds_carts())
    edges = [(p["relation_id"], p["label"], p["head_mention_id"], p["dep_mention_id"]) for p in projection.projected]
    assert edges == [
        ("r1", "nsubj", "m:s1:6-12:token", "m:s1:0-5:token"),
        ("r2", "obj", "m:s1:6-12:token", "m:s1:13-18:token"),
    ]
    assert projection.dropped == []
    assert [a["relation_id"] for a in projection.all] == ["r1", "r2"]


def test_relation_inside_one_mwe_falls_back_to_shadow_token() -> None:
    relations = new_york_city_grows()
    relations["annotations"].append(make_dependency("r2", "compound", "t3", "t1"))
    projection, _ = _project(relations)
    compound = next(p for p in projection.projected if p["relation_id"] == "r2")
    assert compound["head_mention_id"] == "m:s1:0-13:mwe"
    assert compound["dep_mention_id"] == "m:s1:0-3:token_shadow"


def test_cross_segment_relation_is_audited_but_not_projected() -> None:
    relations = alpha_builds_carts()
    relations["tokens"][2]["segment_id"] = "s2"
    projection, _ = _project(relations)
    assert [p["relation_id"] for p in projection.projected] == ["r1"]
    assert sorted(a["relation_id"] for a in projection.all) == ["r1", "r2"]
    assert projection.dropped == []


def test_choose_mention_id_can_prefer_non_primary() -> None:
    _, build = _project(new_york_city_grows())
    candidates = build.token_to_all_mentions["t3"]
    mentions = build.mention_by_id
    assert choose_mention_id(candidates, mentions, True) == "m:s1:0-13:mwe"
    assert choose_mention_id(candidates, mentions, False, exclude_id="m:s1:0-13:mwe") == "m:s1:9-13:token_shadow"
    assert choose_mention_id(["missing"], mentions, True) is None


def test_coordination_groups_are_connected_components() -> None:
    edges = [
        {"label": "coordination", "head_mention_id": "b", "dep_mention_id": "a"},
        {"label": "coordination", "head_mention_id": "b", "dep_mention_id": "c"},
        {"label": "coordination", "head_mention_id": "e", "dep_mention_id": "d"},
        {"label": "nsubj", "head_mention_id": "x", "dep_mention_id": "y"},
    ]
    groups = build_coordination_groups(edges)
    assert set(groups) == {"a", "b", "c", "d", "e"}
    assert groups["a"] == groups["b"] == groups["c"] == f"cg:{sha256_hex('a|b|c')[:12]}"
    assert groups["d"] == groups["e"] == f"cg:{sha256_hex('d|e')[:12]}"


def test_slot_entries_follow_role_priority() -> None:
    _, build = _project(alpha_builds_carts())
    slots = {
        "actor": ["m:s1:0-5:token"],
        "theme": ["m:s1:13-18:token"],
        "attr": [],
        "topic": [],
        "location": ["m:s1:18-19:token"],
        "other": [{"role": "recipient", "mention_ids": ["m:s1:6-12:token"]}, {"role": "", "mention_ids": ["x"]}],
    }
    entries = slot_to_role_entries(slots, build.mention_by_id)
    assert [e["role"] for e in entries["arguments"]] == ["actor", "location", "theme"]
    assert entries["arguments"][0]["evidence"] == {"relation_ids": [], "token_ids": ["t1"]}
    assert entries["modifiers"] == [
        {"role": "recipient", "mention_ids": ["m:s1:6-12:token"], "evidence": {"relation_ids": [], "token_ids": ["t2"]}}
    ]

    back = project_roles_to_slots(entries)
    assert back["actor"] == ["m:s1:0-5:token"]
    assert back["location"] == ["m:s1:18-19:token"]
    assert back["other"] == [{"role": "recipient", "mention_ids": ["m:s1:6-12:token"]}]
