from __future__ import annotations

from hypothesis import given
from hypothesis import strategies as st

from elementary_assertions.core.determinism import normalize_ids
from elementary_assertions.run import run_from_relations
from elementary_assertions.validate import validate_elementary_assertions
from tests.conftest import carts_in_yards, it_is_used, new_york_city_grows

FIXTURES = (carts_in_yards, it_is_used, new_york_city_grows)
STABLE_SECTIONS = ("mentions", "assertions", "coverage", "accepted_annotations")


@given(st.sampled_from(FIXTURES), st.randoms(use_true_random=False))
def test_annotation_order_does_not_change_the_result(fixture, rnd) -> None:
    baseline = run_from_relations(fixture())
    shuffled = fixture()
    rnd.shuffle(shuffled["annotations"])
    document = run_from_relations(shuffled)
    for section in STABLE_SECTIONS:
        assert document[section] == baseline[section]


@given(st.lists(st.one_of(st.text(max_size=4), st.none(), st.integers())))
def test_normalize_ids_is_sorted_unique_and_idempotent(values) -> None:
    ids = normalize_ids(values)
    assert ids == sorted(set(ids))
    assert all(isinstance(i, str) and i for i in ids)
    assert normalize_ids(ids) == ids


@given(st.sampled_from(FIXTURES))
def test_coverage_partitions_primary_mentions(fixture) -> None:
    document = run_from_relations(fixture())
    coverage = document["coverage"]
    covered = set(coverage["covered_primary_mention_ids"])
    uncovered = set(coverage["uncovered_primary_mention_ids"])
    assert covered.isdisjoint(uncovered)
    assert covered | uncovered == set(coverage["primary_mention_ids"])
    validate_elementary_assertions(document, strict=True)
