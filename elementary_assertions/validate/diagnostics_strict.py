"""Coherence checks for the diagnostics block, enabled with ``strict=True``."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Sequence, Set

from .errors import fail_validation

HEAD_EVIDENCE_REASONS = frozenset(
    {
        "modality_moved_to_lexical",
        "role_carrier_suppressed",
        "role_carrier_suppressed_v2_nominal",
        "copula_bucket_sink_suppressed",
    }
)
TRANSFER_REASONS = frozenset({"role_carrier_suppressed_v2_nominal", "copula_bucket_sink_suppressed"})
GAP_SIGNAL_KEYS = ("coordination_type_missing", "comparative_gap", "quantifier_scope_gap")


def _assert_sorted(values: Any, code: str, message: str) -> None:
    values = values if isinstance(values, list) else []
    if any(str(values[i - 1]) > str(values[i]) for i in range(1, len(values))):
        fail_validation(code, message)


def _id_map(items: Any) -> Dict[str, Mapping[str, Any]]:
    return {
        item["id"]: item
        for item in (items if isinstance(items, list) else [])
        if isinstance(item, Mapping) and isinstance(item.get("id"), str) and item["id"]
    }


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []


def collect_assertion_mention_refs(assertion: Mapping[str, Any]) -> Set[str]:
    return {
        mention_id
        for field in ("arguments", "modifiers")
        for entry in _list(assertion.get(field))
        for mention_id in _list(_mapping(entry).get("mention_ids"))
    }


def validate_suppression_eligibility(
    assertions: Sequence[Mapping[str, Any]], assertion_by_id: Mapping[str, Any]
) -> None:
    code = "EA_VALIDATE_STRICT_SUPPRESSION_ELIGIBILITY"
    for assertion in assertions:
        assertion_id = str(assertion.get("id") or "<unknown>")
        eligibility = _mapping(assertion.get("diagnostics")).get("suppression_eligibility")
        if not isinstance(eligibility, Mapping):
            continue
        prefix = f"Strict diagnostics error: assertion {assertion_id}"
        eligible = bool(eligibility.get("eligible"))
        failure_reason = eligibility.get("failure_reason")
        if eligible and failure_reason is not None:
            fail_validation(code, f"{prefix} has eligible=true with non-null failure_reason.")
        if not eligible and failure_reason is None:
            fail_validation(code, f"{prefix} has eligible=false with null failure_reason.")
        if eligibility.get("segment_id") != assertion.get("segment_id"):
            fail_validation(code, f"{prefix} suppression_eligibility.segment_id must match assertion.segment_id.")
        if eligibility.get("assertion_id") != assertion_id:
            fail_validation(code, f"{prefix} suppression_eligibility.assertion_id must match assertion.id.")
        host_id = eligibility.get("chosen_host_assertion_id")
        if host_id is not None and (not isinstance(host_id, str) or host_id not in assertion_by_id):
            fail_validation(
                code,
                f"{prefix} suppression_eligibility.chosen_host_assertion_id must reference an existing assertion or be null.",
            )
        for key in ("source_non_operator_token_ids", "chosen_host_token_ids", "missing_in_host_token_ids"):
            _assert_sorted(eligibility.get(key), code, f"{prefix} suppression_eligibility.{key} must be sorted.")
        if failure_reason == "no_host" and host_id is not None:
            fail_validation(code, f"{prefix} with failure_reason=no_host must not set chosen_host_assertion_id.")


def validate_coordination_groups(document: Mapping[str, Any], assertion_by_id: Mapping[str, Any]) -> None:
    previous = None
    for group in _list(_mapping(document.get("diagnostics")).get("coordination_groups")):
        group_id = str(_mapping(group).get("id") or "")
        if previous is not None and previous > group_id:
            fail_validation(
                "EA_VALIDATE_STRICT_COORDINATION_ORDER",
                "Strict diagnostics error: diagnostics.coordination_groups must be sorted by id.",
            )
        previous = group_id
        members = _list(group.get("member_assertion_ids"))
        _assert_sorted(
            members,
            "EA_VALIDATE_STRICT_COORDINATION_MEMBER_ORDER",
            "Strict diagnostics error: diagnostics.coordination_groups[*].member_assertion_ids must be sorted.",
        )
        for assertion_id in members:
            if assertion_id not in assertion_by_id:
                fail_validation(
                    "EA_VALIDATE_STRICT_COORDINATION_REFERENCE",
                    f"Strict diagnostics error: coordination group {group_id} references unknown assertion {assertion_id}.",
                )


def validate_subject_role_gaps(
    document: Mapping[str, Any],
    assertion_by_id: Mapping[str, Any],
    mention_by_id: Mapping[str, Any],
    token_by_id: Mapping[str, Any],
) -> None:
    previous = None
    for gap in _list(_mapping(document.get("diagnostics")).get("subject_role_gaps")):
        gap = _mapping(gap)
        assertion_id = str(gap.get("assertion_id") or "")
        mention_id = str(gap.get("predicate_mention_id") or "")
        head_token_id = str(gap.get("predicate_head_token_id") or "")
        segment_id = str(gap.get("segment_id") or "")
        for known, value, what in (
            (assertion_by_id, assertion_id, "assertion"),
            (mention_by_id, mention_id, "mention"),
            (token_by_id, head_token_id, "head token"),
        ):
            if value not in known:
                fail_validation(
                    "EA_VALIDATE_STRICT_SUBJECT_GAP_REFERENCE",
                    f"Strict diagnostics error: subject_role_gaps references unknown {what} {value}.",
                )

        key = (segment_id, assertion_id, mention_id)
        if previous is not None and previous > key:
            fail_validation(
                "EA_VALIDATE_STRICT_SUBJECT_GAP_ORDER",
                "Strict diagnostics error: diagnostics.subject_role_gaps must be sorted by segment_id/assertion_id/predicate_mention_id.",
            )
        previous = key

        evidence = _mapping(gap.get("evidence"))
        for field in ("token_ids", "upstream_relation_ids"):
            _assert_sorted(
                evidence.get(field),
                "EA_VALIDATE_STRICT_SUBJECT_GAP_EVIDENCE_ORDER",
                f"Strict diagnostics error: diagnostics.subject_role_gaps[*].evidence.{field} must be sorted.",
            )

        assertion = assertion_by_id[assertion_id]
        actor_mentions = sum(
            len(_list(entry.get("mention_ids")))
            for entry in _list(assertion.get("arguments"))
            if str(entry.get("role") or "") == "actor"
        )
        if actor_mentions:
            fail_validation(
                "EA_VALIDATE_STRICT_SUBJECT_GAP_ACTOR_CONSISTENCY",
                f"Strict diagnostics error: subject_role_gap assertion {assertion_id} must not contain actor role entries.",
            )


def validate_fragmentation(document: Mapping[str, Any]) -> None:
    fragmentation = _mapping(document.get("diagnostics")).get("fragmentation")
    if not isinstance(fragmentation, Mapping):
        return
    previous = None
    for row in _list(fragmentation.get("per_segment")):
        segment_id = str(_mapping(row).get("segment_id") or "")
        if previous is not None and previous > segment_id:
            fail_validation(
                "EA_VALIDATE_STRICT_FRAGMENTATION_ORDER",
                "Strict diagnostics error: diagnostics.fragmentation.per_segment must be sorted by segment_id.",
            )
        previous = segment_id


def validate_gap_signals(document: Mapping[str, Any]) -> None:
    signals = _mapping(document.get("diagnostics")).get("gap_signals")
    if not isinstance(signals, Mapping):
        return
    for key in GAP_SIGNAL_KEYS:
        if not isinstance(signals.get(key), bool):
            fail_validation(
                "EA_VALIDATE_STRICT_GAP_SIGNALS",
                f"Strict diagnostics error: diagnostics.gap_signals.{key} must be boolean when gap_signals is present.",
            )


def validate_suppressed_assertions_strict(document: Mapping[str, Any], assertion_by_id: Mapping[str, Any]) -> None:
    """Check that every suppression trace is internally consistent.

    Trace fields beyond ``id``, ``predicate`` and ``diagnostics`` are optional;
    when present they must agree with ``diagnostics.suppressed_by``.
    """

    code = "EA_VALIDATE_STRICT_SUPPRESSED_SEMANTICS"
    for item in _list(_mapping(document.get("diagnostics")).get("suppressed_assertions")):
        item = _mapping(item)
        suppressed_id = str(item.get("id") or "")
        prefix = f"Strict diagnostics error: suppressed assertion {suppressed_id}"
        suppressed_by = _mapping(_mapping(item.get("diagnostics")).get("suppressed_by"))
        target_id = str(suppressed_by.get("target_assertion_id") or "")
        target = assertion_by_id.get(target_id)
        target_head = str(_mapping(_mapping(target).get("predicate")).get("head_token_id") or "")
        source_head = str(_mapping(item.get("predicate")).get("head_token_id") or "")
        reason = str(suppressed_by.get("reason") or "")

        if "suppressed_assertion_id" in item and item["suppressed_assertion_id"] != suppressed_id:
            fail_validation(code, f"{prefix} has mismatching suppressed_assertion_id.")
        if "host_assertion_id" in item and item["host_assertion_id"] != target_id:
            fail_validation(
                code, f"{prefix} host_assertion_id must match diagnostics.suppressed_by.target_assertion_id."
            )
        if "reason" in item and item["reason"] != reason:
            fail_validation(code, f"{prefix} top-level reason must match diagnostics.suppressed_by.reason.")

        by_token_ids = _list(_mapping(suppressed_by.get("evidence")).get("token_ids"))
        _assert_sorted(by_token_ids, code, f"{prefix} suppressed_by.evidence.token_ids must be sorted.")
        _assert_sorted(
            _mapping(item.get("evidence")).get("token_ids"), code, f"{prefix} evidence.token_ids must be sorted."
        )
        _assert_sorted(item.get("transferred_buckets"), code, f"{prefix} transferred_buckets must be sorted.")
        _assert_sorted(item.get("transferred_mention_ids"), code, f"{prefix} transferred_mention_ids must be sorted.")

        if reason in HEAD_EVIDENCE_REASONS:
            if len(by_token_ids) < 2:
                fail_validation(
                    code, f"{prefix} reason={reason} requires token_ids evidence with source/target predicate tokens."
                )
            if source_head not in by_token_ids or target_head not in by_token_ids:
                fail_validation(
                    code,
                    f"{prefix} reason={reason} token_ids evidence must include source and target predicate head tokens.",
                )
        if reason == "role_carrier_suppressed_v2_nominal" and str(item.get("predicate_class")) != "nominal_head":
            fail_validation(
                code, f"{prefix} reason=role_carrier_suppressed_v2_nominal requires predicate_class=nominal_head."
            )
        if reason == "copula_bucket_sink_suppressed" and str(item.get("predicate_class")) not in ("copula", "auxiliary"):
            fail_validation(
                code, f"{prefix} reason=copula_bucket_sink_suppressed requires predicate_class copula|auxiliary."
            )
        if reason in TRANSFER_REASONS:
            if not isinstance(item.get("transferred_buckets"), list) or not isinstance(
                item.get("transferred_mention_ids"), list
            ):
                fail_validation(
                    code, f"{prefix} reason={reason} requires transferred_buckets and transferred_mention_ids arrays."
                )
            host_refs = collect_assertion_mention_refs(target) if target is not None else set()
            for mention_id in item["transferred_mention_ids"]:
                if mention_id not in host_refs:
                    fail_validation(
                        code, f"{prefix} transferred mention {mention_id} must exist in host assertion mention refs."
                    )


def validate_diagnostics_strict(document: Mapping[str, Any]) -> None:
    assertion_by_id = _id_map(document.get("assertions"))
    mention_by_id = _id_map(document.get("mentions"))
    token_by_id = _id_map(document.get("tokens"))
    _assert_sorted(
        _mapping(document.get("diagnostics")).get("warnings"),
        "EA_VALIDATE_STRICT_WARNING_ORDER",
        "Strict diagnostics error: diagnostics.warnings must be sorted.",
    )
    validate_suppression_eligibility(_list(document.get("assertions")), assertion_by_id)
    validate_fragmentation(document)
    validate_gap_signals(document)
    validate_coordination_groups(document, assertion_by_id)
    validate_subject_role_gaps(document, assertion_by_id, mention_by_id, token_by_id)
    validate_suppressed_assertions_strict(document, assertion_by_id)


__all__ = ["collect_assertion_mention_refs", "validate_diagnostics_strict"]
