"""Segment alignment of tokens, mentions and assertions."""

from __future__ import annotations

from typing import Any, Dict, Mapping

from ..core.determinism import is_number
from .errors import fail_validation


def build_segment_map(document: Mapping[str, Any]) -> Dict[str, Mapping[str, Any]]:
    return {
        s["id"]: s
        for s in document.get("segments") or []
        if isinstance(s, Mapping) and isinstance(s.get("id"), str) and s["id"]
    }


def _ensure_segment(segment_by_id: Mapping[str, Any], segment_id: Any, message: str) -> None:
    if not isinstance(segment_id, str) or segment_id not in segment_by_id:
        fail_validation("EA_VALIDATE_UNKNOWN_SEGMENT_REFERENCE", message)


def validate_token_segment_alignment(document: Mapping[str, Any], segment_by_id: Mapping[str, Any]) -> None:
    for token in document.get("tokens") or []:
        _ensure_segment(
            segment_by_id,
            token.get("segment_id"),
            f"Integrity error: token {token.get('id') or '<unknown>'} references unknown segment_id.",
        )


def validate_mention_segment_alignment(
    document: Mapping[str, Any],
    segment_by_id: Mapping[str, Any],
    token_by_id: Mapping[str, Mapping[str, Any]],
) -> None:
    for mention in document.get("mentions") or []:
        mention_id = mention.get("id") or "<unknown>"
        segment_id = mention.get("segment_id")
        _ensure_segment(segment_by_id, segment_id, f"Integrity error: mention {mention_id} references unknown segment_id.")

        starts, ends = [], []
        for token_id in mention.get("token_ids") or []:
            token = token_by_id.get(token_id)
            if token is None:
                continue
            if token.get("segment_id") != segment_id:
                fail_validation(
                    "EA_VALIDATE_MENTION_SEGMENT_MISMATCH",
                    f"Integrity error: mention {mention_id} includes token {token_id} from another segment.",
                )
            span = token.get("span") or {}
            if is_number(span.get("start")):
                starts.append(span["start"])
            if is_number(span.get("end")):
                ends.append(span["end"])

        head = token_by_id.get(mention.get("head_token_id"))
        if head is not None and head.get("segment_id") != segment_id:
            fail_validation(
                "EA_VALIDATE_MENTION_SEGMENT_MISMATCH",
                f"Integrity error: mention {mention_id} head token is not in mention.segment_id.",
            )

        span = mention.get("span") if isinstance(mention.get("span"), Mapping) else {}
        segment = segment_by_id.get(segment_id)
        if segment is None or not is_number(span.get("start")) or not is_number(span.get("end")):
            continue
        if span["start"] < segment["span"]["start"] or span["end"] > segment["span"]["end"]:
            fail_validation(
                "EA_VALIDATE_MENTION_SPAN_SEGMENT_BOUNDS",
                f"Integrity error: mention {mention_id} span falls outside its segment bounds.",
            )
        if starts and ends and (span["start"] > min(starts) or span["end"] < max(ends)):
            fail_validation(
                "EA_VALIDATE_MENTION_SPAN_TOKEN_COVERAGE",
                f"Integrity error: mention {mention_id} span must cover all mention token spans.",
            )


def validate_assertion_cross_field_alignment(
    document: Mapping[str, Any],
    segment_by_id: Mapping[str, Any],
    mention_by_id: Mapping[str, Mapping[str, Any]],
    token_by_id: Mapping[str, Mapping[str, Any]],
) -> None:
    for assertion in document.get("assertions") or []:
        assertion_id = assertion.get("id") or "<unknown>"
        segment_id = assertion.get("segment_id")
        _ensure_segment(
            segment_by_id, segment_id, f"Integrity error: assertion {assertion_id} references unknown segment_id."
        )
        predicate = assertion.get("predicate") if isinstance(assertion.get("predicate"), Mapping) else {}
        predicate_mention = mention_by_id.get(predicate.get("mention_id"))
        if predicate_mention is not None and predicate_mention.get("segment_id") != segment_id:
            fail_validation(
                "EA_VALIDATE_ASSERTION_SEGMENT_MISMATCH",
                f"Integrity error: assertion {assertion_id} predicate mention segment mismatch.",
            )
        if predicate_mention is not None and predicate.get("head_token_id") != predicate_mention.get("head_token_id"):
            fail_validation(
                "EA_VALIDATE_PREDICATE_HEAD_MISMATCH",
                f"Integrity error: assertion {assertion_id} predicate.head_token_id does not match mention head token.",
            )
        head = token_by_id.get(predicate.get("head_token_id"))
        if head is not None and head.get("segment_id") != segment_id:
            fail_validation(
                "EA_VALIDATE_ASSERTION_SEGMENT_MISMATCH",
                f"Integrity error: assertion {assertion_id} predicate head token segment mismatch.",
            )
        for field, label in (("arguments", "argument"), ("modifiers", "modifier")):
            for entry in assertion.get(field) or []:
                for mention_id in entry.get("mention_ids") or []:
                    mention = mention_by_id.get(mention_id)
                    if mention is not None and mention.get("segment_id") != segment_id:
                        fail_validation(
                            "EA_VALIDATE_ASSERTION_SEGMENT_MISMATCH",
                            f"Integrity error: assertion {assertion_id} {label} mention {mention_id} segment mismatch.",
                        )


__all__ = [
    "build_segment_map",
    "validate_assertion_cross_field_alignment",
    "validate_mention_segment_alignment",
    "validate_token_segment_alignment",
]
