from __future__ import annotations

from typing import Any, Dict, List, Mapping

from .determinism import find_selector, is_number, normalize_ids


def to_annotation_summary(annotation: Mapping[str, Any]) -> Dict[str, Any]:
    token_selector = find_selector(annotation, "TokenSelector")
    text_position = find_selector(annotation, "TextPositionSelector")
    summary: Dict[str, Any] = {
        "id": annotation["id"] if isinstance(annotation.get("id"), str) else "",
        "kind": str(annotation.get("kind") or ""),
        "status": str(annotation.get("status") or ""),
    }
    if isinstance(annotation.get("label"), str):
        summary["label"] = annotation["label"]
    token_ids = token_selector.get("token_ids") if token_selector else None
    summary["token_ids"] = normalize_ids(token_ids) if isinstance(token_ids, list) else []
    span = text_position.get("span") if text_position else None
    if isinstance(span, Mapping) and is_number(span.get("start")) and is_number(span.get("end")):
        summary["span"] = {"start": span["start"], "end": span["end"]}
    summary["source_names"] = normalize_ids(
        source.get("name") for source in annotation.get("sources") or [] if isinstance(source, Mapping)
    )
    return summary


def _summary_sort_key(summary: Mapping[str, Any]):
    span = summary.get("span") or {}
    return (summary["kind"], span.get("start", -1), span.get("end", -1), summary["id"])


def build_accepted_annotations_inventory(relations_seed: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Summarise every accepted upstream annotation in a stable order."""

    summaries = [
        to_annotation_summary(annotation)
        for annotation in relations_seed.get("annotations") or []
        if isinstance(annotation, Mapping) and annotation.get("status") == "accepted"
    ]
    return sorted(summaries, key=_summary_sort_key)


__all__ = ["build_accepted_annotations_inventory", "to_annotation_summary"]
