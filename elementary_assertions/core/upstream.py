from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

RELATION_EXTRACTION_SOURCE = "relation-extraction"


def find_source(annotation: Any, name: str) -> Optional[Mapping[str, Any]]:
    if not isinstance(annotation, Mapping):
        return None
    for source in annotation.get("sources") or []:
        if isinstance(source, Mapping) and source.get("name") == name:
            return source
    return None


def annotation_has_source(annotation: Any, name: str) -> bool:
    return find_source(annotation, name) is not None


def _endpoint_id(annotation: Mapping[str, Any], key: str) -> Optional[str]:
    endpoint = annotation.get(key)
    if isinstance(endpoint, Mapping) and isinstance(endpoint.get("id"), str):
        return endpoint["id"]
    return None


def collect_step_relations(
    relations_seed: Mapping[str, Any], token_by_id: Mapping[str, Any]
) -> List[Dict[str, Any]]:
    """Collect accepted relation-extraction dependencies between known tokens."""

    out: List[Dict[str, Any]] = []
    for annotation in relations_seed.get("annotations") or []:
        if not isinstance(annotation, Mapping):
            continue
        if annotation.get("kind") != "dependency" or annotation.get("status") != "accepted":
            continue
        source = find_source(annotation, RELATION_EXTRACTION_SOURCE)
        if source is None:
            continue
        head_id = _endpoint_id(annotation, "head")
        dep_id = _endpoint_id(annotation, "dep")
        if head_id not in token_by_id or dep_id not in token_by_id:
            continue
        evidence = source.get("evidence")
        out.append(
            {
                "id": annotation["id"] if isinstance(annotation.get("id"), str) else "",
                "label": str(annotation.get("label") or ""),
                "head_token_id": head_id,
                "dep_token_id": dep_id,
                "evidence": dict(evidence) if isinstance(evidence, Mapping) else {},
            }
        )
    return out


__all__ = [
    "RELATION_EXTRACTION_SOURCE",
    "annotation_has_source",
    "collect_step_relations",
    "find_source",
]
