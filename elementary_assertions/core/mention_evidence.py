"""Provenance-only lexicon evidence attached to mentions and assertions.

Nothing here feeds back into mention or assertion semantics: the payloads are
copied through to the output so downstream consumers can audit them.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from .determinism import deep_clone_json, normalize_ids
from .upstream import find_source

MWE_MATERIALIZATION_SOURCE = "mwe-materialization"
WIKIPEDIA_TITLE_INDEX_SOURCE = "wikipedia-title-index"


def get_mwe_head_evidence(mwe: Mapping[str, Any]) -> Optional[str]:
    for source in mwe.get("sources") or []:
        if not isinstance(source, Mapping) or source.get("name") != MWE_MATERIALIZATION_SOURCE:
            continue
        evidence = source.get("evidence")
        if isinstance(evidence, Mapping) and isinstance(evidence.get("head_token_id"), str):
            return evidence["head_token_id"]
    return None


def get_mwe_lexicon_evidence(mwe: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    source = find_source(mwe, WIKIPEDIA_TITLE_INDEX_SOURCE)
    if source is None or not isinstance(source.get("evidence"), Mapping):
        return None
    return deep_clone_json(dict(source["evidence"]))


def build_mention_lexicon_evidence(
    token_ids: Iterable[str],
    token_wiki_by_id: Mapping[str, Mapping[str, Any]],
    mwe_lexicon_evidence: Optional[Mapping[str, Any]] = None,
) -> Optional[Dict[str, Any]]:
    token_evidence = [
        {"token_id": token_id, "evidence": deep_clone_json(dict(token_wiki_by_id[token_id]))}
        for token_id in normalize_ids(token_ids)
        if token_id in token_wiki_by_id
    ]
    if not token_evidence and mwe_lexicon_evidence is None:
        return None
    out: Dict[str, Any] = {}
    if mwe_lexicon_evidence is not None:
        out["mwe"] = deep_clone_json(dict(mwe_lexicon_evidence))
    if token_evidence:
        out["tokens"] = token_evidence
    return out


def build_assertion_wiki_signals(
    predicate_mention_id: str,
    relations: Iterable[Mapping[str, Any]],
    mention_by_id: Mapping[str, Any],
) -> Optional[Dict[str, List[Dict[str, Any]]]]:
    """Collect lexicon evidence for the predicate and every dependent mention."""

    mention_ids = {predicate_mention_id}
    for relation in relations or []:
        if isinstance(relation.get("dep_mention_id"), str):
            mention_ids.add(relation["dep_mention_id"])

    mention_evidence = []
    for mention_id in sorted(mention_ids):
        mention = mention_by_id.get(mention_id)
        if mention is None or mention.lexicon_evidence is None:
            continue
        mention_evidence.append(
            {
                "mention_id": mention_id,
                "token_ids": normalize_ids(mention.token_ids),
                "evidence": deep_clone_json(mention.lexicon_evidence),
            }
        )
    if not mention_evidence:
        return None
    return {"mention_evidence": mention_evidence}


__all__ = [
    "MWE_MATERIALIZATION_SOURCE",
    "WIKIPEDIA_TITLE_INDEX_SOURCE",
    "build_assertion_wiki_signals",
    "build_mention_lexicon_evidence",
    "get_mwe_head_evidence",
    "get_mwe_lexicon_evidence",
]
