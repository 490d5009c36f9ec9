"""Resolve MWE, chunk and token candidates into mentions.

The primary mentions of a segment partition its tokens: winning MWEs claim
their tokens greedily and every unclaimed token gets a token-fallback mention.
Losing MWEs, shadow tokens under claimed MWEs and accepted chunks are kept as
non-primary mentions so that every span stays addressable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .determinism import find_selector, is_number, normalize_ids
from .mention_evidence import (
    WIKIPEDIA_TITLE_INDEX_SOURCE,
    build_mention_lexicon_evidence,
    get_mwe_head_evidence,
    get_mwe_lexicon_evidence,
)
from .mention_head_resolution import (
    HeadResolution,
    build_chunk_head_maps,
    build_dependency_observation_maps,
    resolve_mention_head,
)
from .models import Mention, Span

logger = logging.getLogger(__name__)


@dataclass
class MentionBuild:
    mentions: List[Mention]
    token_to_primary_mention: Dict[str, str]
    token_to_all_mentions: Dict[str, List[str]]
    unresolved_head_map: Dict[str, str] = field(default_factory=dict)

    @property
    def mention_by_id(self) -> Dict[str, Mention]:
        return {m.id: m for m in self.mentions}


@dataclass
class _Draft:
    base_id: str
    kind: str
    priority: int
    token_ids: List[str]
    head: HeadResolution
    span: Span
    segment_id: str
    is_primary: bool
    provenance: Dict[str, Any]

    def sort_key(self) -> str:
        return (
            f"{self.segment_id}|{self.span.start:08d}|{self.span.end:08d}|{self.kind}|{self.base_id}"
        )


def mention_sort_key(mention: Mention) -> str:
    return f"{mention.segment_id}|{mention.span.start:08d}|{mention.span.end:08d}|{mention.kind}|{mention.id}"


def _selector_candidate(annotation: Mapping[str, Any], token_by_id: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """Token ids, span and segment of an annotation, or ``None`` if malformed."""

    token_selector = find_selector(annotation, "TokenSelector")
    text_position = find_selector(annotation, "TextPositionSelector")
    raw_ids = token_selector.get("token_ids") if token_selector else None
    if not isinstance(raw_ids, list) or not raw_ids:
        return None
    span = text_position.get("span") if text_position else None
    if not isinstance(span, Mapping) or not is_number(span.get("start")) or not is_number(span.get("end")):
        return None
    ids = normalize_ids(raw_ids)
    if not ids or any(i not in token_by_id for i in ids):
        return None
    segment_id = token_by_id[ids[0]]["segment_id"]
    if any(token_by_id[i]["segment_id"] != segment_id for i in ids):
        return None
    return {"token_ids": ids, "span": Span(int(span["start"]), int(span["end"])), "segment_id": segment_id}


def _provenance(source_kind: str, head_strategy: str, lexicon: Optional[Dict[str, Any]], annotation_id: str = "") -> Dict[str, Any]:
    provenance: Dict[str, Any] = {}
    if annotation_id:
        provenance["source_annotation_id"] = annotation_id
    provenance["source_kind"] = source_kind
    provenance["head_strategy"] = head_strategy
    if lexicon is not None:
        provenance["lexicon_source"] = WIKIPEDIA_TITLE_INDEX_SOURCE
        provenance["lexicon_evidence"] = lexicon
    return provenance


def build_mentions(
    relations_seed: Mapping[str, Any],
    mwe_seed: Mapping[str, Any],
    heads_seed: Mapping[str, Any],
    token_by_id: Mapping[str, Mapping[str, Any]],
    token_wiki_by_id: Mapping[str, Mapping[str, Any]],
) -> MentionBuild:
    candidates = []
    for annotation in mwe_seed.get("annotations") or []:
        if not isinstance(annotation, Mapping):
            continue
        if annotation.get("kind") != "mwe" or annotation.get("status") != "accepted":
            continue
        candidate = _selector_candidate(annotation, token_by_id)
        if candidate is None:
            continue
        candidate["annotation_id"] = annotation["id"] if isinstance(annotation.get("id"), str) else ""
        candidate["explicit_head"] = get_mwe_head_evidence(annotation)
        candidate["lexicon_evidence"] = get_mwe_lexicon_evidence(annotation)
        candidates.append(candidate)

    candidates.sort(
        key=lambda c: (-len(c["token_ids"]), -c["span"].length, c["span"].start, c["annotation_id"])
    )

    claimed = set()
    winners = []
    alternatives = []
    for candidate in candidates:
        if any(t in claimed for t in candidate["token_ids"]):
            alternatives.append(candidate)
            continue
        winners.append(candidate)
        claimed.update(candidate["token_ids"])

    chunk_by_id, head_by_chunk_id = build_chunk_head_maps(heads_seed)
    incoming_inside, _ = build_dependency_observation_maps(relations_seed, token_by_id)

    def resolve(token_ids, explicit_head):
        return resolve_mention_head(
            token_ids, explicit_head, chunk_by_id, head_by_chunk_id, incoming_inside, token_by_id
        )

    drafts: List[_Draft] = []
    for group, tag, priority, is_primary, source_kind in (
        (winners, "mwe", 0, True, "mwe_materialized"),
        (alternatives, "mwe_alt", 2, False, "mwe_alternative"),
    ):
        for candidate in group:
            head = resolve(candidate["token_ids"], candidate["explicit_head"])
            lexicon = build_mention_lexicon_evidence(
                candidate["token_ids"], token_wiki_by_id, candidate["lexicon_evidence"]
            )
            span = candidate["span"]
            drafts.append(
                _Draft(
                    base_id=f"m:{candidate['segment_id']}:{span.start}-{span.end}:{tag}",
                    kind="mwe",
                    priority=priority,
                    token_ids=candidate["token_ids"],
                    head=head,
                    span=span,
                    segment_id=candidate["segment_id"],
                    is_primary=is_primary,
                    provenance=_provenance(source_kind, head.strategy, lexicon, candidate["annotation_id"]),
                )
            )

    tokens_in_order = sorted(token_by_id.values(), key=lambda t: t["i"])
    for shadow in (False, True):
        for token in tokens_in_order:
            if (token["id"] in claimed) != shadow:
                continue
            lexicon = build_mention_lexicon_evidence([token["id"]], token_wiki_by_id)
            span = Span(int(token["span"]["start"]), int(token["span"]["end"]))
            tag = "token_shadow" if shadow else "token"
            drafts.append(
                _Draft(
                    base_id=f"m:{token['segment_id']}:{span.start}-{span.end}:{tag}",
                    kind="token",
                    priority=4 if shadow else 1,
                    token_ids=[token["id"]],
                    head=HeadResolution(token["id"], "explicit"),
                    span=span,
                    segment_id=token["segment_id"],
                    is_primary=not shadow,
                    provenance=_provenance(tag if shadow else "token_fallback", "explicit", lexicon),
                )
            )

    for chunk_id in sorted(chunk_by_id):
        candidate = _selector_candidate(chunk_by_id[chunk_id], token_by_id)
        if candidate is None:
            continue
        head = resolve(candidate["token_ids"], head_by_chunk_id.get(chunk_id))
        lexicon = build_mention_lexicon_evidence(candidate["token_ids"], token_wiki_by_id)
        span = candidate["span"]
        drafts.append(
            _Draft(
                base_id=f"m:{candidate['segment_id']}:{span.start}-{span.end}:chunk",
                kind="chunk",
                priority=3,
                token_ids=candidate["token_ids"],
                head=head,
                span=span,
                segment_id=candidate["segment_id"],
                is_primary=False,
                provenance=_provenance("chunk_accepted", head.strategy, lexicon, chunk_id),
            )
        )

    drafts.sort(key=_Draft.sort_key)

    mentions: List[Mention] = []
    unresolved_head_map: Dict[str, str] = {}
    base_counts: Dict[str, int] = {}
    assigned = set()
    for draft in drafts:
        n = base_counts.get(draft.base_id, 0) + 1
        mention_id = draft.base_id if n == 1 else f"{draft.base_id}:{n}"
        while mention_id in assigned:
            n += 1
            mention_id = f"{draft.base_id}:{n}"
        base_counts[draft.base_id] = n
        assigned.add(mention_id)
        mentions.append(
            Mention(
                id=mention_id,
                kind=draft.kind,
                priority=draft.priority,
                token_ids=tuple(draft.token_ids),
                head_token_id=draft.head.head,
                span=draft.span,
                segment_id=draft.segment_id,
                is_primary=draft.is_primary,
                provenance=draft.provenance,
            )
        )
        if draft.head.unresolved:
            unresolved_head_map[mention_id] = draft.head.unresolved

    token_to_primary: Dict[str, str] = {}
    token_to_all: Dict[str, List[str]] = {}
    for mention in mentions:
        for token_id in mention.token_ids:
            if mention.is_primary:
                token_to_primary[token_id] = mention.id
            token_to_all.setdefault(token_id, []).append(mention.id)
    for ids in token_to_all.values():
        ids.sort()

    logger.debug(
        "Built %d mentions (%d primary, %d MWE winners, %d alternatives)",
        len(mentions),
        sum(1 for m in mentions if m.is_primary),
        len(winners),
        len(alternatives),
    )
    return MentionBuild(mentions, token_to_primary, token_to_all, unresolved_head_map)


__all__ = ["MentionBuild", "build_mentions", "mention_sort_key"]
