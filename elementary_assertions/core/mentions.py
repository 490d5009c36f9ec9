"""Label vocabularies and the shared mention tie-break.

:func:`choose_best_mention_for_token` is the single place that decides which
of several overlapping mentions stands for a token. Relation projection,
dependent selection and fallback bucket building all go through it.
"""

from __future__ import annotations

import re
import sys
import unicodedata
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Tuple

_APOSTROPHES = re.compile("[‘’ʼ]")
_DASHES = re.compile("[‐-―]")
_WHITESPACE = re.compile(r"\s+")

SUBJECT_ROLE_LABELS = frozenset(
    {
        "actor",
        "agent",
        "subject",
        "subj",
        "nsubj",
        "nsubjpass",
        "csubj",
        "csubjpass",
        "agent_passive",
    }
)
THEME_ROLE_LABELS = frozenset({"theme", "patient", "obj", "dobj"})
COMPARE_LABELS = frozenset({"compare", "compare_gt", "compare_lt"})
QUANTIFIER_LABELS = frozenset({"quantifier", "quantifier_scope", "scope_quantifier"})


def normalize_wiki_surface(surface: Any) -> str:
    """Fold a surface string the way title lookups compare them."""

    if not isinstance(surface, str):
        return ""
    text = unicodedata.normalize("NFKC", surface)
    text = _APOSTROPHES.sub("'", text)
    text = _DASHES.sub("-", text)
    return _WHITESPACE.sub(" ", text).strip().lower()


def _positive_count(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def has_positive_wiki_signal(evidence: Any) -> bool:
    if not isinstance(evidence, Mapping):
        return False
    if evidence.get("wiki_exact_match") is True:
        return True
    if _positive_count(evidence.get("wiki_prefix_count")):
        return True
    if _positive_count(evidence.get("wiki_parenthetical_variant_count")):
        return True
    return any(
        evidence.get(flag) is True
        for flag in (
            "wiki_hyphen_space_variant_match",
            "wiki_apostrophe_variant_match",
            "wiki_singular_plural_variant_match",
            "wiki_any_signal",
        )
    )


def is_subject_role_label(role: Any) -> bool:
    return str(role or "") in SUBJECT_ROLE_LABELS


def role_to_slot(role: str) -> Tuple[str, Optional[str]]:
    """Map a relation label onto ``(slot, other_role)``.

    ``other_role`` is only set for the ``other`` slot and names the bucket.
    """

    if is_subject_role_label(role):
        return "actor", None
    if role in THEME_ROLE_LABELS:
        return "theme", None
    if role == "attribute":
        return "attr", None
    if role == "topic":
        return "topic", None
    if role == "location":
        return "location", None
    return "other", role


def is_compare_label(label: Any) -> bool:
    return str(label or "") in COMPARE_LABELS


def is_quantifier_label(label: Any) -> bool:
    return str(label or "") in QUANTIFIER_LABELS


def mention_has_lexicon_evidence(mention: Any) -> bool:
    return mention is not None and mention.lexicon_evidence is not None


def mention_projection_priority_key(mention: Any):
    """Sort key: widest span first, then lower priority, lexicon evidence, id."""

    if mention is None:
        return (0, sys.maxsize, 1, "")
    return (
        -len(mention.token_ids),
        mention.priority,
        0 if mention_has_lexicon_evidence(mention) else 1,
        mention.id,
    )


def compare_mention_projection_priority(a: Any, b: Any) -> int:
    ka = mention_projection_priority_key(a)
    kb = mention_projection_priority_key(b)
    return (ka > kb) - (ka < kb)


@dataclass(frozen=True)
class MentionChoice:
    mention_id: Optional[str]
    candidate_count: int
    chosen_was_first: bool


def choose_best_mention_for_token(
    token_id: str,
    segment_id: str,
    mention_by_id: Mapping[str, Any],
    candidate_mention_ids: Optional[Iterable[str]],
    exclude_mention_id: Optional[str] = None,
) -> MentionChoice:
    source_ids = [i for i in candidate_mention_ids or [] if isinstance(i, str)]
    filtered = []
    for mention_id in source_ids:
        if exclude_mention_id and mention_id == exclude_mention_id:
            continue
        mention = mention_by_id.get(mention_id)
        if mention is None or mention.segment_id != segment_id:
            continue
        if token_id in mention.token_ids:
            filtered.append(mention_id)
    if not filtered:
        return MentionChoice(None, 0, True)
    chosen = min(filtered, key=lambda i: mention_projection_priority_key(mention_by_id[i]))
    return MentionChoice(chosen, len(filtered), source_ids[0] == chosen)


__all__ = [
    "COMPARE_LABELS",
    "MentionChoice",
    "QUANTIFIER_LABELS",
    "SUBJECT_ROLE_LABELS",
    "THEME_ROLE_LABELS",
    "choose_best_mention_for_token",
    "compare_mention_projection_priority",
    "has_positive_wiki_signal",
    "is_compare_label",
    "is_quantifier_label",
    "is_subject_role_label",
    "mention_has_lexicon_evidence",
    "mention_projection_priority_key",
    "normalize_wiki_surface",
    "role_to_slot",
]
