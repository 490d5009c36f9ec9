"""Immutable records shared by the mention builder and later stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from .determinism import deep_clone_json

MENTION_KINDS = ("mwe", "chunk", "token")


@dataclass(frozen=True)
class Span:
    """Half-open character span in UTF-16 code units of ``canonical_text``."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start

    def to_dict(self) -> Dict[str, int]:
        return {"start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Span":
        return cls(start=int(data["start"]), end=int(data["end"]))


@dataclass(frozen=True)
class Mention:
    """A candidate reference over one or more tokens of a single segment.

    Mentions are created once by :func:`build_mentions` and referenced by id
    afterwards; later stages never edit them.
    """

    id: str
    kind: str
    priority: int
    token_ids: Tuple[str, ...]
    head_token_id: str
    span: Span
    segment_id: str
    is_primary: bool
    provenance: Dict[str, Any] = field(default_factory=dict)

    @property
    def lexicon_evidence(self) -> Optional[Dict[str, Any]]:
        evidence = self.provenance.get("lexicon_evidence")
        return evidence if isinstance(evidence, dict) else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "priority": self.priority,
            "token_ids": list(self.token_ids),
            "head_token_id": self.head_token_id,
            "span": self.span.to_dict(),
            "segment_id": self.segment_id,
            "is_primary": self.is_primary,
            "provenance": deep_clone_json(self.provenance),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Mention":
        return cls(
            id=str(data["id"]),
            kind=str(data["kind"]),
            priority=int(data.get("priority", 0)),
            token_ids=tuple(data.get("token_ids") or ()),
            head_token_id=str(data["head_token_id"]),
            span=Span.from_dict(data["span"]),
            segment_id=str(data["segment_id"]),
            is_primary=bool(data.get("is_primary", False)),
            provenance=deep_clone_json(dict(data.get("provenance") or {})),
        )


__all__ = ["MENTION_KINDS", "Mention", "Span"]
