"""Human-readable views of an elementary assertions document.

The renderer never edits the document. It validates first and then prints
segments, mentions, assertions and coverage in one of two layouts
(``compact`` or ``readable``) as plain text or Markdown.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .core.determinism import normalize_ids
from .core.output import utf16_slice
from .errors import InputContractError
from .validate import validate_elementary_assertions
from .validate.schema import reject_legacy_slots

FORMATS = ("txt", "md")
LAYOUTS = ("compact", "readable")

ACTOR_ROLES = frozenset({"actor", "subject", "agent", "nsubj", "nsubjpass", "csubj", "csubjpass"})
ROLE_TO_COLUMN = {"theme": "theme", "attribute": "attr", "topic": "topic", "location": "location"}
SLOT_COLUMNS = ("actor", "theme", "attr", "topic", "location")

_POSSESSIVE = re.compile(r"([A-Za-z0-9]) (['’]s)\b")
_LAST = 10**12


@dataclass(frozen=True)
class RenderOptions:
    format: str = "txt"
    layout: str = "compact"
    segments: bool = True
    mentions: bool = True
    coverage: bool = True
    debug_ids: bool = False
    normalize_determiners: bool = True
    render_uncovered_delta: bool = False

    @classmethod
    def from_mapping(cls, options: Optional[Mapping[str, Any]]) -> "RenderOptions":
        data = dict(options or {})
        fmt = data.get("format") or "txt"
        layout = data.get("layout") or "compact"
        if fmt not in FORMATS:
            raise InputContractError("Invalid value for format: expected txt|md")
        if layout not in LAYOUTS:
            raise InputContractError("Invalid value for layout: expected compact|readable")
        flags = {}
        for name in (
            "segments",
            "mentions",
            "coverage",
            "debug_ids",
            "normalize_determiners",
            "render_uncovered_delta",
        ):
            if data.get(name) is not None:
                flags[name] = bool(data[name])
        return cls(format=fmt, layout=layout, **flags)


class _Lines:
    """Collects output lines, choosing txt or Markdown decorations."""

    def __init__(self, md: bool) -> None:
        self.md = md
        self.items: List[str] = []

    def heading(self, title: str, level: int = 2) -> None:
        self.items.append(f"\n{'#' * level} {title}" if self.md else f"\n{title}")

    def item(self, text: str) -> None:
        self.items.append(f"- {text}" if self.md else text)

    def sub(self, text: str, txt_indent: str = "  ") -> None:
        self.items.append(f"  - {text}" if self.md else f"{txt_indent}{text}")

    def raw(self, text: str) -> None:
        self.items.append(text)

    def text(self) -> str:
        return "\n".join(self.items) + "\n"


class _WikiResolver:
    def __init__(self, document: Mapping[str, Any]) -> None:
        evidence = document.get("wiki_title_evidence") or {}
        predicate_matches = evidence.get("assertion_predicate_matches") or []
        self.by_mention = {m.get("mention_id"): m for m in evidence.get("mention_matches") or []}
        self.by_assertion = {m.get("assertion_id"): m for m in predicate_matches}
        self.by_predicate_mention = {m.get("predicate_mention_id"): m for m in predicate_matches}

    def mention(self, mention_id: str) -> Mapping[str, Any]:
        return self.by_mention.get(mention_id) or {}

    def predicate(self, assertion_id: str) -> Mapping[str, Any]:
        return self.by_assertion.get(assertion_id) or self.by_predicate_mention.get(assertion_id) or {}


def with_wiki_mark(text: str, evidence: Mapping[str, Any]) -> str:
    """Wrap ``text`` as ``⟦text|wiki:exact⟧`` or ``⟦text|wiki:prefix⟧`` when titles matched."""

    if evidence.get("exact_titles"):
        return f"⟦{text}|wiki:exact⟧"
    if evidence.get("prefix_titles"):
        return f"⟦{text}|wiki:prefix⟧"
    return text


def _pos_value(token: Mapping[str, Any], key: str) -> str:
    return str((token.get("pos") or {}).get(key) or "").upper()


def determiner_display(tokens: Sequence[Mapping[str, Any]]) -> Optional[str]:
    """Render ``the cart`` as ``(the) cart`` when the first token is a determiner."""

    ordered = sorted(tokens, key=lambda t: t["i"])
    if len(ordered) < 2:
        return None
    first = ordered[0]
    if "DT" not in (_pos_value(first, "coarse"), _pos_value(first, "tag")):
        return None
    det = str(first.get("surface") or "").strip()
    rest = " ".join(str(t.get("surface") or "") for t in ordered[1:])
    if not det or not rest:
        return None
    return f"({det.lower()}) {rest}"


class _Renderer:
    def __init__(self, document: Mapping[str, Any], options: RenderOptions) -> None:
        self.doc = document
        self.options = options
        self.lines = _Lines(options.format == "md")
        self.wiki = _WikiResolver(document)
        self.token_by_id = {t["id"]: t for t in document.get("tokens") or []}
        self.mention_by_id = {m["id"]: m for m in document.get("mentions") or []}

    # text helpers -----------------------------------------------------

    def mention_text(self, mention: Optional[Mapping[str, Any]]) -> str:
        if mention is None:
            return ""
        tokens = [self.token_by_id[t] for t in mention.get("token_ids") or [] if t in self.token_by_id]
        text = None
        if self.options.normalize_determiners:
            text = determiner_display(tokens)
        if text is None:
            text = " ".join(str(t.get("surface") or "") for t in sorted(tokens, key=lambda t: t["i"]))
        if self.options.layout != "compact":
            text = _POSSESSIVE.sub(r"\1\2", text)
        return text

    def marked_mention(self, mention_id: str) -> str:
        return with_wiki_mark(self.mention_text(self.mention_by_id.get(mention_id)), self.wiki.mention(mention_id))

    def head_index(self, mention_id: str) -> int:
        mention = self.mention_by_id.get(mention_id)
        token = self.token_by_id.get(mention["head_token_id"]) if mention else None
        return token["i"] if token else _LAST

    def by_head(self, mention_ids: Sequence[str]) -> List[str]:
        return sorted(mention_ids, key=lambda m: (self.head_index(m), m))

    # sections ---------------------------------------------------------

    def render(self) -> str:
        self.lines.raw("# Elementary Assertions" if self.lines.md else "Elementary Assertions")
        if self.options.segments:
            self.render_segments()
        if self.options.mentions:
            self.render_mentions()
        self.lines.heading("Assertions")
        self.render_assertions()
        self.render_suppressed()
        if self.options.coverage:
            self.render_coverage()
        return self.lines.text()

    def render_segments(self) -> None:
        self.lines.heading("Segments")
        segments = sorted(self.doc.get("segments") or [], key=lambda s: (s["span"]["start"], s["id"]))
        canonical_text = self.doc.get("canonical_text") or ""
        for segment in segments:
            text = utf16_slice(canonical_text, segment["span"]["start"], segment["span"]["end"])
            if self.options.layout != "compact":
                text = text.strip("\n")
            self.lines.item(f"Segment {segment['id']}")
            self.lines.sub(f'SegmentText: "{text}"', txt_indent="")

    def render_mentions(self) -> None:
        self.lines.heading("Mentions")
        mentions = sorted(
            self.doc.get("mentions") or [],
            key=lambda m: (m["segment_id"], m["span"]["start"], m["span"]["end"], m["kind"], m["id"]),
        )
        debug = self.options.debug_ids
        if self.options.layout == "compact":
            for m in mentions:
                head = self.token_by_id[m["head_token_id"]].get("surface")
                line = (
                    f'mention="{self.marked_mention(m["id"])}" kind={m["kind"]} '
                    f'is_primary={str(m["is_primary"]).lower()} head="{head}"'
                )
                if debug:
                    line += (
                        f" id={m['id']} head_token_id={m['head_token_id']} "
                        f"token_ids=[{','.join(m['token_ids'])}] span={m['span']['start']}-{m['span']['end']}"
                    )
                self.lines.item(line)
            return

        for segment_id in sorted({m["segment_id"] for m in mentions}):
            self.lines.item(f"Segment {segment_id}")
            for m in (m for m in mentions if m["segment_id"] == segment_id):
                head = self.token_by_id[m["head_token_id"]].get("surface")
                line = f"{m['span']['start']}-{m['span']['end']} {m['kind']} {self.marked_mention(m['id'])} (head={head})"
                if debug:
                    line += f" id={m['id']} head_token_id={m['head_token_id']} token_ids=[{','.join(m['token_ids'])}]"
                self.lines.sub(line, txt_indent="")

    def view_slots(self, assertion: Mapping[str, Any]) -> Dict[str, Any]:
        """Group role entries into display columns."""

        slots: Dict[str, Any] = {column: [] for column in SLOT_COLUMNS}
        other: List[Dict[str, Any]] = []
        for entry in assertion.get("arguments") or []:
            role = str(entry.get("role") or "")
            mention_ids = normalize_ids(entry.get("mention_ids"))
            if not role or not mention_ids:
                continue
            if role in ACTOR_ROLES:
                slots["actor"] = normalize_ids(slots["actor"] + mention_ids)
            elif role in ROLE_TO_COLUMN:
                column = ROLE_TO_COLUMN[role]
                slots[column] = normalize_ids(slots[column] + mention_ids)
            else:
                other.append({"role": role, "mention_ids": mention_ids})
        for entry in assertion.get("modifiers") or []:
            role = str(entry.get("role") or "")
            mention_ids = normalize_ids(entry.get("mention_ids"))
            if role and mention_ids:
                other.append({"role": role, "mention_ids": mention_ids})
        slots["other"] = sorted(other, key=lambda o: (o["role"], o["mention_ids"]))
        return slots

    def assertion_sort_key(self, assertion: Mapping[str, Any]) -> tuple:
        return (
            assertion.get("segment_id") or "",
            self.head_index(assertion["predicate"]["mention_id"]),
            assertion.get("id") or "",
        )

    def predicate_text(self, assertion: Mapping[str, Any], mark_quality: bool) -> str:
        mention = self.mention_by_id.get(assertion["predicate"]["mention_id"])
        text = with_wiki_mark(self.mention_text(mention), self.wiki.predicate(assertion["id"]))
        if mark_quality and (assertion.get("diagnostics") or {}).get("predicate_quality") == "low":
            text += " (predicate_quality=low)"
        return text

    def render_assertions(self) -> None:
        assertions = sorted(self.doc.get("assertions") or [], key=self.assertion_sort_key)
        for ordinal, assertion in enumerate(assertions, start=1):
            slots = self.view_slots(assertion)
            columns = {c: [self.marked_mention(m) for m in self.by_head(slots[c])] for c in SLOT_COLUMNS}
            others = [
                (o["role"], [self.marked_mention(m) for m in self.by_head(o["mention_ids"])]) for o in slots["other"]
            ]
            ops = format_operators(assertion.get("operators") or [])
            footnote = evidence_footnote(assertion)
            if self.options.layout == "compact":
                self._compact_assertion(assertion, columns, others, ops, footnote)
            else:
                self._readable_assertion(ordinal, assertion, columns, others, ops, footnote)
        if not self.lines.md and self.lines.items and self.lines.items[-1] == "":
            self.lines.items.pop()

    def _compact_assertion(self, assertion, columns, others, ops, footnote) -> None:
        parts = [f"pred={self.predicate_text(assertion, mark_quality=False)}"]
        parts.extend(f"{c}={'|'.join(columns[c])}" for c in SLOT_COLUMNS)
        parts.append("other=" + ";".join(f"{role}:{'|'.join(values)}" for role, values in others))
        parts.append(f"ops={ops}")
        line = " ".join(parts)
        if self.options.debug_ids:
            line = f"id={assertion['id']} predicate_mention_id={assertion['predicate']['mention_id']} {line}"
        self.lines.item(line)
        self.lines.sub(f"evidence: {footnote}")

    def _readable_assertion(self, ordinal, assertion, columns, others, ops, footnote) -> None:
        md = self.lines.md
        pred = self.predicate_text(assertion, mark_quality=True)
        suffix = ""
        if self.options.debug_ids:
            suffix = f" [id={assertion['id']} predicate_mention_id={assertion['predicate']['mention_id']}]"
        self.lines.item(f"Assertion {ordinal}: {pred}{suffix}")
        self.lines.sub(f"pred: {pred}", txt_indent="")
        for column in SLOT_COLUMNS:
            if columns[column]:
                self.lines.sub(f"{column}: {', '.join(columns[column])}", txt_indent="")
        if others:
            self.lines.sub("other:", txt_indent="")
            for role, values in others:
                self.lines.raw(f"{'    - ' if md else '  - '}{role}: {', '.join(values)}")
        if ops:
            self.lines.sub(f"ops: {ops}", txt_indent="")
        self.lines.sub(f"evidence: {footnote}", txt_indent="")
        if not md:
            self.lines.raw("")

    def render_suppressed(self) -> None:
        if not self.options.debug_ids:
            return
        suppressed = (self.doc.get("diagnostics") or {}).get("suppressed_assertions") or []
        if not suppressed:
            return
        self.lines.heading("Suppressed Assertions", level=3)
        for trace in sorted(suppressed, key=lambda s: str(s.get("id") or "")):
            by = (trace.get("diagnostics") or {}).get("suppressed_by") or {}
            upstream = (by.get("evidence") or {}).get("upstream_relation_ids") or []
            self.lines.item(
                f"id={trace.get('id')} kind={by.get('kind') or ''} "
                f"target_assertion_id={by.get('target_assertion_id') or ''} "
                f"reason={by.get('reason') or ''} upstream_relation_ids_len={len(upstream)}"
            )

    def coverage_order(self, mention_ids) -> List[str]:
        def key(mention_id: str) -> tuple:
            mention = self.mention_by_id.get(mention_id)
            if mention is None:
                return (_LAST, mention_id)
            return (mention["span"]["start"], mention_id)

        return sorted(mention_ids, key=key)

    def render_coverage(self) -> None:
        coverage = self.doc.get("coverage") or {}
        primary = coverage.get("primary_mention_ids") or []
        covered = coverage.get("covered_primary_mention_ids") or []
        uncovered = coverage.get("uncovered_primary_mention_ids") or []
        unresolved = coverage.get("unresolved") or []

        self.lines.heading("Coverage")
        self.lines.item(f"primary_mention_ids count: {len(primary)}")
        self.lines.item(f"covered_primary_mention_ids count: {len(covered)}")
        self.lines.item(f"uncovered_primary_mention_ids count: {len(uncovered)}")

        reason_by_mention: Dict[str, str] = {}
        for entry in sorted(unresolved, key=lambda u: (str(u.get("kind") or ""), str(u.get("reason") or ""))):
            reason_by_mention.setdefault(entry.get("mention_id"), str(entry.get("reason") or "unknown"))

        used = [
            self.mention_by_id[m]
            for m in self.coverage_order(used_mention_ids(self.doc.get("assertions") or []))
            if m in self.mention_by_id
        ]
        strictly, contained = [], []
        for mention_id in self.coverage_order(uncovered):
            mention = self.mention_by_id.get(mention_id)
            if mention is None:
                continue
            token_ids = set(mention.get("token_ids") or [])
            containers = sorted(
                c["id"] for c in used if c["id"] != mention_id and token_ids <= set(c.get("token_ids") or [])
            )
            (contained if containers else strictly).append((mention_id, containers))

        self.lines.heading("Strictly Uncovered Primary Mentions", level=3)
        for mention_id, _ in strictly:
            self.lines.item(
                f"{self.marked_mention(mention_id)} (mention_id={mention_id}, "
                f"reason={reason_by_mention.get(mention_id, 'unknown')})"
            )
        self.lines.heading("Contained Uncovered Primary Mentions", level=3)
        for mention_id, containers in contained:
            self.lines.item(
                f"{self.marked_mention(mention_id)} (mention_id={mention_id}, "
                f"contained_in=[{','.join(containers)}], reason={reason_by_mention.get(mention_id, 'unknown')})"
            )
        if self.options.render_uncovered_delta:
            self.lines.heading("Uncovered Primary Mentions Summary", level=3)
            self.lines.item(f"strictly_uncovered_count: {len(strictly)}")
            self.lines.item(f"contained_uncovered_count: {len(contained)}")

        self.lines.heading("Unresolved", level=3)
        groups: Dict[tuple, List[Mapping[str, Any]]] = {}
        for entry in unresolved:
            groups.setdefault((str(entry.get("kind")), str(entry.get("reason"))), []).append(entry)
        for kind, reason in sorted(groups):
            self.lines.item(f"{kind} / {reason}")
            entries = sorted(groups[(kind, reason)], key=lambda u: (u["segment_id"], u["mention_id"]))
            for entry in entries:
                if entry["mention_id"] not in self.mention_by_id:
                    continue
                line = f"{self.marked_mention(entry['mention_id'])} reason={entry['reason']}"
                if self.options.debug_ids:
                    line += self._unresolved_debug(entry)
                self.lines.sub(line)

    @staticmethod
    def _unresolved_debug(entry: Mapping[str, Any]) -> str:
        evidence = entry.get("evidence") or {}
        token_ids = evidence.get("token_ids") or []
        span = evidence.get("span")
        span_text = f"{span['start']}-{span['end']}" if isinstance(span, Mapping) else ""
        mention_ids = entry.get("mention_ids") or [entry["mention_id"]]
        upstream = evidence.get("upstream_relation_ids") or []
        return (
            f" segment_id={entry['segment_id']} mention_id={entry['mention_id']} "
            f"mention_ids=[{','.join(mention_ids)}] token_ids_len={len(token_ids)} span={span_text} "
            f"upstream_relation_ids_len={len(upstream)}"
        )


def format_operators(operators: Sequence[Mapping[str, Any]]) -> str:
    def key(op: Mapping[str, Any]) -> tuple:
        return tuple(str(op.get(k) or "") for k in ("kind", "value", "group_id", "token_id"))

    parts = []
    for op in sorted(operators, key=key):
        kind = op.get("kind")
        if kind == "modality":
            parts.append(f"modality({op.get('value') or ''})")
        elif kind == "negation":
            parts.append(f"negation({op.get('token_id') or ''})")
        elif kind == "coordination_group":
            suffix = f":{op['value']}" if op.get("value") else ""
            parts.append(f"coordination_group({op.get('group_id') or ''}{suffix})")
        elif kind in ("compare", "compare_gt", "compare_lt"):
            parts.append(f"{kind}({op.get('token_id') or ''})")
        elif kind == "quantifier":
            parts.append(f"quantifier({op.get('value') or ''}|{op.get('token_id') or ''})")
        else:
            parts.append(str(kind or "operator"))
    return ", ".join(parts)


def evidence_footnote(assertion: Mapping[str, Any]) -> str:
    """Summarise relation (r) and token (t) evidence counts per role and for operators."""

    counts: Dict[str, List[int]] = {}
    for entry in list(assertion.get("arguments") or []) + list(assertion.get("modifiers") or []):
        role = str(entry.get("role") or "")
        if not role:
            continue
        evidence = entry.get("evidence") or {}
        totals = counts.setdefault(role, [0, 0])
        totals[0] += len(normalize_ids(evidence.get("relation_ids")))
        totals[1] += len(normalize_ids(evidence.get("token_ids")))

    op_relations = op_tokens = 0
    for op in assertion.get("operators") or []:
        relation_ids, token_ids = set(), set()
        for item in op.get("evidence") or []:
            if not isinstance(item, Mapping):
                continue
            relation_ids.update(str(i) for i in item.get("upstream_relation_ids") or [])
            token_ids.update(str(i) for i in item.get("token_ids") or [])
        op_relations += len(relation_ids)
        op_tokens += len(token_ids)

    parts = [f"{role}(r={r},t={t})" for role, (r, t) in sorted(counts.items())]
    parts.append(f"operators(r={op_relations},t={op_tokens})")
    return "; ".join(parts)


def used_mention_ids(assertions: Sequence[Mapping[str, Any]]) -> List[str]:
    """Every mention id an assertion references, at any depth."""

    used = set()

    def visit(value: Any) -> None:
        if isinstance(value, list):
            for item in value:
                visit(item)
        elif isinstance(value, Mapping):
            for key, item in value.items():
                if key == "mention_id" and isinstance(item, str) and item:
                    used.add(item)
                elif key in ("mention_ids", "transferred_mention_ids") and isinstance(item, list):
                    used.update(i for i in item if isinstance(i, str) and i)
                else:
                    visit(item)

    visit(list(assertions))
    return sorted(used)


def render_elementary_assertions(document: Mapping[str, Any], options: Optional[Mapping[str, Any]] = None) -> str:
    """Validate ``document`` and return its text or Markdown rendering."""

    reject_legacy_slots(document)
    validate_elementary_assertions(document)
    return _Renderer(document, RenderOptions.from_mapping(options)).render()


__all__ = [
    "FORMATS",
    "LAYOUTS",
    "RenderOptions",
    "determiner_display",
    "evidence_footnote",
    "format_operators",
    "render_elementary_assertions",
    "used_mention_ids",
    "with_wiki_mark",
]
