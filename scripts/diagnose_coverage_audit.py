#!/usr/bin/env python3
"""Explain coverage of primary mentions in elementary assertions documents.

For each document the report lists which mechanisms (slot, operator,
evidence, transfer) cover every primary mention, plus unresolved counts by
kind and reason.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from elementary_assertions.core.output import build_coverage_audit
from elementary_assertions.errors import ElementaryAssertionsError
from elementary_assertions.io import read_document


def _count_by(items: List[Mapping[str, Any]], key: str) -> List[Dict[str, Any]]:
    counts = Counter(str(item.get(key) or "unknown") for item in items)
    return [{"key": k, "count": counts[k]} for k in sorted(counts)]


def audit_document(path: Path) -> Dict[str, Any]:
    document = read_document(path, "input file")
    if not isinstance(document, dict):
        raise ElementaryAssertionsError(f"{path} does not contain a mapping")
    coverage = document.get("coverage") or {}
    unresolved = [u for u in coverage.get("unresolved") or [] if isinstance(u, Mapping)]
    uncovered = coverage.get("uncovered_primary_mention_ids") or []
    return {
        "input": path.name,
        "covered_count": len(coverage.get("covered_primary_mention_ids") or []),
        "uncovered_count": len(uncovered),
        "unresolved_count": len(unresolved),
        "unresolved_alignment": len(uncovered) == len(unresolved),
        "unresolved_by_kind": _count_by(unresolved, "kind"),
        "unresolved_by_reason": _count_by(unresolved, "reason"),
        "mentions": build_coverage_audit(document),
    }


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("paths", nargs="+", type=Path, help="Elementary assertions documents")
    args = parser.parse_args(argv)
    try:
        rows = [audit_document(path) for path in args.paths]
    except ElementaryAssertionsError as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1)
    print(json.dumps({"documents": rows}, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
