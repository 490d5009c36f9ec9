#!/usr/bin/env python3
"""Report where upstream relations documents carry wikipedia title evidence.

Developer-only companion to the public CLI, which rejects
``--diagnose-wiki-upstream``.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from elementary_assertions.core.diagnostics import analyze_upstream_wiki_evidence, collect_wiki_field_diagnostics
from elementary_assertions.errors import ElementaryAssertionsError
from elementary_assertions.io import read_document


def diagnose(path: Path) -> Dict[str, Any]:
    document = read_document(path, "relations input file")
    if not isinstance(document, dict):
        raise ElementaryAssertionsError(f"{path} does not contain a mapping")
    return {
        "input": path.name,
        "summary": analyze_upstream_wiki_evidence(document),
        "wiki_fields": collect_wiki_field_diagnostics(document),
    }


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("paths", nargs="+", type=Path, help="Relations documents (YAML or JSON)")
    args = parser.parse_args(argv)
    try:
        reports = [diagnose(path) for path in args.paths]
    except ElementaryAssertionsError as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1)
    print(json.dumps({"reports": reports}, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
