from __future__ import annotations

import json
from pathlib import Path

import pytest

import scripts.diagnose_coverage_audit as coverage_audit
import scripts.diagnose_wiki_upstream as wiki_upstream
from elementary_assertions.io import write_document
from tests.conftest import alpha_builds_carts, assertion_document


def test_wiki_upstream_report(tmp_path: Path, capsys) -> None:
    path = tmp_path / "relations.json"
    write_document(path, alpha_builds_carts(wiki=True))
    wiki_upstream.main([str(path)])
    report = json.loads(capsys.readouterr().out)["reports"][0]
    assert report["input"] == "relations.json"
    assert report["summary"]["mentions_with_wiki_evidence"] == 1
    assert len(report["wiki_fields"]) == 4


def test_coverage_audit_report(tmp_path: Path, capsys) -> None:
    path = tmp_path / "doc.yaml"
    write_document(path, assertion_document())
    coverage_audit.main([str(path)])
    row = json.loads(capsys.readouterr().out)["documents"][0]
    assert row["uncovered_count"] == 0
    assert row["unresolved_alignment"] is True
    assert [m["mention_id"] for m in row["mentions"]] == ["m1", "m2", "m3"]


def test_scripts_reject_non_mapping_documents(tmp_path: Path, capsys) -> None:
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n", encoding="utf-8")
    with pytest.raises(SystemExit):
        coverage_audit.main([str(path)])
    assert "does not contain a mapping" in capsys.readouterr().err
