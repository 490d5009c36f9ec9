from __future__ import annotations

import json
from pathlib import Path

import pytest
import requests
import yaml

from elementary_assertions.cli import enforce_dev_flag_policy, main, parse_strict_boolean, resolve_enricher
from elementary_assertions.errors import EnricherUnavailableError, InputContractError
from tests.conftest import alpha_builds_carts, assertion_document

ENRICH_CALLS = []


def fake_enricher(text, options):
    ENRICH_CALLS.append((text, options))
    return alpha_builds_carts(wiki=True)


class _Ok:
    status_code = 200


@pytest.fixture(autouse=True)
def _no_endpoint_env(monkeypatch):
    monkeypatch.delenv("WIKIPEDIA_TITLE_INDEX_ENDPOINT", raising=False)
    ENRICH_CALLS.clear()


def _error(capsys) -> str:
    return capsys.readouterr().err.strip()


def _write_yaml(path: Path, document) -> Path:
    path.write_text(yaml.safe_dump(document), encoding="utf-8")
    return path


def test_run_from_relations_file_writes_yaml(tmp_path: Path, capsys) -> None:
    relations = _write_yaml(tmp_path / "relations.yaml", alpha_builds_carts())
    main(["run", "--relations", str(relations)])
    document = yaml.safe_load(capsys.readouterr().out)
    assert document["stage"] == "elementary_assertions"
    assert [i["artifact"] for i in document["sources"]["inputs"]] == ["relations.yaml"]


def test_run_writes_out_file(tmp_path: Path) -> None:
    relations = tmp_path / "relations.json"
    relations.write_text(json.dumps(alpha_builds_carts()), encoding="utf-8")
    out = tmp_path / "nested" / "assertions.yaml"
    main(["run", "--relations", str(relations), "--out", str(out)])
    assert yaml.safe_load(out.read_text(encoding="utf-8"))["canonical_text"] == "Alpha builds carts."


def test_run_text_goes_through_enricher(monkeypatch, capsys) -> None:
    health_calls = []
    monkeypatch.setattr(requests, "get", lambda url, timeout: health_calls.append((url, timeout)) or _Ok())
    main(
        [
            "run",
            "--text",
            "Alpha builds carts.",
            "--wti-endpoint",
            "http://wti.local",
            "--enricher",
            "tests.test_cli:fake_enricher",
        ]
    )
    document = yaml.safe_load(capsys.readouterr().out)
    assert health_calls == [("http://wti.local/health", 2.0)]
    assert document["sources"]["inputs"][0]["artifact"] == "seed.text.in_memory"


def test_run_endpoint_comes_from_environment(monkeypatch, capsys) -> None:
    monkeypatch.setenv("WIKIPEDIA_TITLE_INDEX_ENDPOINT", "http://env.local")
    health_calls = []
    monkeypatch.setattr(requests, "get", lambda url, timeout: health_calls.append(url) or _Ok())
    main(["run", "--text", "Alpha builds carts.", "--enricher", "tests.test_cli:fake_enricher"])
    assert health_calls == ["http://env.local/health"]


def test_run_without_endpoint_fails(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["run", "--text", "Alpha", "--enricher", "tests.test_cli:fake_enricher"])
    assert excinfo.value.code == 1
    assert _error(capsys).startswith("error: WTI endpoint is required")
    assert ENRICH_CALLS == []


@pytest.mark.parametrize(
    "argv, message",
    [
        (["run"], "Exactly one of --text, --in, or --relations is required; none provided."),
        (["run", "--text", "a", "--relations", "r.yaml"], "Exactly one of --text, --in, or --relations is required; multiple provided."),
        (["run", "--diagnose-wiki-upstream"], "Diagnostic flags require --dev: --diagnose-wiki-upstream"),
        (
            ["render", "--dev", "--diagnose-coverage-audit"],
            "Diagnostic flags are developer-only and not available in the public CLI: --diagnose-coverage-audit",
        ),
    ],
)
def test_run_input_errors(argv, message, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    assert excinfo.value.code == 1
    assert _error(capsys) == f"error: {message}"


def test_validate_prints_ok(tmp_path: Path, capsys) -> None:
    path = _write_yaml(tmp_path / "doc.yaml", assertion_document())
    main(["validate", "--in", str(path), "--strict"])
    assert capsys.readouterr().out.strip() == "ok"


def test_validate_reports_code(tmp_path: Path, capsys) -> None:
    document = assertion_document()
    document["stage"] = "other"
    path = _write_yaml(tmp_path / "doc.yaml", document)
    with pytest.raises(SystemExit):
        main(["validate", "--in", str(path)])
    assert "[EA_VALIDATE_STAGE]" in _error(capsys)


def test_render_markdown_to_stdout(tmp_path: Path, capsys) -> None:
    path = _write_yaml(tmp_path / "doc.yaml", assertion_document())
    main(["render", "--in", str(path), "--format", "md", "--segments", "false"])
    out = capsys.readouterr().out
    assert out.startswith("# Elementary Assertions")
    assert "## Segments" not in out


def test_render_rejects_non_strict_boolean(tmp_path: Path, capsys) -> None:
    path = _write_yaml(tmp_path / "doc.yaml", assertion_document())
    with pytest.raises(SystemExit):
        main(["render", "--in", str(path), "--coverage", "yes"])
    assert _error(capsys) == "error: Invalid value for --coverage: expected true|false."


def test_parse_strict_boolean() -> None:
    assert parse_strict_boolean("true", "--x") is True
    assert parse_strict_boolean("false", "--x") is False
    with pytest.raises(InputContractError):
        parse_strict_boolean("True", "--x")


def test_dev_flag_policy_ignores_ordinary_flags() -> None:
    enforce_dev_flag_policy(["--text", "a", "--dev"])


def test_resolve_enricher_errors() -> None:
    assert resolve_enricher("tests.test_cli:fake_enricher") is not None
    with pytest.raises(EnricherUnavailableError):
        resolve_enricher("no_such_module_for_tests:run")
    with pytest.raises(EnricherUnavailableError):
        resolve_enricher("tests.test_cli:ENRICH_CALLS")
    with pytest.raises(EnricherUnavailableError):
        resolve_enricher("missing-colon")
