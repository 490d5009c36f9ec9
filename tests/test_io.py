from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest
import yaml

from elementary_assertions.errors import InputContractError
from elementary_assertions.io import (
    dump_yaml,
    parse_document,
    read_document,
    source_input_for_file,
    write_document,
)


def test_parse_document_by_suffix() -> None:
    assert parse_document('{"a": [1, 2]}', ".json") == {"a": [1, 2]}
    assert parse_document("a:\n  - 1\n  - 2\n", ".yaml") == {"a": [1, 2]}
    # YAML is a superset of JSON
    assert parse_document('{"a": 1}', ".yml") == {"a": 1}


@pytest.mark.parametrize("text, suffix", [("{", ".json"), ("a: [", ".yaml")])
def test_parse_errors_become_contract_errors(text, suffix) -> None:
    with pytest.raises(InputContractError, match="^Error reading relations input file: "):
        parse_document(text, suffix, "relations input file")


def test_missing_file_is_a_contract_error(tmp_path: Path) -> None:
    with pytest.raises(InputContractError, match="Error reading input file"):
        read_document(tmp_path / "absent.yaml", "input file")


def test_dump_yaml_keeps_key_order() -> None:
    assert dump_yaml({"stage": "x", "alpha": 1}).splitlines() == ["stage: x", "alpha: 1"]


def test_write_document_picks_format_from_suffix(tmp_path: Path) -> None:
    document = {"b": 1, "a": "é"}
    write_document(tmp_path / "out" / "doc.json", document)
    write_document(tmp_path / "out" / "doc.yaml", document)
    assert json.loads((tmp_path / "out" / "doc.json").read_text(encoding="utf-8")) == document
    assert yaml.safe_load((tmp_path / "out" / "doc.yaml").read_text(encoding="utf-8")) == document
    assert read_document(tmp_path / "out" / "doc.json") == document


def test_source_input_digest_is_text_sha256(tmp_path: Path) -> None:
    path = tmp_path / "seed.txt"
    path.write_text("Alpha builds carts.", encoding="utf-8")
    expected = hashlib.sha256("Alpha builds carts.".encode("utf-8")).hexdigest()
    assert source_input_for_file(path, "seed.txt") == {"artifact": "seed.txt", "digest": expected}
    assert source_input_for_file(path, "seed.txt", "other")["digest"] != expected
