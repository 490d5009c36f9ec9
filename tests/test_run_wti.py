from __future__ import annotations

from typing import Any, Dict, List

import pytest
import requests

from elementary_assertions.core.determinism import sha256_hex
from elementary_assertions.errors import (
    WTI_ENDPOINT_REQUIRED_MESSAGE,
    WTI_EVIDENCE_MISSING_MESSAGE,
    InputContractError,
    WtiConfigurationError,
    WtiEvidenceMissingError,
    WtiHealthCheckError,
)
from elementary_assertions.run import ensure_wti_endpoint_reachable, run_elementary_assertions
from tests.conftest import alpha_builds_carts


class FakeResponse:
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code


class FakeSession:
    def __init__(self, status_code: int = 200, error: Exception = None) -> None:
        self.status_code = status_code
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, timeout: float) -> FakeResponse:
        self.calls.append({"url": url, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return FakeResponse(self.status_code)


class RecordingEnricher:
    def __init__(self, document: Dict[str, Any]) -> None:
        self.document = document
        self.calls: List[Any] = []

    def __call__(self, text: str, options: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append((text, options))
        return self.document


def test_missing_endpoint_fails_before_enrichment() -> None:
    enricher = RecordingEnricher(alpha_builds_carts(wiki=True))
    session = FakeSession()
    with pytest.raises(WtiConfigurationError) as excinfo:
        run_elementary_assertions("Alpha builds carts.", enricher, wti_endpoint="  ", session=session)
    assert str(excinfo.value) == WTI_ENDPOINT_REQUIRED_MESSAGE
    assert enricher.calls == []
    assert session.calls == []


def test_empty_text_is_rejected() -> None:
    with pytest.raises(InputContractError):
        run_elementary_assertions("", RecordingEnricher({}), wti_endpoint="http://x")


def test_health_check_is_called_once_with_default_timeout() -> None:
    session = FakeSession()
    ensure_wti_endpoint_reachable("http://x/", session=session)
    assert session.calls == [{"url": "http://x/health", "timeout": 2.0}]


def test_health_check_uses_configured_timeout_and_path() -> None:
    session = FakeSession()
    ensure_wti_endpoint_reachable("http://x", timeout_ms=500, session=session, health_path="/ready")
    assert session.calls == [{"url": "http://x/ready", "timeout": 0.5}]


def test_health_check_defaults_to_requests_get(monkeypatch) -> None:
    calls = []

    def fake_get(url, timeout):
        calls.append((url, timeout))
        return FakeResponse(200)

    monkeypatch.setattr(requests, "get", fake_get)
    ensure_wti_endpoint_reachable("http://wti.local")
    assert calls == [("http://wti.local/health", 2.0)]


def test_non_200_health_check_fails() -> None:
    session = FakeSession(status_code=503)
    with pytest.raises(WtiHealthCheckError) as excinfo:
        ensure_wti_endpoint_reachable("http://x", session=session)
    assert "HTTP 503" in str(excinfo.value)
    assert len(session.calls) == 1


def test_connection_error_is_wrapped_without_retry() -> None:
    session = FakeSession(error=requests.ConnectionError("refused"))
    with pytest.raises(WtiHealthCheckError) as excinfo:
        ensure_wti_endpoint_reachable("http://x", session=session)
    assert "http://x/health" in str(excinfo.value)
    assert len(session.calls) == 1


def test_failed_health_check_skips_enrichment() -> None:
    enricher = RecordingEnricher(alpha_builds_carts(wiki=True))
    with pytest.raises(WtiHealthCheckError):
        run_elementary_assertions(
            "Alpha builds carts.", enricher, wti_endpoint="http://x", session=FakeSession(status_code=500)
        )
    assert enricher.calls == []


def test_enrichment_without_positive_signal_fails() -> None:
    enricher = RecordingEnricher(alpha_builds_carts(wiki=False))
    with pytest.raises(WtiEvidenceMissingError) as excinfo:
        run_elementary_assertions("Alpha builds carts.", enricher, wti_endpoint="http://x", session=FakeSession())
    assert str(excinfo.value) == WTI_EVIDENCE_MISSING_MESSAGE


def test_successful_run_records_both_inputs() -> None:
    text = "Alpha builds carts."
    enricher = RecordingEnricher(alpha_builds_carts(wiki=True))
    session = FakeSession()
    document = run_elementary_assertions(
        text, enricher, wti_endpoint="http://x", timeout_ms=1500, session=session
    )

    assert len(session.calls) == 1
    assert enricher.calls == [
        (
            text,
            {
                "target": "relations_extracted",
                "services": {"wikipedia-title-index": {"endpoint": "http://x"}},
                "timeout_ms": 1500,
            },
        )
    ]
    artifacts = [i["artifact"] for i in document["sources"]["inputs"]]
    assert artifacts == ["seed.text.in_memory", "relations_extracted.in_memory"]
    assert document["sources"]["inputs"][0]["digest"] == sha256_hex(text)
    assert document["sources"]["pipeline"]["wikipedia_title_index_configured"] is True
    assert document["diagnostics"]["token_wiki_signal_count"] == 1


def test_timeout_option_is_omitted_when_unset() -> None:
    enricher = RecordingEnricher(alpha_builds_carts(wiki=True))
    run_elementary_assertions("Alpha builds carts.", enricher, wti_endpoint="http://x", session=FakeSession())
    _, options = enricher.calls[0]
    assert "timeout_ms" not in options


def test_caller_inputs_replace_in_memory_text_input() -> None:
    enricher = RecordingEnricher(alpha_builds_carts(wiki=True))
    document = run_elementary_assertions(
        "Alpha builds carts.",
        enricher,
        wti_endpoint="http://x",
        source_inputs=[{"artifact": "seed.txt", "digest": "abc"}],
        session=FakeSession(),
    )
    artifacts = [i["artifact"] for i in document["sources"]["inputs"]]
    assert artifacts == ["seed.txt", "relations_extracted.in_memory"]
