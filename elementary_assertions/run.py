"""Entry points deriving an elementary assertions document."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests

from .config import DEFAULT_WTI_HEALTH_PATH, DEFAULT_WTI_TIMEOUT_MS, HeuristicWindows
from .core.accepted_annotations import build_accepted_annotations_inventory
from .core.assertions import build_assertions
from .core.determinism import canonical_json, sha256_hex
from .core.diagnostics import build_diagnostics, build_unresolved
from .core.mention_builder import build_mentions
from .core.mentions import has_positive_wiki_signal
from .core.output import LEGACY_SLOTS_MESSAGE, build_coverage_domain_mention_ids, build_output, build_wiki_title_evidence_from_upstream
from .core.projection import build_projected_relations
from .core.tokens import build_token_index, build_token_wiki_by_id
from .core.upstream import collect_step_relations
from .errors import (
    WTI_ENDPOINT_REQUIRED_MESSAGE,
    WTI_EVIDENCE_MISSING_MESSAGE,
    InputContractError,
    WtiConfigurationError,
    WtiEvidenceMissingError,
    WtiHealthCheckError,
)

logger = logging.getLogger(__name__)

RELATIONS_TARGET = "relations_extracted"
IN_MEMORY_RELATIONS_ARTIFACT = "relations_extracted.in_memory"
IN_MEMORY_TEXT_ARTIFACT = "seed.text.in_memory"

Enricher = Callable[[str, Dict[str, Any]], Mapping[str, Any]]


def normalize_optional_string(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def effective_wti_timeout_ms(timeout_ms: Any) -> float:
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, (int, float)) or timeout_ms <= 0:
        return DEFAULT_WTI_TIMEOUT_MS
    return timeout_ms


def ensure_wti_endpoint_reachable(
    endpoint: Optional[str],
    timeout_ms: Optional[float] = None,
    session: Optional[requests.Session] = None,
    health_path: str = DEFAULT_WTI_HEALTH_PATH,
) -> None:
    """Probe the wikipedia-title-index health route exactly once.

    Raises :class:`WtiConfigurationError` when no endpoint is configured and
    :class:`WtiHealthCheckError` on any non-200 answer, timeout or connection
    failure. No retry is attempted.
    """

    normalized = normalize_optional_string(endpoint)
    if not normalized:
        raise WtiConfigurationError(WTI_ENDPOINT_REQUIRED_MESSAGE)
    url = f"{normalized.rstrip('/')}{health_path}"
    timeout = effective_wti_timeout_ms(timeout_ms) / 1000.0
    getter = session.get if session is not None else requests.get
    try:
        response = getter(url, timeout=timeout)
    except requests.RequestException as exc:
        raise WtiHealthCheckError(f"wikipedia-title-index health check failed for {url}: {exc}") from exc
    if response.status_code != 200:
        raise WtiHealthCheckError(
            f"wikipedia-title-index health check failed for {url}: HTTP {response.status_code}"
        )
    logger.info("wikipedia-title-index health check passed for %s", url)


def count_positive_wti_tokens(relations_doc: Mapping[str, Any]) -> int:
    count = 0
    for token in relations_doc.get("tokens") or []:
        lexicon = token.get("lexicon") if isinstance(token, Mapping) else None
        if isinstance(lexicon, Mapping) and has_positive_wiki_signal(lexicon.get("wikipedia_title_index")):
            count += 1
    return count


def assert_mandatory_wti_upstream_evidence(relations_doc: Mapping[str, Any]) -> None:
    """Fail when no upstream token carries a positive title-index signal."""

    if count_positive_wti_tokens(relations_doc) == 0:
        raise WtiEvidenceMissingError(WTI_EVIDENCE_MISSING_MESSAGE)


def validate_relations_input(relations_doc: Any) -> None:
    if not isinstance(relations_doc, Mapping):
        raise InputContractError("runFromRelations requires an object input document.")
    if not isinstance(relations_doc.get("tokens"), list):
        raise InputContractError("runFromRelations input must include tokens[].")
    if not isinstance(relations_doc.get("annotations"), list):
        raise InputContractError("runFromRelations input must include annotations[].")
    if not isinstance(relations_doc.get("segments"), list):
        raise InputContractError("runFromRelations input must include segments[].")
    if not isinstance(relations_doc.get("canonical_text"), str):
        raise InputContractError("runFromRelations input must include canonical_text.")
    for assertion in relations_doc.get("assertions") or []:
        if isinstance(assertion, Mapping) and "slots" in assertion:
            raise InputContractError(LEGACY_SLOTS_MESSAGE)


def relations_digest(relations_doc: Mapping[str, Any]) -> str:
    return sha256_hex(canonical_json(relations_doc))


def build_pipeline_trace(relations_doc: Mapping[str, Any], wti_endpoint: str) -> Dict[str, Any]:
    return {
        "target": RELATIONS_TARGET,
        "relations_extracted_digest": relations_digest(relations_doc),
        "token_count": len(relations_doc.get("tokens") or []),
        "annotation_count": len(relations_doc.get("annotations") or []),
        "wikipedia_title_index_configured": bool(wti_endpoint),
    }


def run_from_relations(
    relations_doc: Mapping[str, Any],
    source_inputs: Optional[List[Dict[str, Any]]] = None,
    wti_endpoint: Optional[str] = None,
    windows: Optional[HeuristicWindows] = None,
    suppress_default_relations_source: bool = False,
    require_wti_evidence: bool = False,
) -> Dict[str, Any]:
    """Derive the elementary assertions document from a relations document.

    The function is pure over ``relations_doc``: identical input always yields
    an identical document. ``wti_endpoint`` only feeds the pipeline trace and
    the diagnostics warnings; no network call is made here.
    """

    validate_relations_input(relations_doc)
    if require_wti_evidence:
        assert_mandatory_wti_upstream_evidence(relations_doc)
    endpoint = normalize_optional_string(wti_endpoint)
    logger.info(
        "Deriving elementary assertions from %d tokens and %d annotations",
        len(relations_doc["tokens"]),
        len(relations_doc["annotations"]),
    )

    token_by_id = build_token_index(relations_doc)
    token_wiki_by_id = build_token_wiki_by_id(relations_doc)
    accepted_annotations = build_accepted_annotations_inventory(relations_doc)
    step_relations = collect_step_relations(relations_doc, token_by_id)

    annotations = [a for a in relations_doc["annotations"] if isinstance(a, Mapping)]
    mwe_seed = {"annotations": [a for a in annotations if a.get("kind") == "mwe" and a.get("status") == "accepted"]}
    heads_seed = {
        "annotations": [
            a for a in annotations if a.get("status") == "accepted" and a.get("kind") in ("chunk", "chunk_head")
        ]
    }
    mention_build = build_mentions(relations_doc, mwe_seed, heads_seed, token_by_id, token_wiki_by_id)
    mention_by_id = mention_build.mention_by_id
    projection = build_projected_relations(
        step_relations,
        mention_build.token_to_primary_mention,
        mention_build.token_to_all_mentions,
        mention_by_id,
        token_by_id,
    )
    assertion_build = build_assertions(projection.projected, mention_by_id, token_by_id, windows)

    primary_ids = build_coverage_domain_mention_ids(mention_build.mentions, token_by_id)
    uncovered_ids = [i for i in primary_ids if i not in assertion_build.covered_mentions]
    unresolved = build_unresolved(
        mention_build.mentions,
        mention_build.unresolved_head_map,
        projection.unresolved,
        mention_by_id,
        assertion_build.assertions,
        projection.projected,
        uncovered_ids,
    )

    inputs = [dict(i) for i in source_inputs or []]
    if not suppress_default_relations_source:
        inputs.append({"artifact": IN_MEMORY_RELATIONS_ARTIFACT, "digest": relations_digest(relations_doc)})

    wiki_title_evidence = build_wiki_title_evidence_from_upstream(
        mention_build.mentions,
        assertion_build.assertions,
        token_by_id,
        relations_doc["canonical_text"],
    )
    diagnostics = build_diagnostics(
        token_wiki_by_id,
        mention_build.mentions,
        assertion_build.assertions,
        projection,
        relations_doc,
        endpoint,
        assertion_build.suppressed_assertions,
    )
    schema_version = relations_doc.get("schema_version")
    document = build_output(
        relations_doc,
        mention_build.mentions,
        assertion_build.assertions,
        assertion_build.covered_mentions,
        unresolved,
        inputs,
        build_pipeline_trace(relations_doc, endpoint),
        accepted_annotations,
        diagnostics,
        projection,
        wiki_title_evidence,
        schema_version=schema_version if isinstance(schema_version, str) else None,
    )
    logger.info(
        "Derived %d assertions (%d suppressed), %d uncovered primary mentions",
        len(assertion_build.assertions),
        len(assertion_build.suppressed_assertions),
        len(uncovered_ids),
    )
    return document


def run_elementary_assertions(
    text: str,
    enricher: Enricher,
    wti_endpoint: Optional[str] = None,
    timeout_ms: Optional[float] = None,
    wti_timeout_ms: Optional[float] = None,
    source_inputs: Optional[List[Dict[str, Any]]] = None,
    windows: Optional[HeuristicWindows] = None,
    session: Optional[requests.Session] = None,
    health_path: str = DEFAULT_WTI_HEALTH_PATH,
) -> Dict[str, Any]:
    """Run the upstream enricher over ``text`` and derive assertions.

    The wikipedia-title-index endpoint is mandatory: it must be configured,
    answer its health check, and the enriched tokens must carry at least one
    positive title signal. Every check runs before any derivation work.
    """

    if not isinstance(text, str) or not text:
        raise InputContractError("runElementaryAssertions requires non-empty text.")
    endpoint = normalize_optional_string(wti_endpoint)
    if not endpoint:
        raise WtiConfigurationError(WTI_ENDPOINT_REQUIRED_MESSAGE)
    ensure_wti_endpoint_reachable(endpoint, wti_timeout_ms, session=session, health_path=health_path)

    options: Dict[str, Any] = {
        "target": RELATIONS_TARGET,
        "services": {"wikipedia-title-index": {"endpoint": endpoint}},
    }
    if isinstance(timeout_ms, (int, float)) and not isinstance(timeout_ms, bool) and timeout_ms > 0:
        options["timeout_ms"] = timeout_ms
    relations_doc = enricher(text, options)
    if not isinstance(relations_doc, Mapping):
        raise InputContractError("runFromRelations requires an object input document.")
    assert_mandatory_wti_upstream_evidence(relations_doc)

    inputs = [dict(i) for i in source_inputs or []]
    if not inputs:
        inputs.append({"artifact": IN_MEMORY_TEXT_ARTIFACT, "digest": sha256_hex(text)})
    return run_from_relations(relations_doc, source_inputs=inputs, wti_endpoint=endpoint, windows=windows)


__all__ = [
    "Enricher",
    "assert_mandatory_wti_upstream_evidence",
    "build_pipeline_trace",
    "count_positive_wti_tokens",
    "ensure_wti_endpoint_reachable",
    "normalize_optional_string",
    "run_elementary_assertions",
    "run_from_relations",
    "validate_relations_input",
]
