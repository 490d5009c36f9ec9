"""Upstream token indexing and evidence extraction."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from ..errors import InputContractError
from .determinism import deep_clone_json, is_number


def build_token_index(seed: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Index upstream tokens by id, rejecting any token missing a required field."""

    tokens = seed.get("tokens")
    if not isinstance(tokens, list) or not tokens:
        raise InputContractError("relations seed missing tokens")
    by_id: Dict[str, Dict[str, Any]] = {}
    for token in tokens:
        if not isinstance(token, Mapping) or not isinstance(token.get("id"), str):
            raise InputContractError("token missing id")
        token_id = token["id"]
        if not isinstance(token.get("segment_id"), str):
            raise InputContractError(f"token {token_id} missing segment_id")
        span = token.get("span")
        if not isinstance(span, Mapping) or not is_number(span.get("start")) or not is_number(span.get("end")):
            raise InputContractError(f"token {token_id} missing span")
        if not is_number(token.get("i")):
            raise InputContractError(f"token {token_id} missing i")
        pos = token.get("pos")
        if not isinstance(pos, Mapping) or not isinstance(pos.get("tag"), str):
            raise InputContractError(f"token {token_id} missing pos.tag")
        by_id[token_id] = token
    return by_id


def get_token_wikipedia_evidence(token: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(token, Mapping) or not isinstance(token.get("lexicon"), Mapping):
        return None
    evidence = token["lexicon"].get("wikipedia_title_index")
    if not isinstance(evidence, Mapping):
        return None
    return deep_clone_json(dict(evidence))


def build_token_wiki_by_id(relations_seed: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    out: Dict[str, Dict[str, Any]] = {}
    for token in relations_seed.get("tokens") or []:
        if not isinstance(token, Mapping) or not isinstance(token.get("id"), str):
            continue
        evidence = get_token_wikipedia_evidence(token)
        if evidence is not None:
            out[token["id"]] = evidence
    return out


def get_token_metadata_projection(token: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy the optional normalisation metadata of an upstream token."""

    out: Dict[str, Any] = {}
    if isinstance(token.get("normalized"), str):
        out["normalized"] = token["normalized"]
    if isinstance(token.get("flags"), Mapping):
        out["flags"] = deep_clone_json(dict(token["flags"]))
    if isinstance(token.get("joiner"), Mapping):
        out["joiner"] = deep_clone_json(dict(token["joiner"]))
    return out


__all__ = [
    "build_token_index",
    "build_token_wiki_by_id",
    "get_token_metadata_projection",
    "get_token_wikipedia_evidence",
]
