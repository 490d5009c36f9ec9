"""Elementary assertion derivation over upstream linguistic relations."""

from __future__ import annotations

from .errors import (
    ElementaryAssertionsError,
    EnricherUnavailableError,
    InputContractError,
    WtiConfigurationError,
    WtiEvidenceMissingError,
    WtiHealthCheckError,
)
from .render import render_elementary_assertions
from .run import ensure_wti_endpoint_reachable, run_elementary_assertions, run_from_relations
from .validate import ValidationError, validate_elementary_assertions

__version__ = "0.1.0"

__all__ = [
    "ElementaryAssertionsError",
    "EnricherUnavailableError",
    "InputContractError",
    "ValidationError",
    "WtiConfigurationError",
    "WtiEvidenceMissingError",
    "WtiHealthCheckError",
    "ensure_wti_endpoint_reachable",
    "render_elementary_assertions",
    "run_elementary_assertions",
    "run_from_relations",
    "validate_elementary_assertions",
]
