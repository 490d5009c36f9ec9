from __future__ import annotations


class ElementaryAssertionsError(Exception):
    """Base class for errors raised by the elementary assertions pipeline."""


class InputContractError(ElementaryAssertionsError, ValueError):
    """Raised when an input document violates the relations contract."""


class WtiConfigurationError(ElementaryAssertionsError):
    """Raised when the wikipedia-title-index endpoint is not configured."""


class WtiHealthCheckError(ElementaryAssertionsError):
    """Raised when the wikipedia-title-index health check fails."""


class WtiEvidenceMissingError(ElementaryAssertionsError):
    """Raised when upstream tokens carry no positive wiki title signal."""


class EnricherUnavailableError(ElementaryAssertionsError):
    """Raised when the upstream linguistic enricher cannot be resolved."""


WTI_ENDPOINT_REQUIRED_MESSAGE = (
    "WTI endpoint is required for elementary assertion derivation (wikipedia-title-index service)."
)
WTI_EVIDENCE_MISSING_MESSAGE = (
    "WTI evidence missing: linguistic enricher produced no positive wikipedia_title_index signals."
)


__all__ = [
    "ElementaryAssertionsError",
    "EnricherUnavailableError",
    "InputContractError",
    "WTI_ENDPOINT_REQUIRED_MESSAGE",
    "WTI_EVIDENCE_MISSING_MESSAGE",
    "WtiConfigurationError",
    "WtiEvidenceMissingError",
    "WtiHealthCheckError",
]
