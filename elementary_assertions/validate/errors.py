from __future__ import annotations

from typing import NoReturn

from ..errors import ElementaryAssertionsError


class ValidationError(ElementaryAssertionsError):
    """Raised when an elementary assertions document breaks its contract."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"Validation error [{code}]: {message}")
        self.code = code
        self.detail = message


def fail_validation(code: str, message: str) -> NoReturn:
    raise ValidationError(code, message)


__all__ = ["ValidationError", "fail_validation"]
