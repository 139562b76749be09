"""Errors raised and reported by the course wizard."""

from __future__ import annotations

from typing import Optional


class WizardError(Exception):
    """Base exception for all course wizard errors."""

    def __init__(self, message: str, suggestion: Optional[str] = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\nSuggestion: {self.suggestion}"
        return self.message


class DraftValidationError(WizardError):
    """Required identifying fields are missing.

    Raised locally, before any payload is built. Never changes the dirty flag.
    """

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(
            f"Missing required course details: {fields}",
            "Fill in the course details step before continuing",
        )


class SaveError(WizardError):
    """The draft store rejected a save or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class PublishError(WizardError):
    """Publishing a saved draft failed."""

    pass
