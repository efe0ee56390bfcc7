"""Data models for the verification checker."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from ..extraction.models import SourceLocation


class VerifiedField(BaseModel):
    """A field that was examined against its source page.

    ``verified`` means "checked", not "confirmed correct": a field whose
    value raised a warning is still recorded as examined.
    """

    name: str
    location: SourceLocation
    verified: bool = True


class ValidationReport(BaseModel):
    """Outcome of checking an aggregate against the source text."""

    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    verified_fields: list[VerifiedField] = Field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def summary(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": len(self.errors),
            "warnings": len(self.warnings),
            "verified_fields": len(self.verified_fields),
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dict for JSON serialization."""
        return self.model_dump(mode="json")
