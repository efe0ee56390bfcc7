"""Source verification of merged aggregates."""
from .checker import format_number, verify
from .models import ValidationReport, VerifiedField

__all__ = ["ValidationReport", "VerifiedField", "format_number", "verify"]
