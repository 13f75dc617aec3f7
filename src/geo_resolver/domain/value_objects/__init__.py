"""Value objects for the location domain."""

from .validation import ValidationResult, ValidationRule

__all__ = ["ValidationResult", "ValidationRule"]
