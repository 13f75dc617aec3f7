"""Validation value objects."""

from dataclasses import dataclass, field
from typing import Any, Callable, List, Mapping


@dataclass(frozen=True)
class ValidationRule:
    """One weighted check in the location rule set.

    A failing rule with weight >= 0.8 makes the location invalid; lighter
    rules only produce warnings.
    """

    name: str
    check: Callable[[Mapping[str, Any]], bool]
    weight: float
    error_message: str

    ERROR_WEIGHT = 0.8

    @property
    def is_blocking(self) -> bool:
        return self.weight >= self.ERROR_WEIGHT


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating a location candidate."""

    is_valid: bool
    score: int  # 0-100
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    confidence: float = 0.0  # 0-1
