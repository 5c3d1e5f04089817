"""Shared shape of validator results."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class ValidationResult(ABC):
    """Outcome of one validator over one response document.

    Each validator builds and owns its own result.  ``describe()``
    renders the instruction block used when the response has to be
    regenerated.
    """

    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    needs_regeneration: bool = False

    @property
    @abstractmethod
    def validator_name(self) -> str:
        ...

    @abstractmethod
    def describe(self) -> str:
        ...

    def _errors_block(self, heading: str) -> str:
        if not self.errors:
            return ""
        return f"\n{heading}\n" + "\n".join(f"- {e}" for e in self.errors) + "\n"
