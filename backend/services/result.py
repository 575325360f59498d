"""Minimal success/failure result for operations that must never raise."""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class Result:
    """Outcome of a fallible operation.

    Either ``value`` is set (success) or ``reason`` names why it failed.
    Callers pick their own default with ``unwrap_or``.
    """

    value: Any = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, reason: str) -> "Result":
        return cls(reason=reason)

    @property
    def ok(self) -> bool:
        return self.reason is None

    def unwrap_or(self, default: Any) -> Any:
        return self.value if self.ok else default
