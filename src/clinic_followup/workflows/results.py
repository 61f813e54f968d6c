"""Batch job result containers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from clinic_followup.core.exceptions import ChannelError


@dataclass
class ItemResult:
    """Outcome for one appointment in a batch pass."""

    id: str
    success: bool
    action: str | None = None
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def fail(self, exc: ChannelError) -> ItemResult:
        """Mark this item failed by a delivery error."""
        self.success = False
        self.error = exc.message
        self.error_code = exc.error_code
        self.details["retryable"] = exc.retryable
        return self

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id, "success": self.success}
        if self.action:
            result["action"] = self.action
        if self.error:
            result["error"] = self.error
            result["error_code"] = self.error_code
        result.update(self.details)
        return result


@dataclass
class BatchResult:
    """Outcome of a whole batch pass."""

    job: str
    results: list[ItemResult] = field(default_factory=list)

    def add(self, item: ItemResult) -> ItemResult:
        self.results.append(item)
        return item

    @property
    def processed(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.processed - self.succeeded

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "results": [r.to_dict() for r in self.results],
        }
