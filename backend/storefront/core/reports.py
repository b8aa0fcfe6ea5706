"""
Reports for multi-record operations (cascades and fan-outs).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..errors import PartialFailureError


def member_key(table: str, item_id: str) -> str:
    """Ledger/report key for one touched record."""
    return f"{table}:{item_id}"


@dataclass
class CascadeReport:
    """Outcome of a multi-record operation.

    Attributes:
        operation_id: Ledger id of the operation
        kind: Operation kind (category-rename, collaborator-added, ...)
        succeeded: Member keys updated by this run
        failed: Member key -> error message, for members that gave up
        skipped: Member keys left alone (already done, or guarded)
    """

    operation_id: str
    kind: str
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed

    def merge(self, other: CascadeReport) -> None:
        self.succeeded.extend(other.succeeded)
        self.failed.update(other.failed)
        self.skipped.extend(other.skipped)

    def raise_for_partial(self) -> None:
        """Raise PartialFailureError if any member failed."""
        if self.failed:
            raise PartialFailureError(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation_id": self.operation_id,
            "kind": self.kind,
            "complete": self.complete,
            "succeeded": sorted(self.succeeded),
            "failed": dict(sorted(self.failed.items())),
            "skipped": sorted(self.skipped),
        }
