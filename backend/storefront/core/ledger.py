"""
Cascade completion ledger.

Multi-record operations (category rename, collaborator fan-out) are not
atomic. Each run records the members it finished in a ledger entry stored
in the "cascades" table, so re-running the same operation only touches the
members that are still outstanding.

Ledger entry shape:
    {
        "operationId": "category-rename:c-1",
        "kind": "category-rename",
        "params": {"categoryName": "Fresh Fruits"},
        "completedMembers": {"products:p-1", "products:p-2"},
        "status": "running" | "completed" | "partial",
        "startedAt": "...", "updatedAt": "..."
    }

Invariants:
    - An entry is resumed only if kind and params match the new request;
      otherwise it is reset (a new rename supersedes an unfinished one)
    - Members are recorded one by one with a set-add (idempotent)
    - A completed entry is reset on the next begin()
    - Only a partial entry can be claimed for resumption, and only once

How to change safely:
    - Keep operation ids deterministic per target record
    - Never delete entries in the request path; they are cheap and aid audits
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from ..store.base import And, ConditionFailedError, DocumentStore, Equals, StoreError, Update
from .clock import utc_now
from .reports import CascadeReport
from .retry import with_retries

logger = logging.getLogger(__name__)

LEDGER_TABLE = "cascades"


class CascadeLedger:
    """Tracks per-member completion of multi-record operations.

    Example:
        >>> ledger = CascadeLedger(store)
        >>> done = await ledger.begin("category-rename:c-1", "category-rename", {"categoryName": "X"})
        >>> await ledger.record_member("category-rename:c-1", "products:p-1")
        >>> await ledger.finish("category-rename:c-1", complete=True)
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def begin(
        self,
        operation_id: str,
        kind: str,
        params: dict[str, Any],
    ) -> set[str]:
        """Start or resume an operation.

        Returns:
            Member keys already completed by an earlier run
        """
        existing = await self.store.get(LEDGER_TABLE, operation_id)
        if (
            existing is not None
            and existing.get("kind") == kind
            and existing.get("params") == params
            and existing.get("status") != "completed"
        ):
            completed = set(existing.get("completedMembers") or ())
            logger.info(
                "Resuming cascade",
                extra={
                    "operation_id": operation_id,
                    "kind": kind,
                    "completed_members": len(completed),
                },
            )
            return completed

        now = utc_now()
        await self.store.put(
            LEDGER_TABLE,
            {
                "operationId": operation_id,
                "kind": kind,
                "params": params,
                "status": "running",
                "startedAt": now,
                "updatedAt": now,
            },
        )
        return set()

    async def record_member(self, operation_id: str, member: str) -> None:
        await self.store.update(
            LEDGER_TABLE,
            operation_id,
            Update(
                set_add={"completedMembers": {member}},
                set_fields={"updatedAt": utc_now()},
            ),
        )

    async def finish(self, operation_id: str, complete: bool) -> None:
        status = "completed" if complete else "partial"
        await self.store.update(
            LEDGER_TABLE,
            operation_id,
            Update(set_fields={"status": status, "updatedAt": utc_now()}),
        )
        logger.debug("Cascade finished", extra={"operation_id": operation_id, "status": status})

    async def get(self, operation_id: str) -> dict[str, Any] | None:
        return await self.store.get(LEDGER_TABLE, operation_id)

    async def claim(self, operation_id: str, kind: str) -> dict[str, Any] | None:
        """Move a partial entry back to running so one caller can finish it.

        Returns:
            The claimed entry, or None if there is no partial entry of that
            kind (never started, already completed, or claimed by another
            caller)
        """
        try:
            return await self.store.update(
                LEDGER_TABLE,
                operation_id,
                Update(set_fields={"status": "running", "updatedAt": utc_now()}),
                condition=And(Equals("kind", kind), Equals("status", "partial")),
            )
        except ConditionFailedError:
            return None


MemberWrite = Callable[[], Awaitable[Any]]


async def run_members(
    ledger: CascadeLedger,
    report: CascadeReport,
    members: Iterable[tuple[str, MemberWrite]],
    completed: set[str],
    *,
    max_retries: int,
    retry_delay_ms: int,
    max_concurrency: int,
) -> None:
    """Apply one write per member, recording progress in the ledger.

    Each member is retried independently. A member whose condition fails
    (record deleted or guarded meanwhile) is reported as skipped; a member
    that keeps failing is reported as failed without stopping the others.
    """
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def apply(member: str, write: MemberWrite) -> None:
        if member in completed:
            report.skipped.append(member)
            return

        async with semaphore:
            try:
                await with_retries(
                    write,
                    max_retries=max_retries,
                    retry_delay_ms=retry_delay_ms,
                    description=f"{report.kind} member {member}",
                )
            except ConditionFailedError:
                report.skipped.append(member)
                return
            except StoreError as e:
                report.failed[member] = str(e)
                logger.warning(
                    "Cascade member failed",
                    extra={
                        "operation_id": report.operation_id,
                        "member": member,
                        "error": str(e),
                    },
                )
                return

            report.succeeded.append(member)
            try:
                await ledger.record_member(report.operation_id, member)
            except StoreError as e:
                # The write landed; a re-run will redo it idempotently
                logger.warning(
                    "Could not record cascade progress",
                    extra={"operation_id": report.operation_id, "member": member, "error": str(e)},
                )

    await asyncio.gather(*(apply(member, write) for member, write in members))
    await ledger.finish(report.operation_id, complete=report.complete)
