"""
Ownership propagation between collaborators.

When a user invites a collaborator, the collaborator is added to the
ownership set of every record the inviter owns, for each table the
collaborator's read scopes cover. When a collaborator is removed, the
user id is taken out of every ownership set again.

    Scope             Table
    Products:Read     products
    Categories:Read   categories
    Users:Read        users

Invariants:
    - Records are never deleted by propagation, only their ownerIds change
    - A record's creator (ownerId) is never removed from its ownership set
    - An ownership set is never emptied
    - Family-shared records are skipped; family members already see them
    - Each member write is retried on its own; one failing record does not
      stop the others
    - Every fan-out is recorded in the cascade ledger so a re-run only
      touches outstanding records

How to change safely:
    - Adding a scope mapping means the new table must carry ownerIds
    - Each run is an O(n) scan per table; there is no reverse index
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from ..access.ownership import (
    FamilyShared,
    InvalidOwnershipError,
    SingleOwner,
    descriptor_from_record,
)
from ..access.principal import normalize_scope
from ..store.base import (
    And,
    Contains,
    DocumentStore,
    Equals,
    Exists,
    NotEquals,
    NotExists,
    Or,
    Update,
    key_attribute,
)
from .ledger import CascadeLedger, MemberWrite, run_members
from .reports import CascadeReport, member_key

logger = logging.getLogger(__name__)

SCOPE_TABLES: dict[str, str] = {
    "Products:Read": "products",
    "Categories:Read": "categories",
    "Users:Read": "users",
}


def tables_for_scopes(scopes: Iterable[str]) -> list[str]:
    """Tables covered by the given scopes, in a stable order."""
    normalized = {normalize_scope(s) for s in scopes}
    return [table for scope, table in SCOPE_TABLES.items() if scope in normalized]


class OwnershipPropagationEngine:
    """Fans ownership changes out to every record a user can see.

    Example:
        >>> engine = OwnershipPropagationEngine(store, CascadeLedger(store))
        >>> report = await engine.on_collaborator_added("u-a", "u-b", ["Products:Read"])
        >>> report.complete
        True
    """

    def __init__(
        self,
        store: DocumentStore,
        ledger: CascadeLedger,
        max_retries: int = 3,
        retry_delay_ms: int = 100,
        max_concurrency: int = 8,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self.max_concurrency = max_concurrency

    async def on_collaborator_added(
        self,
        inviter_id: str,
        new_user_id: str,
        scopes: Iterable[str],
    ) -> CascadeReport:
        """Share the inviter's records with a new collaborator."""
        tables = tables_for_scopes(scopes)
        operation_id = f"collaborator-added:{new_user_id}"
        report = CascadeReport(operation_id=operation_id, kind="collaborator-added")
        completed = await self.ledger.begin(
            operation_id,
            report.kind,
            {"inviterId": inviter_id, "tables": tables},
        )

        members: list[tuple[str, MemberWrite]] = []
        for table in tables:
            key = key_attribute(table)
            records = await self.store.scan(
                table,
                filter=Or(Contains("ownerIds", inviter_id), Equals("ownerId", inviter_id)),
            )
            for record in records:
                item_id = record[key]
                member = member_key(table, item_id)
                if table == "users" and item_id == new_user_id:
                    continue
                try:
                    descriptor = descriptor_from_record(record, key)
                except InvalidOwnershipError:
                    report.skipped.append(member)
                    continue
                if isinstance(descriptor, FamilyShared):
                    report.skipped.append(member)
                    continue

                if isinstance(descriptor, SingleOwner):
                    # Upgrade the legacy shape in the same write
                    additions = {descriptor.owner_id, new_user_id}
                else:
                    additions = {new_user_id}
                members.append((member, self._adder(table, item_id, key, additions)))

        await run_members(
            self.ledger,
            report,
            members,
            completed,
            max_retries=self.max_retries,
            retry_delay_ms=self.retry_delay_ms,
            max_concurrency=self.max_concurrency,
        )
        self._log(report, inviter_id=inviter_id, user_id=new_user_id, tables=tables)
        return report

    async def on_collaborator_removed(
        self,
        user_id: str,
        scopes: Iterable[str] | None = None,
    ) -> CascadeReport:
        """Take a user out of every ownership set it was added to.

        Args:
            user_id: Collaborator being removed
            scopes: Limit to the tables these scopes cover; all tables if None
        """
        tables = list(SCOPE_TABLES.values()) if scopes is None else tables_for_scopes(scopes)
        operation_id = f"collaborator-removed:{user_id}"
        report = CascadeReport(operation_id=operation_id, kind="collaborator-removed")
        completed = await self.ledger.begin(operation_id, report.kind, {"tables": tables})

        members: list[tuple[str, MemberWrite]] = []
        for table in tables:
            key = key_attribute(table)
            records = await self.store.scan(table, filter=Contains("ownerIds", user_id))
            for record in records:
                item_id = record[key]
                member = member_key(table, item_id)
                if record.get("ownerId") == user_id:
                    report.skipped.append(member)
                    continue
                if set(record.get("ownerIds") or ()) <= {user_id}:
                    report.skipped.append(member)
                    continue
                members.append((member, self._remover(table, item_id, key, user_id)))

        await run_members(
            self.ledger,
            report,
            members,
            completed,
            max_retries=self.max_retries,
            retry_delay_ms=self.retry_delay_ms,
            max_concurrency=self.max_concurrency,
        )
        self._log(report, user_id=user_id, tables=tables)
        return report

    def _adder(self, table: str, item_id: str, key: str, additions: set[str]) -> MemberWrite:
        async def write() -> Any:
            return await self.store.update(
                table,
                item_id,
                Update(set_add={"ownerIds": additions}),
                condition=Exists(key),
            )

        return write

    def _remover(self, table: str, item_id: str, key: str, user_id: str) -> MemberWrite:
        async def write() -> Any:
            return await self.store.update(
                table,
                item_id,
                Update(set_remove={"ownerIds": {user_id}}),
                condition=And(
                    Exists(key),
                    Or(NotExists("ownerId"), NotEquals("ownerId", user_id)),
                ),
            )

        return write

    def _log(self, report: CascadeReport, **context: Any) -> None:
        level = logging.INFO if report.complete else logging.WARNING
        logger.log(
            level,
            "Ownership propagation finished",
            extra={
                "operation_id": report.operation_id,
                "succeeded": len(report.succeeded),
                "failed": len(report.failed),
                "skipped": len(report.skipped),
                **context,
            },
        )
