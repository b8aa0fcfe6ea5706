"""
Ownership and consistency machinery.

Components:
- ProductCountMaintainer: conditional productCount updates
- CascadeLedger: resumable multi-record operations
- OwnershipPropagationEngine: collaborator fan-out
- ReferentialIntegrityCoordinator: category/product consistency
"""

from .counters import CounterResult, ProductCountMaintainer
from .integrity import ReferentialIntegrityCoordinator
from .ledger import CascadeLedger, run_members
from .propagation import SCOPE_TABLES, OwnershipPropagationEngine, tables_for_scopes
from .reports import CascadeReport, member_key
from .retry import with_retries

__all__ = [
    "SCOPE_TABLES",
    "CascadeLedger",
    "CascadeReport",
    "CounterResult",
    "OwnershipPropagationEngine",
    "ProductCountMaintainer",
    "ReferentialIntegrityCoordinator",
    "member_key",
    "run_members",
    "tables_for_scopes",
    "with_retries",
]
