"""Models Package.

Data models for the reconciliation engine:
- Canonical typed records for each sheet table
- Result/read models returned by the engine
"""

from models.canonical import (
    Order,
    SupplierInvoice,
    Allocation,
    KitchenSaleRecord,
    KitchenMapping,
    RawSaleRow,
)

from models.refs import (
    MatchPath,
    SettlementStatus,
    DiscrepancyType,
    MatchedSupplierInvoice,
    MatchResult,
    Discrepancy,
    ReconciliationSummary,
    MutationResult,
    RejectedRow,
    ImportResult,
)

__all__ = [
    # Canonical records
    "Order",
    "SupplierInvoice",
    "Allocation",
    "KitchenSaleRecord",
    "KitchenMapping",
    "RawSaleRow",

    # Results
    "MatchPath",
    "SettlementStatus",
    "DiscrepancyType",
    "MatchedSupplierInvoice",
    "MatchResult",
    "Discrepancy",
    "ReconciliationSummary",
    "MutationResult",
    "RejectedRow",
    "ImportResult",
]
