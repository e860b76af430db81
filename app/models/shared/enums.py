from enum import Enum
from typing import Optional

# Sync jobs
class SyncJobStatus(str, Enum):
    RUNNING = "RUNNING"
    RETRYING = "RETRYING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

class SyncTrigger(str, Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"

class SyncRunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    RETRYING = "retrying"
    DONE = "done"
    ERROR = "error"

class SyncPhase(str, Enum):
    IDLE = ""
    LISTING = "listing"
    DETAILS = "details"
    AGGREGATING = "aggregating"
    WAREHOUSE_STOCK = "warehouseStock"
    PO_OUTSTANDING = "poOutstanding"
    COMMIT = "commit"
    DONE = "done"

class CacheKind(str, Enum):
    SALES = "sales"
    WAREHOUSE_STOCK = "warehouse_stock"
    PO_OUTSTANDING = "po_outstanding"
    SO_OUTSTANDING = "so_outstanding"


class RecordStatus(str, Enum):
    """Document status of a purchase or sales order.

    Accurate reports status names in the database's locale, so the same state
    arrives as e.g. "Ditutup" or "Closed". ``parse`` folds every known spelling
    into one variant; anything else becomes UNKNOWN.
    """
    OPEN = "OPEN"
    SUBMITTED = "SUBMITTED"
    PARTIAL = "PARTIAL"
    CLOSED = "CLOSED"
    VOID = "VOID"
    DRAFT = "DRAFT"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "RecordStatus":
        if not raw:
            return cls.UNKNOWN
        return _STATUS_SPELLINGS.get(" ".join(raw.lower().split()), cls.UNKNOWN)

    @property
    def is_closed(self) -> bool:
        return self in (RecordStatus.CLOSED, RecordStatus.VOID, RecordStatus.DRAFT)


_STATUS_SPELLINGS = {
    # open
    "open": RecordStatus.OPEN,
    "buka": RecordStatus.OPEN,
    "dibuka": RecordStatus.OPEN,
    "menunggu diproses": RecordStatus.OPEN,
    "belum diproses": RecordStatus.OPEN,
    "waiting": RecordStatus.OPEN,
    "waiting to be processed": RecordStatus.OPEN,
    "pending": RecordStatus.OPEN,
    # submitted / awaiting approval
    "diajukan": RecordStatus.SUBMITTED,
    "submitted": RecordStatus.SUBMITTED,
    "proposed": RecordStatus.SUBMITTED,
    # partially processed
    "partial": RecordStatus.PARTIAL,
    "sebagian": RecordStatus.PARTIAL,
    "sebagian diproses": RecordStatus.PARTIAL,
    "sebagian terproses": RecordStatus.PARTIAL,
    "partially processed": RecordStatus.PARTIAL,
    # closed
    "ditutup": RecordStatus.CLOSED,
    "closed": RecordStatus.CLOSED,
    "selesai": RecordStatus.CLOSED,
    "terproses": RecordStatus.CLOSED,
    "processed": RecordStatus.CLOSED,
    "completed": RecordStatus.CLOSED,
    # void
    "void": RecordStatus.VOID,
    "cancel": RecordStatus.VOID,
    "cancelled": RecordStatus.VOID,
    "canceled": RecordStatus.VOID,
    "batal": RecordStatus.VOID,
    "dibatalkan": RecordStatus.VOID,
    # draft
    "draft": RecordStatus.DRAFT,
    "konsep": RecordStatus.DRAFT,
}


# Analytics
class StockStatus(str, Enum):
    OK = "OK"
    REORDER = "REORDER"
    CRITICAL = "CRITICAL"
    OVERSTOCK = "OVERSTOCK"

class DemandCategory(str, Enum):
    FAST = "FAST"
    SLOW = "SLOW"
    NON_MOVING = "NON-MOVING"
    DEAD = "DEAD"

class AbcClass(str, Enum):
    A = "A"
    B = "B"
    C = "C"

class XyzClass(str, Enum):
    X = "X"  # Stable demand
    Y = "Y"  # Variable demand
    Z = "Z"  # Erratic demand

class DataSource(str, Enum):
    API = "API"
    ESTIMATED = "ESTIMATED"
