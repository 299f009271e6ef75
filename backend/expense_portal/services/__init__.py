from .money import to_minor_units, from_minor_units
from .record_store import (
    RecordStore,
    RecordStoreError,
    RecordNotFound,
    InvalidStatusTransition,
)
from .expenses import ExpenseService, format_store_error
from .degraded import DegradedModeProvider
