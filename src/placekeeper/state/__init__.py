"""Per-document state persistence: keys, records, change detection and lock mode."""

from .compare import is_empty_state, states_same
from .debounce import DebouncedWriter
from .integrity import IntegrityChecker, IntegrityError
from .keys import derive_key, state_location
from .lock import LockManager
from .models import CursorPosition, CursorRange, LockIcon, StateRecord, ValidationReport
from .record_store import RecordStore, merge_lock_fields
from .restoration import RestorationSequencer, capture_state

__all__ = [
    "CursorPosition",
    "CursorRange",
    "DebouncedWriter",
    "IntegrityChecker",
    "IntegrityError",
    "LockIcon",
    "LockManager",
    "RecordStore",
    "RestorationSequencer",
    "StateRecord",
    "ValidationReport",
    "capture_state",
    "derive_key",
    "is_empty_state",
    "merge_lock_fields",
    "state_location",
    "states_same",
]
