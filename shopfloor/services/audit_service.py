# shopfloor/services/audit_service.py
import logging
import math
from typing import Any, List, Mapping, Optional, Sequence, Union

from shopfloor.core.db import Database
from shopfloor.models.audit_log import (
    AUDIT_ACTIONS, ACTION_BULK_DELETE, ACTION_CLEAR_ALL
)
from shopfloor.utils.validation import BUSINESS_FIELDS

logger = logging.getLogger(__name__)

# Two numbers closer than this are the same value
NUMERIC_TOLERANCE = 0.0001

DIFF_SEPARATOR = ", "
DIFF_ARROW = "→"
NO_CHANGES = "No changes"

INSERT_AUDIT_SQL = """
    INSERT INTO audit_log (user_id, action, row_id, diff)
    VALUES (:user_id, :action, :row_id, :diff)
"""


def normalize_value(value: Any) -> Union[None, float, str]:
    """Normalize a field value for comparison: None stays None, numeric text becomes a float"""
    if value is None:
        return None

    string_value = str(value).strip()
    try:
        number = float(string_value)
    except ValueError:
        return string_value

    if math.isfinite(number):
        return number
    return string_value


def values_equal(old_value: Any, new_value: Any) -> bool:
    old_norm = normalize_value(old_value)
    new_norm = normalize_value(new_value)

    if isinstance(old_norm, float) and isinstance(new_norm, float):
        return abs(old_norm - new_norm) <= NUMERIC_TOLERANCE
    return old_norm == new_norm


def display_value(value: Any) -> str:
    """Render a raw value the way it appears inside a diff fragment"""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def changed_fields(old_data: Mapping[str, Any], new_data: Mapping[str, Any]) -> List[str]:
    """Business fields whose normalized value differs between old and new"""
    return [
        field for field in BUSINESS_FIELDS
        if not values_equal(old_data.get(field), new_data.get(field))
    ]


def create_diff_string(old_data: Mapping[str, Any], new_data: Mapping[str, Any]) -> str:
    """
    Build the textual diff stored on UPDATE audit entries.

    Format: `field: "old" → "new"` fragments joined with ", ", using the raw
    display values. When nothing changed the diff is "No changes".
    """
    changes = [
        f'{field}: "{display_value(old_data.get(field))}" {DIFF_ARROW} "{display_value(new_data.get(field))}"'
        for field in changed_fields(old_data, new_data)
    ]
    return DIFF_SEPARATOR.join(changes) if changes else NO_CHANGES


def bulk_operation_diff(action: str, row_ids: Sequence[int]) -> str:
    if action == ACTION_BULK_DELETE:
        return f"Deleted {len(row_ids)} records: [{', '.join(str(row_id) for row_id in row_ids)}]"
    return "Cleared all records from database"


def acting_user_id(acting_user) -> Optional[int]:
    """Resolve the audit user reference from a user object, a plain id, or nothing"""
    if acting_user is None:
        return None
    if isinstance(acting_user, int):
        return acting_user
    return getattr(acting_user, "id", None)


class AuditService:
    """Best-effort writer for the audit trail"""

    def __init__(self, db: Database):
        self.db = db

    def record(
            self,
            acting_user,
            action: str,
            row_id: Optional[int] = None,
            diff: Optional[str] = None
    ) -> bool:
        """
        Append one audit entry.

        Returns True when the entry was written. Failures are logged and
        reported through the return value only, never raised, so the
        mutation being audited is not affected.
        """
        if action not in AUDIT_ACTIONS:
            logger.error(f"Refusing to write audit entry with unknown action: {action}")
            return False

        try:
            self.db.execute(INSERT_AUDIT_SQL, {
                "user_id": acting_user_id(acting_user),
                "action": action,
                "row_id": row_id,
                "diff": diff,
            })
            return True
        except Exception:
            logger.exception(f"Failed to log audit entry ({action}, row_id={row_id})")
            return False

    def record_bulk_operation(self, action: str, row_ids: Sequence[int], acting_user=None) -> bool:
        """Log a bulk delete or clear-all with its fixed descriptive diff"""
        if action not in (ACTION_BULK_DELETE, ACTION_CLEAR_ALL):
            logger.error(f"Not a bulk operation: {action}")
            return False
        return self.record(acting_user, action, diff=bulk_operation_diff(action, row_ids))
