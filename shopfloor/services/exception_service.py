# shopfloor/services/exception_service.py
import logging
import math
import re
from typing import Any, Dict, List, Optional

from shopfloor.core.db import Database
from shopfloor.models.audit_log import ACTION_UPDATE
from shopfloor.services.audit_service import DIFF_SEPARATOR
from shopfloor.utils.csv_utils import rows_to_csv
from shopfloor.utils.validation import (
    BUSINESS_FIELDS, NUMERIC_FIELDS, canonical_to_header_row, validate_row
)

logger = logging.getLogger(__name__)

# One diff fragment: field: "old" → "new"
DIFF_FRAGMENT = re.compile(r'^(\w+):\s*"([^"]*)"\s*→\s*"[^"]*"$')

INVALID_ROWS_FILENAME = "invalid_rows.csv"
EDITED_ROWS_FILENAME = "edited_rows.csv"

TRACKING_HEADERS = [
    "row_id",
    "source_filename",
    "line_no",
    "uploaded_at",
    "last_validated_at",
    "is_valid",
    "error_codes",
    "error_messages",
]
EDIT_HEADERS = ["edited_by", "edited_at", "fields_changed"]
ORIGINAL_HEADERS = [f"{field}_original" for field in BUSINESS_FIELDS]

INVALID_ROWS_HEADERS = TRACKING_HEADERS + list(BUSINESS_FIELDS)
EDITED_ROWS_HEADERS = TRACKING_HEADERS + EDIT_HEADERS + list(BUSINESS_FIELDS) + ORIGINAL_HEADERS


def _parse_original_number(field: str, value: str):
    """Numbers captured from a diff; anything unparsable becomes 0"""
    try:
        number = float(value)
    except ValueError:
        return 0
    if not math.isfinite(number):
        return 0
    return int(number) if field == "quantity" else number


def parse_original_values(diff: Optional[str]) -> Dict[str, Any]:
    """
    Recover the pre-edit values from an UPDATE diff string.

    Fragments that do not match the diff grammar are skipped. A value that
    itself contains ", " or a double quote cannot be recovered.
    """
    original_values: Dict[str, Any] = {}
    if not diff:
        return original_values

    for fragment in diff.split(DIFF_SEPARATOR):
        match = DIFF_FRAGMENT.match(fragment)
        if not match:
            continue

        field, old_value = match.group(1), match.group(2)
        if field not in BUSINESS_FIELDS:
            continue

        if field in NUMERIC_FIELDS:
            original_values[field] = _parse_original_number(field, old_value)
        else:
            original_values[field] = old_value

    return original_values


class ExceptionService:
    """Invalid/edited row reporting and validation re-checks"""

    def __init__(self, db: Database):
        self.db = db

    def original_values_for(self, row_id: int) -> Dict[str, Any]:
        """Field values of a row as they were just before its most recent update"""
        entry = self.db.select_one(
            """
            SELECT diff FROM audit_log
            WHERE row_id = :row_id AND action = :action
            ORDER BY timestamp DESC, id DESC
            LIMIT 1
            """,
            {"row_id": row_id, "action": ACTION_UPDATE}
        )
        if entry is None:
            return {}

        original_values = parse_original_values(entry["diff"])
        logger.debug(f"Extracted original values for row {row_id}: {original_values}")
        return original_values

    def invalid_rows(self) -> List[Dict[str, Any]]:
        return self.db.select_all("SELECT * FROM parts WHERE is_valid = :is_valid ORDER BY id ASC",
                                  {"is_valid": False})

    def edited_rows(self) -> List[Dict[str, Any]]:
        return self.db.select_all("SELECT * FROM parts WHERE edited_at IS NOT NULL ORDER BY id ASC")

    def invalid_rows_count(self) -> int:
        return self.db.scalar_count("SELECT COUNT(*) FROM parts WHERE is_valid = :is_valid",
                                    {"is_valid": False})

    def edited_rows_count(self) -> int:
        return self.db.scalar_count("SELECT COUNT(*) FROM parts WHERE edited_at IS NOT NULL")

    @staticmethod
    def _tracking_cells(row: Dict[str, Any]) -> List[Any]:
        return [
            row.get("id"),
            row.get("source_filename"),
            row.get("line_no"),
            row.get("created_at"),
            row.get("last_validated_at"),
            bool(row.get("is_valid")),
            row.get("error_codes"),
            row.get("error_messages"),
        ]

    def invalid_rows_csv(self) -> str:
        rows = [
            self._tracking_cells(row) + [row.get(field) for field in BUSINESS_FIELDS]
            for row in self.invalid_rows()
        ]
        return rows_to_csv(INVALID_ROWS_HEADERS, rows)

    def edited_rows_csv(self) -> str:
        rows = []
        for row in self.edited_rows():
            original_values = self.original_values_for(row["id"])
            rows.append(
                self._tracking_cells(row)
                + [row.get(field) for field in EDIT_HEADERS]
                + [row.get(field) for field in BUSINESS_FIELDS]
                + [original_values.get(field) for field in BUSINESS_FIELDS]
            )
        return rows_to_csv(EDITED_ROWS_HEADERS, rows)

    def update_validation_status(
            self,
            row_id: int,
            is_valid: bool,
            error_codes: Optional[str] = None,
            error_messages: Optional[str] = None
    ) -> int:
        """Write the validation-tracking columns of one row, leaving business fields untouched"""
        return self.db.execute(
            """
            UPDATE parts
            SET is_valid = :is_valid, error_codes = :error_codes,
                error_messages = :error_messages, last_validated_at = CURRENT_TIMESTAMP
            WHERE id = :id
            """,
            {
                "id": row_id,
                "is_valid": is_valid,
                "error_codes": error_codes or None,
                "error_messages": error_messages or None,
            }
        )

    def revalidate_all(self) -> Dict[str, int]:
        """Re-run the mandatory-field rules over every stored row"""
        checked = valid = 0
        for row in self.db.select_all("SELECT * FROM parts ORDER BY id ASC"):
            result = validate_row(canonical_to_header_row(row), row["id"])
            self.update_validation_status(
                row["id"],
                result.is_valid,
                "|".join(result.error_codes),
                "|".join(result.errors),
            )
            checked += 1
            valid += int(result.is_valid)

        logger.info(f"Revalidated {checked} rows, {checked - valid} invalid")
        return {"checked": checked, "valid": valid, "invalid": checked - valid}
