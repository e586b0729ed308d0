# shopfloor/services/csv_service.py
import csv
import logging
import math
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Mapping, Optional, Sequence

from shopfloor.core.db import Database
from shopfloor.models.audit_log import (
    ACTION_CREATE, ACTION_UPDATE, ACTION_DELETE, ACTION_BULK_DELETE, ACTION_CLEAR_ALL
)
from shopfloor.services.audit_service import AuditService, changed_fields, create_diff_string
from shopfloor.utils.csv_utils import iter_csv_rows, write_error_report
from shopfloor.utils.validation import (
    BUSINESS_FIELDS, NUMERIC_FIELDS, REQUIRED_FIELDS, canonical_to_header_row, field_value,
    primary_header, validate_row
)

logger = logging.getLogger(__name__)

PROCESSING_FAILED = "Failed to process CSV file"

# Quantity is stored in a signed 64-bit INTEGER column
QUANTITY_MIN = -(2 ** 63)
QUANTITY_MAX = 2 ** 63 - 1

INSERT_PART_SQL = """
    INSERT INTO parts (part_mark, assembly_mark, material, thickness, quantity,
                       length, width, height, weight, notes, source_filename, line_no)
    VALUES (:part_mark, :assembly_mark, :material, :thickness, :quantity,
            :length, :width, :height, :weight, :notes, :source_filename, :line_no)
"""

UPDATE_FIELDS_SQL = """
    part_mark = :part_mark, assembly_mark = :assembly_mark, material = :material,
    thickness = :thickness, quantity = :quantity, length = :length, width = :width,
    height = :height, weight = :weight, notes = :notes, updated_at = CURRENT_TIMESTAMP
"""


class PartNotFoundError(Exception):
    pass


class PartValidationError(Exception):
    """Rejected input, with one human-readable reason per problem"""

    def __init__(self, errors: Sequence[str]):
        super().__init__("; ".join(errors))
        self.errors = list(errors)


@dataclass
class RawUploadRow:
    row_number: int
    values: Dict[str, Optional[str]]


@dataclass
class RejectedRow:
    row_number: int
    values: Dict[str, Optional[str]]
    errors: List[str] = field(default_factory=list)


@dataclass
class ValidatedRow:
    row_number: int
    part_mark: str
    assembly_mark: str
    material: str
    thickness: str
    quantity: int = 1
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    weight: Optional[float] = None
    notes: Optional[str] = None

    def to_params(self, source_filename: Optional[str] = None) -> Dict[str, Any]:
        params = asdict(self)
        params["line_no"] = params.pop("row_number")
        params["source_filename"] = source_filename
        return params


@dataclass
class IngestionResult:
    success: bool
    valid_rows: int = 0
    invalid_rows: int = 0
    has_error_file: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": self.success,
            "validRows": self.valid_rows,
            "invalidRows": self.invalid_rows,
            "hasErrorFile": self.has_error_file,
        }
        if self.error:
            data["error"] = self.error
        return data


def parse_optional_number(value: Any) -> Optional[float]:
    """Blank or unparsable numeric cells become None"""
    if value is None:
        return None
    text_value = str(value).strip()
    if not text_value:
        return None
    try:
        number = float(text_value)
    except ValueError:
        logger.warning(f"Ignoring non-numeric value '{value}'")
        return None
    return number if math.isfinite(number) else None


def parse_quantity(value: Any) -> int:
    """Quantity defaults to 1 when absent, blank, unparsable or out of range"""
    number = parse_optional_number(value)
    if number is None:
        return 1
    quantity = int(number)
    if not QUANTITY_MIN <= quantity <= QUANTITY_MAX:
        logger.warning(f"Quantity '{value}' is out of range, using 1")
        return 1
    return quantity


def numeric_field_errors(values: Mapping[str, Any]) -> List[str]:
    """
    Reasons why the numeric fields present in values cannot be stored as given.

    Blank values are accepted. They clear the measurement, or reset quantity
    to 1.
    """
    errors = []
    for key in NUMERIC_FIELDS:
        if key not in values:
            continue
        value = values[key]
        if value is None or str(value).strip() == "":
            continue

        header = primary_header(key)
        try:
            number = float(str(value).strip())
        except ValueError:
            errors.append(f"{header} must be a number")
            continue
        if not math.isfinite(number):
            errors.append(f"{header} must be a number")
        elif key == "quantity" and not number.is_integer():
            errors.append(f"{header} must be a whole number")
        elif key == "quantity" and not QUANTITY_MIN <= int(number) <= QUANTITY_MAX:
            errors.append(f"{header} is out of range")
    return errors


def to_validated_row(raw: RawUploadRow) -> ValidatedRow:
    """Map an accepted upload row from header spellings to canonical typed fields"""
    notes = field_value(raw.values, "notes")
    return ValidatedRow(
        row_number=raw.row_number,
        part_mark=field_value(raw.values, "part_mark").strip(),
        assembly_mark=field_value(raw.values, "assembly_mark").strip(),
        material=field_value(raw.values, "material").strip(),
        thickness=field_value(raw.values, "thickness").strip(),
        quantity=parse_quantity(field_value(raw.values, "quantity")),
        length=parse_optional_number(field_value(raw.values, "length")),
        width=parse_optional_number(field_value(raw.values, "width")),
        height=parse_optional_number(field_value(raw.values, "height")),
        weight=parse_optional_number(field_value(raw.values, "weight")),
        notes=notes if notes not in (None, "") else None,
    )


class CsvService:
    """Ingestion of uploaded files and mutations of the parts table"""

    def __init__(self, db: Database, audit: AuditService, error_report_path):
        self.db = db
        self.audit = audit
        self.error_report_path = error_report_path

    def process_file(
            self,
            file_path,
            source_filename: Optional[str] = None,
            acting_user=None
    ) -> IngestionResult:
        """
        Validate every row of an uploaded CSV, persist the valid ones and
        report the rejected ones.

        Rows are validated as they are read; persistence happens once at the
        end of the stream in a single transaction.
        """
        valid_rows: List[ValidatedRow] = []
        rejected_rows: List[RejectedRow] = []

        try:
            for row_number, values in iter_csv_rows(file_path):
                raw = RawUploadRow(row_number=row_number, values=values)
                validation = validate_row(raw.values, raw.row_number)

                if validation.is_valid:
                    valid_rows.append(to_validated_row(raw))
                else:
                    rejected_rows.append(RejectedRow(raw.row_number, raw.values, validation.errors))

            if valid_rows:
                self.db.batch_insert(
                    INSERT_PART_SQL,
                    [row.to_params(source_filename) for row in valid_rows]
                )
                self.audit.record(
                    acting_user,
                    ACTION_CREATE,
                    diff=f"Bulk created {len(valid_rows)} records from CSV upload"
                )

        except (OSError, UnicodeDecodeError, csv.Error):
            logger.exception(f"Error reading CSV file {source_filename or file_path}")
            return IngestionResult(success=False, error=PROCESSING_FAILED)
        except Exception:
            logger.exception(f"Error persisting rows from {source_filename or file_path}")
            return IngestionResult(success=False, error=PROCESSING_FAILED)

        has_error_file = False
        if rejected_rows:
            try:
                write_error_report(rejected_rows, self.error_report_path)
                has_error_file = True
            except OSError:
                # Valid rows are already committed, so the upload itself still succeeded
                logger.exception("Failed to write error report")

        logger.info(
            f"Processed {source_filename or file_path}: "
            f"{len(valid_rows)} valid, {len(rejected_rows)} invalid"
        )
        return IngestionResult(
            success=True,
            valid_rows=len(valid_rows),
            invalid_rows=len(rejected_rows),
            has_error_file=has_error_file,
        )

    def get_part(self, row_id: int) -> Optional[Dict[str, Any]]:
        return self.db.select_one("SELECT * FROM parts WHERE id = :id", {"id": row_id})

    def all_parts(self) -> List[Dict[str, Any]]:
        return self.db.select_all("SELECT * FROM parts ORDER BY created_at DESC, id DESC")

    def update_part(self, row_id: int, changes: Mapping[str, Any], acting_user=None) -> Dict[str, Any]:
        """
        Apply a partial update to one part and audit it.

        Raises PartNotFoundError for an unknown id and PartValidationError when
        the merged row would lose a required field or a numeric field is not a
        number; nothing is written then.
        """
        old = self.get_part(row_id)
        if old is None:
            raise PartNotFoundError(f"Record {row_id} not found")

        submitted = {key: value for key, value in changes.items() if key in BUSINESS_FIELDS}
        new = {key: old.get(key) for key in BUSINESS_FIELDS}
        new.update(submitted)

        validation = validate_row(canonical_to_header_row(new), row_id)
        errors = validation.errors + numeric_field_errors(submitted)
        if errors:
            raise PartValidationError(errors)

        if new["quantity"] is None or str(new["quantity"]).strip() == "":
            new["quantity"] = 1

        # The diff shows the values as submitted, the row stores them typed
        fields = changed_fields(old, new)
        diff = create_diff_string(old, new)

        stored = dict(new)
        for key in REQUIRED_FIELDS:
            stored[key] = str(new[key]).strip()
        stored["quantity"] = parse_quantity(new["quantity"])
        for key in ("length", "width", "height", "weight"):
            stored[key] = parse_optional_number(new[key])

        params = {**stored, "id": row_id}
        if fields:
            query = (
                f"UPDATE parts SET {UPDATE_FIELDS_SQL}, edited_by = :edited_by, "
                f"edited_at = CURRENT_TIMESTAMP, fields_changed = :fields_changed WHERE id = :id"
            )
            params["edited_by"] = getattr(acting_user, "email", None) or "system"
            params["fields_changed"] = "|".join(fields)
        else:
            query = f"UPDATE parts SET {UPDATE_FIELDS_SQL} WHERE id = :id"

        # Last write wins, there is no version check
        updated = self.db.execute(query, params)

        if updated > 0:
            self.audit.record(acting_user, ACTION_UPDATE, row_id=row_id, diff=diff)

        return {"success": True, "changes": updated, "fieldsChanged": fields}

    def delete_parts(self, ids: Sequence[int], acting_user=None) -> int:
        if not ids:
            raise PartValidationError(["IDs array is required and cannot be empty"])

        params = {f"id_{index}": row_id for index, row_id in enumerate(ids)}
        placeholders = ", ".join(f":{name}" for name in params)
        deleted = self.db.execute(f"DELETE FROM parts WHERE id IN ({placeholders})", params)

        if deleted > 0:
            self.audit.record_bulk_operation(ACTION_BULK_DELETE, list(ids), acting_user)

        return deleted

    def delete_part(self, row_id: int, acting_user=None) -> int:
        deleted = self.db.execute("DELETE FROM parts WHERE id = :id", {"id": row_id})
        if deleted > 0:
            self.audit.record(acting_user, ACTION_DELETE, row_id=row_id, diff=f"Deleted record {row_id}")
        return deleted

    def clear_all(self, acting_user=None) -> int:
        deleted = self.db.execute("DELETE FROM parts")
        self.audit.record_bulk_operation(ACTION_CLEAR_ALL, [], acting_user)
        return deleted
