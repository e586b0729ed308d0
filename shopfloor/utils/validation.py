# shopfloor/utils/validation.py
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

# Accepted header spellings per canonical field key, in descending preference.
# Uploaded rows are always read using the first spelling.
FIELD_MAPPING: Dict[str, Tuple[str, ...]] = {
    "part_mark": ("Part Mark", "PartMark", "Part_Mark"),
    "assembly_mark": ("Assembly Mark", "AssemblyMark", "Assembly_Mark"),
    "material": ("Material",),
    "thickness": ("Thickness",),
    "quantity": ("Quantity",),
    "length": ("Length",),
    "width": ("Width",),
    "height": ("Height",),
    "weight": ("Weight",),
    "notes": ("Notes",),
}

REQUIRED_FIELDS: Tuple[str, ...] = ("part_mark", "assembly_mark", "material", "thickness")

# field key -> (error code, message)
REQUIRED_FIELD_ERRORS: Dict[str, Tuple[str, str]] = {
    "part_mark": ("PART_MARK_REQUIRED", "PartMark is required"),
    "assembly_mark": ("ASSEMBLY_MARK_REQUIRED", "AssemblyMark is required"),
    "material": ("MATERIAL_REQUIRED", "Material is required"),
    "thickness": ("THICKNESS_REQUIRED", "Thickness is required"),
}

BUSINESS_FIELDS: Tuple[str, ...] = tuple(FIELD_MAPPING.keys())
NUMERIC_FIELDS: Tuple[str, ...] = ("quantity", "length", "width", "height", "weight")


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    error_codes: List[str] = field(default_factory=list)


def header_names_for(field_key: str) -> Tuple[str, ...]:
    """Header spellings accepted for a canonical field key. Unknown keys raise KeyError."""
    return FIELD_MAPPING[field_key]


def primary_header(field_key: str) -> str:
    return header_names_for(field_key)[0]


def field_value(row: Mapping[str, Any], field_key: str, fallback: Any = None) -> Any:
    """Value of a field under its primary header, or fallback when the column is absent"""
    value = row.get(primary_header(field_key))
    return fallback if value is None else value


def _is_blank(value: Optional[str]) -> bool:
    return value is None or str(value).strip() == ""


def validate_row(row: Mapping[str, Any], row_index: int) -> ValidationResult:
    """
    Check the mandatory fields of one raw row.

    A required field fails when its primary header is missing or its value is
    empty after trimming. Errors come out in the fixed order part_mark,
    assembly_mark, material, thickness.
    """
    errors = []
    codes = []
    for field_key in REQUIRED_FIELDS:
        if _is_blank(row.get(primary_header(field_key))):
            code, message = REQUIRED_FIELD_ERRORS[field_key]
            errors.append(message)
            codes.append(code)

    return ValidationResult(is_valid=not errors, errors=errors, error_codes=codes)


def canonical_to_header_row(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Re-key a stored record (canonical keys) by primary header, so it can be re-validated"""
    return {
        primary_header(field_key): record.get(field_key)
        for field_key in BUSINESS_FIELDS
    }
