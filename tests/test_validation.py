import pytest

from shopfloor.utils.validation import (
    canonical_to_header_row, field_value, header_names_for, primary_header, validate_row
)


def _row(**overrides):
    row = {
        "Part Mark": "P-1",
        "Assembly Mark": "A-1",
        "Material": "S355",
        "Thickness": "10",
    }
    row.update(overrides)
    return row


def test_complete_row_is_valid():
    result = validate_row(_row(), 1)

    assert result.is_valid is True
    assert result.errors == []
    assert result.error_codes == []


def test_errors_come_out_in_fixed_field_order():
    result = validate_row({"Thickness": "", "Material": None}, 3)

    assert result.is_valid is False
    assert result.errors == [
        "PartMark is required",
        "AssemblyMark is required",
        "Material is required",
        "Thickness is required",
    ]
    assert result.error_codes == [
        "PART_MARK_REQUIRED",
        "ASSEMBLY_MARK_REQUIRED",
        "MATERIAL_REQUIRED",
        "THICKNESS_REQUIRED",
    ]


def test_whitespace_only_value_counts_as_missing():
    result = validate_row(_row(**{"Material": "   \t"}), 1)

    assert result.errors == ["Material is required"]


def test_alternate_header_spelling_is_not_read():
    row = _row()
    row["PartMark"] = row.pop("Part Mark")

    result = validate_row(row, 1)

    assert result.errors == ["PartMark is required"]


def test_header_names_for_lists_every_spelling():
    assert header_names_for("part_mark") == ("Part Mark", "PartMark", "Part_Mark")
    assert primary_header("assembly_mark") == "Assembly Mark"


def test_header_names_for_unknown_field_raises():
    with pytest.raises(KeyError):
        header_names_for("colour")


def test_field_value_falls_back_only_when_column_absent():
    assert field_value({"Notes": ""}, "notes", "n/a") == ""
    assert field_value({}, "notes", "n/a") == "n/a"


def test_stored_record_can_be_revalidated():
    record = {"part_mark": "P-1", "assembly_mark": "", "material": "S355", "thickness": "8", "quantity": 2}

    header_row = canonical_to_header_row(record)

    assert header_row["Part Mark"] == "P-1"
    assert header_row["Quantity"] == 2
    assert validate_row(header_row, 1).errors == ["AssemblyMark is required"]
