from shopfloor.utils.file_validation import validate_upload


def test_plain_csv_passes(settings):
    assert validate_upload("parts.csv", "text/csv", 1024, settings) == []


def test_mime_parameters_and_case_are_ignored(settings):
    assert validate_upload("PARTS.CSV", "text/plain; charset=utf-8", 10, settings) == []


def test_oversized_file(settings):
    errors = validate_upload("parts.csv", "text/csv", settings.MAX_UPLOAD_SIZE + 1, settings)

    assert errors == ["File size exceeds 10MB limit"]


def test_wrong_extension_and_type(settings):
    errors = validate_upload("parts.xlsx", "application/octet-stream", 10, settings)

    assert len(errors) == 2
    assert "'.xlsx'" in errors[0]
    assert "application/octet-stream" in errors[1]


def test_path_characters_in_name(settings):
    assert validate_upload("../parts.csv", "text/csv", 10, settings) == [
        "File name contains invalid characters"
    ]
    assert validate_upload("dir\\parts.csv", "text/csv", 10, settings) == [
        "File name contains invalid characters"
    ]
