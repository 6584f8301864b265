from datetime import date

import pytest

from dlms_toolkit.core.errors import ValidationError
from dlms_toolkit.core.export import create_export_package, export_filename, validate_export_package


@pytest.fixture
def versioned():
    return {"metadata": {"documentName": "Doc", "currentVersion": 0}, "document": [], "history": []}


def test_package_round_trip(sample_snapshot, versioned):
    pending = [{"id": "3", "name": "Gone", "_originalParentId": "root", "_originalIndex": 2}]
    package = create_export_package(sample_snapshot, versioned, "Manual", "Draft", pending)
    assert package["metadata"]["documentTitle"] == "Manual"
    assert package["metadata"]["documentSubtitle"] == "Draft"
    assert package["metadata"]["toolVersion"]
    assert package["metadata"]["exportDate"].endswith("Z")

    validated = validate_export_package(package)
    assert validated["documentStructure"] == sample_snapshot
    assert validated["versionHistory"] == versioned
    assert validated["pendingItems"] == pending


def test_package_is_a_copy(sample_snapshot, versioned):
    package = create_export_package(sample_snapshot, versioned)
    package["documentStructure"][0]["name"] = "changed"
    assert sample_snapshot[0]["name"] == "Introduction"


def test_missing_pending_items_default_to_empty(sample_snapshot, versioned):
    package = create_export_package(sample_snapshot, versioned)
    del package["pendingItems"]
    assert validate_export_package(package)["pendingItems"] == []


def test_invalid_package_lists_all_errors():
    with pytest.raises(ValidationError) as excinfo:
        validate_export_package({"versionHistory": {"metadata": {}}, "pendingItems": "x"})
    assert excinfo.value.errors == [
        "Missing 'documentStructure' array",
        "'versionHistory.document' is missing or malformed",
        "'versionHistory.history' is missing or malformed",
        "'pendingItems' must be an array",
    ]


def test_non_object_package():
    with pytest.raises(ValidationError):
        validate_export_package([])


def test_export_filename():
    assert export_filename("My Doc: v2!", 3, date(2024, 1, 2)) == "my_doc_v2_v3_2024-01-02.json"
    assert export_filename("???", 0, date(2024, 1, 2)) == "document_v0_2024-01-02.json"
