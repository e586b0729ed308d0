import inspect
from types import SimpleNamespace

from shopfloor.api.dependencies import (
    get_current_active_user, get_current_admin_user, get_current_user, get_token_from_request
)
from shopfloor.models.user import ROLE_USER

from conftest import HEADER, USER_EMAIL

UPLOAD = "\n".join([
    HEADER,
    "P-1,A-1,S355,10,2,100,,,,",
    ",A-2,S355,,1,,,,,",
]) + "\n"


def _upload(client, headers, content=UPLOAD, filename="parts.csv", content_type="text/csv"):
    return client.post(
        "/api/v1/csv/upload",
        files={"csvFile": (filename, content.encode("utf-8"), content_type)},
        headers=headers,
    )


def test_health_is_public(client):
    resp = client.get("/api/v1/health")

    assert resp.status_code == 200
    assert resp.json()["database"] == "connected"


def test_routes_require_token(client):
    assert client.get("/api/v1/csv/data").status_code == 401
    assert client.get("/api/v1/csv/data", headers={"Authorization": "Bearer nonsense"}).status_code == 401


def test_upload_then_query_and_download_rejects(client, admin_headers):
    resp = _upload(client, admin_headers)

    assert resp.status_code == 200
    assert resp.json() == {"success": True, "validRows": 1, "invalidRows": 1, "hasErrorFile": True}

    data = client.get("/api/v1/csv/data", headers=admin_headers).json()
    assert data["total"] == 1
    assert data["page"] == 1
    assert data["limit"] == 100
    assert data["data"][0]["part_mark"] == "P-1"

    assert client.get("/api/v1/csv/error/check", headers=admin_headers).json()["hasErrorFile"] is True
    report = client.get("/api/v1/csv/error", headers=admin_headers)
    assert report.status_code == 200
    lines = report.text.splitlines()
    assert lines[0] == "Row Number,Part Mark,Assembly Mark,Material,Thickness,Errors"
    assert lines[1] == "2,,A-2,S355,,PartMark is required; Thickness is required"


def test_error_report_missing(client, admin_headers):
    assert client.get("/api/v1/csv/error", headers=admin_headers).status_code == 404
    assert client.get("/api/v1/csv/error/check", headers=admin_headers).json()["hasErrorFile"] is False


def test_upload_without_file(client, admin_headers):
    resp = client.post("/api/v1/csv/upload", headers=admin_headers)

    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "No file uploaded"


def test_upload_with_wrong_type(client, admin_headers):
    resp = _upload(client, admin_headers, filename="parts.exe", content_type="application/x-msdownload")

    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["error"] == "File validation failed"
    assert detail["code"] == "FILE_VALIDATION_FAILED"
    assert len(detail["details"]) == 2


def test_upload_too_large(client, admin_headers, settings):
    settings.MAX_UPLOAD_SIZE = 10

    resp = _upload(client, admin_headers)

    assert resp.status_code == 400
    assert resp.json()["detail"]["details"][0].startswith("File size exceeds")


def test_update_record(client, admin_headers):
    _upload(client, admin_headers)
    row_id = client.get("/api/v1/csv/data", headers=admin_headers).json()["data"][0]["id"]

    resp = client.put(f"/api/v1/csv/data/{row_id}", json={"material": "S235"}, headers=admin_headers)

    assert resp.status_code == 200
    assert resp.json()["fieldsChanged"] == ["material"]
    assert client.get(f"/api/v1/csv/data/{row_id}", headers=admin_headers).json()["material"] == "S235"

    count = client.get("/api/v1/csv/exceptions/edited/count", headers=admin_headers).json()
    assert count == {"success": True, "count": 1}

    export = client.get("/api/v1/csv/exceptions/edited", headers=admin_headers)
    assert export.headers["cache-control"].startswith("no-cache")
    assert export.content.startswith("\ufeff".encode("utf-8"))
    assert "S355" in export.text


def test_update_validation_and_not_found(client, admin_headers):
    _upload(client, admin_headers)
    row_id = client.get("/api/v1/csv/data", headers=admin_headers).json()["data"][0]["id"]

    bad = client.put(f"/api/v1/csv/data/{row_id}", json={"part_mark": " "}, headers=admin_headers)
    assert bad.status_code == 400
    assert bad.json()["detail"]["details"] == ["PartMark is required"]

    missing = client.put("/api/v1/csv/data/9999", json={"material": "S235"}, headers=admin_headers)
    assert missing.status_code == 404
    assert client.get("/api/v1/csv/data/9999", headers=admin_headers).status_code == 404


def test_update_rejects_unparsable_numbers(client, admin_headers):
    _upload(client, admin_headers)
    row_id = client.get("/api/v1/csv/data", headers=admin_headers).json()["data"][0]["id"]

    bad = client.put(f"/api/v1/csv/data/{row_id}", json={"length": "5mm", "quantity": 3.7}, headers=admin_headers)

    assert bad.status_code == 400
    assert bad.json()["detail"] == {
        "error": "Validation failed",
        "details": ["Quantity must be a whole number", "Length must be a number"],
    }
    row = client.get(f"/api/v1/csv/data/{row_id}", headers=admin_headers).json()
    assert row["quantity"] == 2
    assert row["length"] == 100


def test_bulk_delete_validation(client, admin_headers):
    empty = client.request("DELETE", "/api/v1/csv/data", json={"ids": []}, headers=admin_headers)
    assert empty.status_code == 400

    junk = client.request("DELETE", "/api/v1/csv/data", json={"ids": ["abc"]}, headers=admin_headers)
    assert junk.status_code == 400


def test_bulk_delete_rejects_fractional_ids(client, admin_headers):
    _upload(client, admin_headers)
    row_id = client.get("/api/v1/csv/data", headers=admin_headers).json()["data"][0]["id"]

    resp = client.request("DELETE", "/api/v1/csv/data", json={"ids": [row_id + 0.5]}, headers=admin_headers)

    assert resp.status_code == 400
    assert resp.json()["detail"]["error"] == "All IDs must be valid numbers"
    assert client.get("/api/v1/csv/data", headers=admin_headers).json()["total"] == 1


def test_auth_dependencies_run_in_threadpool():
    for dependency in (get_token_from_request, get_current_user, get_current_active_user, get_current_admin_user):
        assert not inspect.iscoroutinefunction(dependency)


def test_bulk_and_single_delete(client, admin_headers):
    _upload(client, admin_headers, content=f"{HEADER}\nP-1,A-1,S355,10,,,,,,\nP-2,A-2,S355,10,,,,,,\n")
    ids = [row["id"] for row in client.get("/api/v1/csv/data", headers=admin_headers).json()["data"]]

    resp = client.request("DELETE", "/api/v1/csv/data", json={"ids": [str(ids[0])]}, headers=admin_headers)
    assert resp.json() == {"success": True, "deletedCount": 1}

    assert client.delete(f"/api/v1/csv/{ids[1]}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/v1/csv/{ids[1]}", headers=admin_headers).status_code == 404
    assert client.get("/api/v1/csv/data", headers=admin_headers).json()["total"] == 0


def test_clear_requires_admin(client, admin_headers, user_headers):
    _upload(client, admin_headers)

    assert client.delete("/api/v1/csv/data/clear", headers=user_headers).status_code == 403

    resp = client.delete("/api/v1/csv/data/clear", headers=admin_headers)
    assert resp.json() == {"success": True, "deletedCount": 1}


def test_export_streams_all_rows(client, admin_headers):
    _upload(client, admin_headers)

    resp = client.get("/api/v1/csv/export", headers=admin_headers)

    assert resp.status_code == 200
    assert resp.text.splitlines() == [
        "PartMark,AssemblyMark,Material,Thickness,Quantity,Length,Width,Height,Weight,Notes",
        "P-1,A-1,S355,10,2,100,,,,",
    ]


def test_audit_is_scoped_by_role(client, admin_headers, user_headers):
    _upload(client, admin_headers)
    _upload(client, user_headers, content=f"{HEADER}\nP-7,A-7,S355,10,,,,,,\n")

    admin_view = client.get("/api/v1/csv/audit", headers=admin_headers).json()
    user_view = client.get("/api/v1/csv/audit", headers=user_headers).json()

    assert admin_view["pagination"]["total"] == 2
    assert user_view["pagination"] == {"total": 1, "page": 1, "limit": 100, "totalPages": 1}
    assert user_view["data"][0]["user_email"] == USER_EMAIL


def test_audit_rejects_unknown_action(client, admin_headers):
    resp = client.get("/api/v1/csv/audit", params={"action": "RENAME"}, headers=admin_headers)

    assert resp.status_code == 400


def test_anonymous_style_caller_sees_no_audit_entries(app, client, admin_headers):
    _upload(client, admin_headers)
    app.dependency_overrides[get_current_active_user] = lambda: SimpleNamespace(
        id=None, email="ghost@shopfloor.com", role=ROLE_USER, is_active=True
    )

    resp = client.get("/api/v1/csv/audit")

    assert resp.status_code == 200
    assert resp.json()["data"] == []


def test_revalidate_requires_admin(client, admin_headers, user_headers):
    _upload(client, admin_headers)

    assert client.post("/api/v1/csv/exceptions/revalidate", headers=user_headers).status_code == 403

    resp = client.post("/api/v1/csv/exceptions/revalidate", headers=admin_headers)
    assert resp.json() == {"success": True, "checked": 1, "valid": 1, "invalid": 0}
    assert client.get("/api/v1/csv/exceptions/invalid/count", headers=admin_headers).json()["count"] == 0


def test_user_management(client, admin_headers, user_headers):
    assert client.get("/api/v1/users", headers=user_headers).status_code == 403
    assert client.get("/api/v1/users/me", headers=user_headers).json()["user"]["email"] == USER_EMAIL

    created = client.post("/api/v1/users", json={
        "email": "planner@shopfloor.com",
        "password": "Planner1!",
        "first_name": "Plan",
        "last_name": "Ner",
    }, headers=admin_headers)
    assert created.status_code == 201
    user_id = created.json()["user"]["id"]

    listing = client.get("/api/v1/users", params={"search": "planner"}, headers=admin_headers).json()
    assert listing["total"] == 1

    updated = client.put(f"/api/v1/users/{user_id}", json={"is_active": False}, headers=admin_headers)
    assert updated.json()["user"]["is_active"] is False

    duplicate = client.post("/api/v1/users", json={
        "email": "planner@shopfloor.com",
        "password": "Planner1!",
        "first_name": "Plan",
        "last_name": "Ner",
    }, headers=admin_headers)
    assert duplicate.status_code == 409

    assert client.delete(f"/api/v1/users/{user_id}", headers=admin_headers).json() == {"success": True}
    assert client.get(f"/api/v1/users/{user_id}", headers=admin_headers).status_code == 404
