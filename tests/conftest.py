from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from shopfloor.core.config import Settings
from shopfloor.core.db import Database, init_db
from shopfloor.core.security import create_access_token
from shopfloor.main import create_app
from shopfloor.services.audit_service import AuditService
from shopfloor.services.csv_service import CsvService
from shopfloor.services.user_service import UserService

HEADER = "Part Mark,Assembly Mark,Material,Thickness,Quantity,Length,Width,Height,Weight,Notes"

USER_EMAIL = "operator@shopfloor.com"
USER_PASSWORD = "Operator1!"


def write_csv(path: Path, *lines: str, header: str = HEADER) -> Path:
    path.write_text("\n".join((header,) + lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATA_DIR=tmp_path / "data",
        LOGS_DIR=tmp_path / "logs",
        UPLOAD_DIR=tmp_path / "uploads",
        SECRET_KEY="test-secret-key",
        LOG_LEVEL="warning",
    )


@pytest.fixture
def database(settings):
    db = Database(settings.SQLALCHEMY_DATABASE_URI).open()
    init_db(db, settings)
    yield db
    db.close()


@pytest.fixture
def admin_user(database, settings):
    return UserService(database).get_user_by_email(settings.ADMIN_EMAIL)


@pytest.fixture
def regular_user(database):
    return UserService(database).create_user(
        email=USER_EMAIL,
        password=USER_PASSWORD,
        first_name="Shop",
        last_name="Operator",
    )


@pytest.fixture
def audit_service(database):
    return AuditService(database)


@pytest.fixture
def csv_service(database, audit_service, settings):
    return CsvService(database, audit_service, settings.ERROR_REPORT_PATH)


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(client, app, settings):
    admin = UserService(app.state.database).get_user_by_email(settings.ADMIN_EMAIL)
    return {"Authorization": f"Bearer {create_access_token(admin.id, settings)}"}


@pytest.fixture
def user_headers(client, app, settings):
    user = UserService(app.state.database).create_user(
        email=USER_EMAIL,
        password=USER_PASSWORD,
        first_name="Shop",
        last_name="Operator",
    )
    return {"Authorization": f"Bearer {create_access_token(user.id, settings)}"}
