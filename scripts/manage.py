#!/usr/bin/env python3
"""
Command line administration for the shopfloor ingest backend:
database initialization, account provisioning, token issuing, offline
CSV import and validation re-checks.
"""
import argparse
import logging
import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shopfloor.core.config import get_settings  # noqa: E402
from shopfloor.core.db import Database, init_db  # noqa: E402
from shopfloor.core.security import create_access_token  # noqa: E402
from shopfloor.models.user import USER_ROLES, ROLE_USER  # noqa: E402
from shopfloor.services.audit_service import AuditService  # noqa: E402
from shopfloor.services.csv_service import CsvService  # noqa: E402
from shopfloor.services.exception_service import ExceptionService  # noqa: E402
from shopfloor.services.user_service import UserService, UserServiceError  # noqa: E402

# Set up logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def open_database(settings) -> Database:
    database = Database(settings.SQLALCHEMY_DATABASE_URI, echo=settings.DB_ECHO).open()
    init_db(database, settings)
    return database


def create_user(database, settings, args) -> int:
    try:
        user = UserService(database).create_user(
            email=args.email,
            password=args.password,
            first_name=args.first_name,
            last_name=args.last_name,
            role=args.role,
        )
    except UserServiceError as e:
        logger.error(f"Could not create user: {e.message}")
        return 1

    print(f"Created user {user.id} ({user.email}, {user.role})")
    return 0


def issue_token(database, settings, args) -> int:
    user = UserService(database).get_user_by_email(args.email)
    if user is None:
        logger.error(f"No user with email {args.email}")
        return 1

    print(create_access_token(user.id, settings))
    return 0


def import_csv(database, settings, args) -> int:
    service = CsvService(database, AuditService(database), settings.ERROR_REPORT_PATH)
    result = service.process_file(args.csv_file, source_filename=os.path.basename(args.csv_file))
    print(f"Valid rows: {result.valid_rows}, invalid rows: {result.invalid_rows}")
    if result.has_error_file:
        print(f"Error report: {settings.ERROR_REPORT_PATH}")
    return 0 if result.success else 1


def revalidate(database, settings, args) -> int:
    summary = ExceptionService(database).revalidate_all()
    print(f"Checked {summary['checked']} rows: {summary['valid']} valid, {summary['invalid']} invalid")
    return 0


def main():
    """Main entry point for the management commands"""
    parser = argparse.ArgumentParser(description="Manage the shopfloor ingest backend")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("init", help="Create tables and the default admin account")

    user_parser = subparsers.add_parser("create-user", help="Create a user account")
    user_parser.add_argument("email")
    user_parser.add_argument("password")
    user_parser.add_argument("--first-name", default="")
    user_parser.add_argument("--last-name", default="")
    user_parser.add_argument("--role", choices=USER_ROLES, default=ROLE_USER)

    token_parser = subparsers.add_parser("token", help="Print an access token for a user")
    token_parser.add_argument("email")

    import_parser = subparsers.add_parser("import", help="Ingest a CSV file without the HTTP API")
    import_parser.add_argument("csv_file", help="Path to the CSV file")

    subparsers.add_parser("revalidate", help="Re-check required fields on every stored row")

    args = parser.parse_args()

    commands = {
        "create-user": create_user,
        "token": issue_token,
        "import": import_csv,
        "revalidate": revalidate,
    }
    if args.command not in commands and args.command != "init":
        parser.print_help()
        sys.exit(1)

    settings = get_settings()
    database = open_database(settings)
    try:
        exit_code = 0 if args.command == "init" else commands[args.command](database, settings, args)
    finally:
        database.close()
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
