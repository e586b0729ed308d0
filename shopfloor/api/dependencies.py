# shopfloor/api/dependencies.py
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer

from shopfloor.core.config import Settings
from shopfloor.core.db import Database
from shopfloor.core.security import extract_token_from_request, verify_token
from shopfloor.models.user import User
from shopfloor.services.audit_service import AuditService
from shopfloor.services.csv_service import CsvService
from shopfloor.services.exception_service import ExceptionService
from shopfloor.services.query_service import QueryService
from shopfloor.services.user_service import UserService

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


def get_settings(request: Request) -> Settings:
    """Settings the running app was created with"""
    return request.app.state.settings


def get_database(request: Request) -> Database:
    database = request.app.state.database
    if database is None or not database.is_open:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database is not available",
        )
    return database


def get_audit_service(db: Database = Depends(get_database)) -> AuditService:
    return AuditService(db)


def get_csv_service(
        db: Database = Depends(get_database),
        audit: AuditService = Depends(get_audit_service),
        settings: Settings = Depends(get_settings)
) -> CsvService:
    return CsvService(db, audit, settings.ERROR_REPORT_PATH)


def get_query_service(db: Database = Depends(get_database)) -> QueryService:
    return QueryService(db)


def get_exception_service(db: Database = Depends(get_database)) -> ExceptionService:
    return ExceptionService(db)


def get_user_service(db: Database = Depends(get_database)) -> UserService:
    return UserService(db)


def get_token_from_request(
        request: Request,
        token: Optional[str] = Depends(oauth2_scheme)
) -> str:
    """Extract token from request in various formats"""
    # If token from OAuth2 scheme is None, try to get from cookie or header
    if not token:
        token = extract_token_from_request(request)

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return token


def get_current_user(
        token: str = Depends(get_token_from_request),
        settings: Settings = Depends(get_settings),
        users: UserService = Depends(get_user_service)
) -> User:
    """Get current user from token"""
    payload = verify_token(token, settings)
    subject = payload.get("sub")

    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        logger.warning(f"Token carries an invalid subject: {subject}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = users.get_user(user_id)

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


def get_current_active_user(
        current_user: User = Depends(get_current_user),
) -> User:
    """Check if user is active"""
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )

    return current_user


def get_current_admin_user(
        current_user: User = Depends(get_current_active_user),
) -> User:
    """Check if user is an admin"""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )

    return current_user
