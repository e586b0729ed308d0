# shopfloor/api/v1/endpoints/users.py

import logging
from typing import Optional

import orjson
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from shopfloor.api.dependencies import (
    get_current_active_user, get_current_admin_user, get_query_service,
    get_settings, get_user_service
)
from shopfloor.core.config import Settings
from shopfloor.models.user import User
from shopfloor.schemas import UserCreate, UserUpdate
from shopfloor.services.query_service import QueryService
from shopfloor.services.user_service import UserService, UserServiceError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


def user_response(user: User, status_code: int = 200) -> Response:
    return Response(
        content=orjson.dumps({"success": True, "user": user.to_dict()}),
        status_code=status_code,
        media_type="application/json"
    )


def http_error(error: UserServiceError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error.message)


@router.get("/me")
def read_current_user(current_user: User = Depends(get_current_active_user)):
    """Profile of the authenticated caller"""
    return user_response(current_user)


@router.get("")
def list_users(
        search: Optional[str] = None,
        page: int = Query(1, ge=1),
        limit: Optional[int] = Query(None, ge=1),
        settings: Settings = Depends(get_settings),
        query_service: QueryService = Depends(get_query_service),
        current_user: User = Depends(get_current_admin_user)
):
    limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
    result = query_service.list_users(search=search, page=page, limit=limit)
    return Response(content=orjson.dumps(result), media_type="application/json")


@router.post("")
def create_user(
        payload: UserCreate,
        users: UserService = Depends(get_user_service),
        current_user: User = Depends(get_current_admin_user)
):
    try:
        user = users.create_user(
            email=payload.email,
            password=payload.password,
            first_name=payload.first_name,
            last_name=payload.last_name,
            role=payload.role,
            is_active=payload.is_active,
        )
    except UserServiceError as e:
        raise http_error(e)

    logger.info(f"User {current_user.email} created user {user.email}")
    return user_response(user, status_code=status.HTTP_201_CREATED)


@router.get("/{user_id}")
def read_user(
        user_id: int,
        users: UserService = Depends(get_user_service),
        current_user: User = Depends(get_current_admin_user)
):
    user = users.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user_response(user)


@router.put("/{user_id}")
def update_user(
        user_id: int,
        payload: UserUpdate,
        users: UserService = Depends(get_user_service),
        current_user: User = Depends(get_current_admin_user)
):
    try:
        user = users.update_user(user_id, payload.model_dump(exclude_unset=True))
    except UserServiceError as e:
        raise http_error(e)

    return user_response(user)


@router.delete("/{user_id}")
def delete_user(
        user_id: int,
        users: UserService = Depends(get_user_service),
        current_user: User = Depends(get_current_admin_user)
):
    """Delete an account; audit entries it authored are kept without a user"""
    try:
        users.delete_user(user_id, acting_user=current_user)
    except UserServiceError as e:
        raise http_error(e)

    logger.info(f"User {current_user.email} deleted user {user_id}")
    return {"success": True}
