# shopfloor/services/user_service.py
import logging
from typing import Any, Mapping, Optional

from shopfloor.core.db import Database
from shopfloor.core.security import (
    get_password_hash, get_password_validation_message, validate_password
)
from shopfloor.models.user import User, ROLE_USER, USER_ROLES

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("email", "first_name", "last_name", "role", "is_active")


class UserServiceError(Exception):
    """Rejected user operation; status_code is the HTTP status it maps to"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class UserService:
    """Account management on top of ORM sessions"""

    def __init__(self, db: Database):
        self.db = db

    def get_user(self, user_id: int) -> Optional[User]:
        with self.db.session() as session:
            return session.get(User, user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self.db.session() as session:
            return session.query(User).filter(User.email == normalize_email(email)).first()

    def create_user(
            self,
            email: str,
            password: str,
            first_name: str,
            last_name: str,
            role: str = ROLE_USER,
            is_active: bool = True
    ) -> User:
        email = normalize_email(email)
        if not email:
            raise UserServiceError("Email is required")

        if role not in USER_ROLES:
            raise UserServiceError(f"Invalid role: {role}")

        # Validate password strength
        if not validate_password(password):
            logger.warning("Password validation failed in create_user")
            raise UserServiceError(get_password_validation_message())

        with self.db.session() as session:
            # Check if email already exists
            if session.query(User).filter(User.email == email).first():
                logger.warning(f"Attempted to create user with existing email: {email}")
                raise UserServiceError("User with this email already exists", status_code=409)

            user = User(
                email=email,
                first_name=first_name,
                last_name=last_name,
                hashed_password=get_password_hash(password),
                role=role,
                is_active=is_active,
            )
            session.add(user)
            session.commit()
            session.refresh(user)

        logger.info(f"Created new user: {email}")
        return user

    def update_user(self, user_id: int, changes: Mapping[str, Any]) -> User:
        with self.db.session() as session:
            user = session.get(User, user_id)
            if user is None:
                raise UserServiceError("User not found", status_code=404)

            updates = {key: value for key, value in changes.items()
                       if key in UPDATABLE_FIELDS and value is not None}

            if "role" in updates and updates["role"] not in USER_ROLES:
                raise UserServiceError(f"Invalid role: {updates['role']}")

            if "email" in updates:
                updates["email"] = normalize_email(updates["email"])
                taken = session.query(User).filter(
                    User.email == updates["email"], User.id != user_id
                ).first()
                if taken:
                    raise UserServiceError("User with this email already exists", status_code=409)

            if "password" in changes and changes["password"]:
                if not validate_password(changes["password"]):
                    raise UserServiceError(get_password_validation_message())
                user.hashed_password = get_password_hash(changes["password"])

            for key, value in updates.items():
                setattr(user, key, value)

            session.commit()
            session.refresh(user)

        logger.info(f"Updated user {user_id}: {sorted(updates)}")
        return user

    def delete_user(self, user_id: int, acting_user=None) -> None:
        """Remove an account; its audit entries stay with a null user reference"""
        if acting_user is not None and getattr(acting_user, "id", None) == user_id:
            raise UserServiceError("Cannot delete your own account")

        with self.db.session() as session:
            user = session.get(User, user_id)
            if user is None:
                raise UserServiceError("User not found", status_code=404)

            session.delete(user)
            session.commit()

        logger.info(f"Deleted user {user_id}")
