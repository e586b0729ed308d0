# shopfloor/core/security.py
import logging
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Union, Any, Dict

from fastapi import Request, HTTPException, status
from jose import jwt, JWTError
from passlib.context import CryptContext

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=12
)

# Define password policy regex
PASSWORD_MIN_LENGTH = 8
PASSWORD_PATTERN = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{" + str(PASSWORD_MIN_LENGTH) + ",}$")


def validate_password(password: str) -> bool:
    """
    Validate a password against security policy:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    return bool(PASSWORD_PATTERN.match(password or ""))


def get_password_validation_message() -> str:
    """Return a human-readable password policy message"""
    return (
        f"Password must be at least {PASSWORD_MIN_LENGTH} characters long and contain "
        "at least one uppercase letter, one lowercase letter, one digit, and one special character."
    )


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate password hash"""
    return pwd_context.hash(password)


def create_access_token(
        subject: Union[str, Any],
        settings,
        expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token for a user id"""
    if not settings.SECRET_KEY:
        logger.error("SECRET_KEY is not configured properly!")
        raise ValueError("Missing SECRET_KEY")

    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode = {
        "exp": expire,
        "iat": now,
        "sub": str(subject),
        "jti": secrets.token_urlsafe(16),  # Unique token ID
    }

    logger.debug(f"Creating JWT token for subject: {subject}")
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str, settings) -> Dict:
    """
    Verify JWT token and return payload
    """
    if not token:
        logger.error("Token is empty or None")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Normalize token (remove Bearer prefix if present)
    if token.startswith("Bearer "):
        token = token.replace("Bearer ", "")

    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_signature": True}
        )
        logger.debug(f"Token verified successfully for subject: {payload.get('sub')}")
        return payload

    except jwt.ExpiredSignatureError:
        logger.warning("Token has expired")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )

    except JWTError as e:
        logger.warning(f"JWT error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def extract_token_from_request(request: Request) -> Optional[str]:
    """Extract JWT token from either the authorization header or a cookie"""
    token = None
    source = "header"

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.replace("Bearer ", "")

    if not token:
        token = request.cookies.get("access_token")
        source = "cookie"

    # Normalize token (strip Bearer prefix if present)
    if token and token.startswith("Bearer "):
        token = token.replace("Bearer ", "")

    if token:
        logger.debug(f"Token extracted from {source}, length: {len(token)}")
    else:
        logger.debug("No token found in request")

    return token
