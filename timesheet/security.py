import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from passlib.context import CryptContext

from timesheet import config
from timesheet.database import COL_USERS, get_one

logger = logging.getLogger("auth")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except ValueError:
        return False


def token_claims(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "userId": str(user["_id"]),
        "isAdmin": bool(user.get("is_admin", False)),
        "position": user.get("position"),
        "username": user.get("username"),
        "employeeId": user.get("employee_id"),
    }


def create_access_token(user: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = token_claims(user)
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=config.ACCESS_TOKEN_EXPIRE_HOURS))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def auth_response(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "token": create_access_token(user),
        "position": user.get("position"),
        "is_admin": bool(user.get("is_admin", False)),
        "username": user.get("username"),
        "employee_id": user.get("employee_id"),
    }


def decode_token_dependency(authorization: Optional[str] = Header(default=None)) -> Dict[str, Any]:
    if not authorization:
        raise HTTPException(status_code=401, detail="Please authenticate")
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid Authorization header")
    try:
        return jwt.decode(parts[1], config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def get_current_user(payload: Dict[str, Any] = Depends(decode_token_dependency)) -> Dict[str, Any]:
    """Load the live user behind a token.

    The token is rejected when the account is gone or inactive, or when the
    claims it carries no longer match the stored record.
    """
    try:
        user_id = ObjectId(payload.get("userId"))
    except (InvalidId, TypeError):
        raise HTTPException(status_code=401, detail="Please authenticate")
    user = get_one(COL_USERS, {"_id": user_id})
    if not user or not user.get("is_active", True):
        raise HTTPException(status_code=401, detail="Please authenticate")
    live = token_claims(user)
    stale = [key for key in ("isAdmin", "position", "username", "employeeId") if payload.get(key) != live[key]]
    if stale:
        logger.warning("Rejected outdated token for %s (changed: %s)", user.get("username"), ", ".join(stale))
        raise HTTPException(status_code=401, detail="Session is outdated, please log in again")
    return user


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if not user.get("is_admin"):
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
