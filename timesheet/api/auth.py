import hmac
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Header, HTTPException
from pymongo.errors import DuplicateKeyError

from timesheet import config, telegram
from timesheet.database import COL_USERS, create_document, get_one, update_document, utcnow
from timesheet.schemas import AuthResponse, CreateUserRequest, LoginRequest, RegisterRequest, User
from timesheet.security import auth_response, hash_password, verify_password

logger = logging.getLogger("api.auth")

router = APIRouter(prefix="/api/auth", tags=["auth"])


def create_user(payload: RegisterRequest, is_admin: bool = False) -> Dict[str, Any]:
    """Insert a new user, refusing a taken username or employee ID."""
    existing = get_one(COL_USERS, {"$or": [{"username": payload.username}, {"employee_id": payload.employee_id}]})
    if existing:
        if existing.get("username") == payload.username:
            raise HTTPException(status_code=400, detail="Username already exists")
        raise HTTPException(status_code=400, detail="Employee ID already exists")

    user = User(
        username=payload.username,
        password=hash_password(payload.password),
        employee_id=payload.employee_id,
        position=payload.position,
        name=payload.name,
        is_admin=is_admin,
        hire_date=utcnow(),
        last_login=utcnow(),
    )
    try:
        return create_document(COL_USERS, user.model_dump())
    except DuplicateKeyError:
        # lost a race with a concurrent registration
        raise HTTPException(status_code=400, detail="Username or employee ID already exists")


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(payload: RegisterRequest, background: BackgroundTasks):
    user = create_user(payload)
    logger.info("Registered user %s (%s)", user["username"], user["position"])
    background.add_task(telegram.telegram_service.send_user_registration_notification, user)
    return auth_response(user)


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest):
    user = get_one(COL_USERS, {"username": payload.username})
    if not user or not verify_password(payload.password, user.get("password", "")):
        raise HTTPException(status_code=400, detail="Invalid credentials")
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="User is inactive")
    update_document(COL_USERS, {"_id": user["_id"]}, {"$set": {"last_login": utcnow()}})
    return auth_response(user)


@router.post("/create-admin", response_model=AuthResponse, status_code=201)
def create_admin(payload: CreateUserRequest, x_master_key: Optional[str] = Header(default=None)):
    if not config.MASTER_ADMIN_KEY:
        raise HTTPException(status_code=403, detail="Admin creation is disabled")
    if not x_master_key or not hmac.compare_digest(x_master_key, config.MASTER_ADMIN_KEY):
        raise HTTPException(status_code=403, detail="Invalid master key")
    user = create_user(payload, is_admin=True)
    logger.warning("Admin account %s created with the master key", user["username"])
    return auth_response(user)
