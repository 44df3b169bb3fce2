from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

import config
from database import get_db
from modules.auth.schemas.auth_schemas import (
    LoginRequest, TokenResponse, UserCreate, UserListResponse, UserResponse, UserUpdate
)
from modules.auth.services.auth_service import AuthService
from modules.auth.services.user_service import (
    EmailAlreadyRegistered, UserError, UserNotFound, UserService
)
from modules.contracts.models.user import User, UserRole

router = APIRouter(prefix="/auth", tags=["authentication"])
security = HTTPBearer()


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security), db: Session = Depends(get_db)):
    user = AuthService.get_current_user(db, credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def verify_admin(current_user: User = Depends(get_current_user)):
    if current_user.role != UserRole.ADMIN:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Only admins can manage accounts")
    return current_user


def _user_error(e: UserError) -> HTTPException:
    if isinstance(e, UserNotFound):
        return HTTPException(status.HTTP_404_NOT_FOUND, str(e))
    if isinstance(e, EmailAlreadyRegistered):
        return HTTPException(status.HTTP_409_CONFLICT, str(e))
    return HTTPException(status.HTTP_400_BAD_REQUEST, str(e))


@router.post("/login", response_model=TokenResponse)
def login(login_data: LoginRequest, db: Session = Depends(get_db)):
    user = AuthService.authenticate_user(db, login_data.email, login_data.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return TokenResponse(
        access_token=AuthService.token_for(user),
        expires_in=config.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user_id=user.id,
        user_name=user.name,
        user_role=user.role,
    )


@router.get("/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def register_user(data: UserCreate, db: Session = Depends(get_db), _admin: User = Depends(verify_admin)):
    """Creates an artist, venue or admin account."""
    try:
        return UserService.register(db, data.name, data.email, data.password, data.role)
    except UserError as e:
        raise _user_error(e) from e


@router.get("/users", response_model=UserListResponse)
def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    role: Optional[UserRole] = Query(None),
    is_active: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    _admin: User = Depends(verify_admin)
):
    users, total = UserService.list_users(db, skip, limit, role, is_active)
    return UserListResponse(users=users, total=total)


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(user_id: int, db: Session = Depends(get_db), _admin: User = Depends(verify_admin)):
    try:
        return UserService.get_user(db, user_id)
    except UserError as e:
        raise _user_error(e) from e


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    data: UserUpdate,
    db: Session = Depends(get_db),
    _admin: User = Depends(verify_admin)
):
    try:
        return UserService.update_user(db, user_id, data.model_dump(exclude_unset=True))
    except UserError as e:
        raise _user_error(e) from e


@router.delete("/users/{user_id}", response_model=UserResponse)
def deactivate_user(user_id: int, db: Session = Depends(get_db), admin: User = Depends(verify_admin)):
    """Signatures and audit events keep pointing at the account, so it is only deactivated."""
    try:
        return UserService.deactivate_user(db, user_id, admin)
    except UserError as e:
        raise _user_error(e) from e
