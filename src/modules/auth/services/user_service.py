from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from modules.auth.services.auth_service import AuthService
from modules.contracts.models.user import User, UserRole


class UserError(Exception):
    pass


class UserNotFound(UserError):
    pass


class EmailAlreadyRegistered(UserError):
    pass


class UserService:
    """Account management for admins. Accounts are deactivated, never deleted."""

    @staticmethod
    def register(db: Session, name: str, email: str, password: str, role: UserRole) -> User:
        if db.query(User).filter(User.email == email).first():
            raise EmailAlreadyRegistered(f"{email} is already registered")

        user = User(
            name=name,
            email=email,
            password_hash=AuthService.get_password_hash(password),
            role=role,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def list_users(db: Session, skip: int = 0, limit: int = 100, role: Optional[UserRole] = None,
                   is_active: Optional[bool] = None) -> Tuple[List[User], int]:
        query = db.query(User)
        if role is not None:
            query = query.filter(User.role == role)
        if is_active is not None:
            query = query.filter(User.is_active == is_active)
        return query.order_by(User.id).offset(skip).limit(limit).all(), query.count()

    @staticmethod
    def get_user(db: Session, user_id: int) -> User:
        user = db.get(User, user_id)
        if not user:
            raise UserNotFound(f"User {user_id} not found")
        return user

    @staticmethod
    def update_user(db: Session, user_id: int, changes: dict) -> User:
        user = UserService.get_user(db, user_id)

        email = changes.get("email")
        if email and email != user.email:
            if db.query(User).filter(User.email == email).first():
                raise EmailAlreadyRegistered(f"{email} is already registered")

        if "password" in changes:
            changes["password_hash"] = AuthService.get_password_hash(changes.pop("password"))
        for field, value in changes.items():
            setattr(user, field, value)

        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def deactivate_user(db: Session, user_id: int, acting_user: User) -> User:
        user = UserService.get_user(db, user_id)
        if user.id == acting_user.id:
            raise UserError("You cannot deactivate your own account")
        user.is_active = False
        db.commit()
        return user
