import logging
from datetime import timedelta
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

import config
from database import utcnow
from modules.contracts.models.user import User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthService:
    """
    Password checks and access tokens. A token names the user by email
    (``sub``) and carries the role it was issued for; a token whose role no
    longer matches the account is refused.
    """

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        return pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def get_password_hash(password: str) -> str:
        return pwd_context.hash(password)

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
        user = db.query(User).filter(User.email == email).first()
        if not user or not user.is_active:
            logger.warning("Login refused for %s", email)
            return None
        if not AuthService.verify_password(password, user.password_hash):
            logger.warning("Login refused for %s", email)
            return None
        return user

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        expire = utcnow() + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)

    @staticmethod
    def token_for(user: User, expires_delta: Optional[timedelta] = None) -> str:
        return AuthService.create_access_token(
            {"sub": user.email, "role": user.role.value}, expires_delta
        )

    @staticmethod
    def decode_token(token: str) -> Optional[dict]:
        try:
            payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        except JWTError:
            return None
        if not payload.get("sub"):
            return None
        return payload

    @staticmethod
    def get_current_user(db: Session, token: str) -> Optional[User]:
        payload = AuthService.decode_token(token)
        if payload is None:
            return None
        user = db.query(User).filter(User.email == payload["sub"]).first()
        if user is None or not user.is_active:
            return None
        role = payload.get("role")
        if role is not None and role != user.role.value:
            logger.info("Token for %s was issued for role %s, account is now %s",
                        user.email, role, user.role.value)
            return None
        return user
