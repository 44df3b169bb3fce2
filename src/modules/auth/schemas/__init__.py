from .auth_schemas import (
    LoginRequest, TokenResponse, UserCreate, UserResponse,
    UserUpdate, UserListResponse
)

__all__ = [
    'LoginRequest', 'TokenResponse', 'UserCreate', 'UserResponse',
    'UserUpdate', 'UserListResponse'
]
