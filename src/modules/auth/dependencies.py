from fastapi import Depends, HTTPException, Request, status
from modules.contracts.models.user import User
from modules.contracts.services.permission import Actor, can_perform_action
from modules.auth.controllers.auth_controller import get_current_user

def require_permission(action: str):
    def dependency(current_user: User = Depends(get_current_user)):
        if not can_perform_action(current_user.role, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"User with role '{current_user.role.value}' cannot perform '{action}'"
            )
        return current_user
    return dependency

def get_current_actor(request: Request, current_user: User = Depends(get_current_user)) -> Actor:
    """The authenticated user plus the request origin recorded on signatures and audit events"""
    return Actor.from_user(
        current_user,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
