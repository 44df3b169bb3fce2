from dataclasses import dataclass
from typing import Optional

from modules.contracts.models.contract import Contract
from modules.contracts.models.signature import PartyRole
from modules.contracts.models.user import User, UserRole

ROLE_PERMISSIONS = {
    UserRole.USER: [],
    UserRole.ARTIST: ["create", "send", "sign", "reject", "cancel"],
    UserRole.VENUE: ["create", "send", "sign", "reject", "cancel"],
    UserRole.ADMIN: ["create", "send", "sign", "reject", "cancel", "approve", "execute"],
}

def can_perform_action(user_role: UserRole, action: str) -> bool:
    return action in ROLE_PERMISSIONS.get(user_role, [])


@dataclass(frozen=True)
class Actor:
    """Authenticated caller plus the request origin recorded on signatures and audit events."""
    user_id: int
    role: UserRole
    name: str
    email: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_user(cls, user: User, ip_address: Optional[str] = None,
                  user_agent: Optional[str] = None) -> "Actor":
        return cls(
            user_id=user.id,
            role=user.role,
            name=user.name,
            email=user.email,
            ip_address=ip_address,
            user_agent=user_agent,
        )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def party_role(actor: Actor, contract: Contract) -> Optional[PartyRole]:
    """Which side of the contract the actor is on, if any. Admins are never implicitly a party."""
    if actor.role == UserRole.ARTIST and contract.artist_id == actor.user_id:
        return PartyRole.ARTIST
    if actor.role == UserRole.VENUE and contract.venue_id == actor.user_id:
        return PartyRole.VENUE
    return None


def is_party_or_admin(actor: Actor, contract: Contract) -> bool:
    return actor.is_admin or party_role(actor, contract) is not None
