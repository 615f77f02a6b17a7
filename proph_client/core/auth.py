from dataclasses import dataclass
from enum import Enum

from proph_client.core.errors import AuthorizationError


class Role(str, Enum):
    PLAYER = "player"
    COACH = "coach"


@dataclass(slots=True)
class Session:
    """An already-issued bearer token and the identity it belongs to."""

    token: str
    user_id: int
    role: Role
    session_id: str | None = None

    @property
    def storage_namespace(self) -> str:
        return self.session_id or f"user-{self.user_id}"

    def require_role(self, required: Role) -> None:
        if self.role != required:
            raise AuthorizationError(f"{required.value} role required, session is {self.role.value}")


def parse_role(raw: str | None) -> Role:
    if not raw:
        return Role.PLAYER
    try:
        return Role(raw.strip().lower())
    except ValueError:
        return Role.PLAYER
