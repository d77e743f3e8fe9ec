from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from app.services.roles import normalize_role

if TYPE_CHECKING:
    from app.models.user import User


@dataclasses.dataclass(frozen=True)
class Actor:
    """The authenticated user a request runs as, with a canonical role."""

    id: int
    role: str
    name: str | None = None

    @classmethod
    def from_user(cls, user: "User") -> "Actor":
        return cls(
            id=user.id,
            role=normalize_role(user.role),
            name=user.name,
        )
