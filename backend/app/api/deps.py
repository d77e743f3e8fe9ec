from __future__ import annotations

from collections.abc import Callable

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.services.actor import Actor
from app.services.errors import MessagingError


def get_current_actor(
    x_user_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> Actor:
    """Resolve the session layer's trusted ``X-User-Id`` header to an Actor."""
    try:
        user_id = int((x_user_id or "").strip())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthenticated.")
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthenticated.")
    return Actor.from_user(user)


def require_roles(*roles: str) -> Callable[..., Actor]:
    allowed = frozenset(roles)

    def _dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden.")
        return actor

    return _dependency


def http_error(exc: MessagingError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)
