"""Request dependencies: the verified caller and role checks."""
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from worksign.core.config import get_settings
from worksign.models.enums import Role
from worksign.services.directory import Actor
from worksign.services.errors import AuthenticationError, PermissionDeniedError

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_actor(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> Actor:
    """
    Decode the bearer credential issued by the identity service.

    Claims: sub (user or team login id), role, and team_id for team logins.
    """
    if credentials is None:
        raise AuthenticationError("Unauthorized")

    settings = get_settings()
    try:
        claims = jwt.decode(
            credentials.credentials,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
        actor = Actor(
            subject_id=str(claims["sub"]),
            role=Role(claims["role"]),
            team_id=claims.get("team_id"),
        )
    except (jwt.PyJWTError, KeyError, ValueError):
        raise AuthenticationError("Invalid token")
    return actor


def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        raise PermissionDeniedError("Only admins can perform this action")
    return actor
