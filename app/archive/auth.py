from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

import jwt
from flask import current_app, g, request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.archive.db import db_session
from app.archive.errors import AuthenticationFailure
from app.archive.models import Profile
from app.archive.rbac import LOWEST_PRIVILEGE_ROLE

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str


class IdentityProvider:
    def verify(self, token: str) -> str | None:
        """Return the verified user id for `token`, or None."""
        raise NotImplementedError


@dataclass(frozen=True)
class JwtIdentityProvider(IdentityProvider):
    """
    Verifies HS256 access tokens minted by the external identity service.
    The user id is the `sub` claim.
    """

    secret: str
    audience: str = "authenticated"
    leeway_seconds: int = 0

    def verify(self, token: str) -> str | None:
        if not self.secret:
            logger.error("Identity provider misconfigured: IDENTITY_JWT_SECRET is empty")
            return None
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=["HS256"],
                audience=self.audience or None,
                leeway=self.leeway_seconds,
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            logger.info("Access token expired")
            return None
        except jwt.PyJWTError as e:
            logger.info("Access token rejected: %s", type(e).__name__)
            return None
        sub = claims.get("sub")
        return str(sub) if sub else None


def lookup_role(s: Session, user_id: str) -> str:
    """
    Role for `user_id`. A missing profile or a failed lookup yields the
    lowest-privilege role, never an elevated one.
    """
    try:
        profile = s.get(Profile, user_id)
    except SQLAlchemyError as e:
        s.rollback()
        logger.warning("Profile lookup failed for user_id=%s; using %s: %s", user_id, LOWEST_PRIVILEGE_ROLE, e)
        return LOWEST_PRIVILEGE_ROLE
    role = (profile.role if profile else "") or ""
    return role.strip().upper() or LOWEST_PRIVILEGE_ROLE


def resolve_principal(authorization: str | None, identity: IdentityProvider, s: Session) -> Principal | None:
    """
    Turn an `Authorization: Bearer <token>` header into a Principal.
    Re-verifies with the identity provider on every call; nothing is cached.
    """
    if not authorization or not authorization.lower().startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        return None
    user_id = identity.verify(token)
    if not user_id:
        return None
    return Principal(user_id=user_id, role=lookup_role(s, user_id))


def load_current_principal() -> None:
    """
    Loads g.principal from the bearer header.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.principal = None
    header = request.headers.get("Authorization")
    if not header:
        return
    from app.archive.extensions import collaborators

    g.principal = resolve_principal(header, collaborators().identity, db_session())
    if g.principal is None:
        current_app.logger.info("Bearer credential rejected (request_id=%s)", g.request_id)


def current_principal() -> Principal:
    p: Principal | None = getattr(g, "principal", None)
    if p is None:
        raise AuthenticationFailure()
    return p


def require_principal(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        current_principal()
        return fn(*args, **kwargs)

    return wrapped
