from __future__ import annotations

from fastapi import Depends, HTTPException, status
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from starlette.requests import Request

from workdesk.context import get_correlation_id
from workdesk.core.config import get_settings
from workdesk.core.database import get_db
from workdesk.platform.security.context import Actor, Role
from workdesk.platform.security.policies import bind_session


ANONYMOUS_USER_ID = "anonymous"


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer ") :].strip()
    return ""


async def get_current_actor(request: Request, db: Session = Depends(get_db)) -> Actor:
    """Build the request actor from the bearer token.

    Tokens are issued elsewhere; this only verifies and decodes them. A
    request without a token is an anonymous guest, while a token that fails
    verification is rejected outright. The actor is bound to the request's
    DB session so stored overrides are read on the same connection.
    """

    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    token = _bearer_token(request)
    if not token:
        return bind_session(Actor(user_id=ANONYMOUS_USER_ID, role=Role.GUEST, correlation_id=correlation_id), db)

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid bearer token")

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="token has no subject")

    company_id = payload.get("company_id")
    actor = Actor(
        user_id=str(subject),
        role=Role.parse(payload.get("role")),
        company_id=str(company_id) if company_id else None,
        correlation_id=correlation_id,
        name=payload.get("name"),
    )
    request.state.user_id = actor.user_id
    return bind_session(actor, db)
