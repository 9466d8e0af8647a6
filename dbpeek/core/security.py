import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional

import jwt
from fastapi import Depends, HTTPException, Request, Response, status

from dbpeek.core.config import AccessPolicy, Settings, get_policy, get_settings
from dbpeek.core.errors import CsrfFailure
from dbpeek.core.schemas import SessionState

SESSION_COOKIE = "dbpeek_session"
CSRF_HEADER = "X-CSRF-Token"
ACCESS_TOKEN_HEADER = "X-Access-Token"

settings_dep = Annotated[Settings, Depends(get_settings)]
policy_dep = Annotated[AccessPolicy, Depends(get_policy)]


def _same(expected: str, given: Optional[str]) -> bool:
    # Constant time, also for non-ASCII input
    return secrets.compare_digest(expected.encode("utf-8"), (given or "").encode("utf-8"))


# New id and CSRF token every time, so login always regenerates the session
def new_session(authenticated: bool = False) -> SessionState:
    return SessionState(
        sid=secrets.token_hex(16),
        authenticated=authenticated,
        csrf=secrets.token_hex(32),
    )


def encode_session(session: SessionState, settings: Settings) -> str:
    expire_time = datetime.now(timezone.utc) + timedelta(
        minutes=settings.SESSION_EXPIRE_MINUTES
    )
    payload = {
        "sid": session.sid,
        "auth": session.authenticated,
        "csrf": session.csrf,
        "exp": expire_time,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_session(token: str, settings: Settings) -> Optional[SessionState]:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    # Expired or tampered cookies simply start a new session
    except jwt.PyJWTError:
        return None

    sid, csrf = payload.get("sid"), payload.get("csrf")
    if not sid or not csrf:
        return None
    return SessionState(sid=sid, authenticated=payload.get("auth") is True, csrf=csrf)


def issue_session(
    response: Response, request: Request, session: SessionState, settings: Settings
) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        encode_session(session, settings),
        max_age=settings.SESSION_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=request.url.scheme == "https",
    )


def destroy_session(response: Response) -> None:
    response.delete_cookie(SESSION_COOKIE)


def verify_credentials(username: str, password: str, settings: Settings) -> bool:
    # Both fields are always compared, a wrong user costs the same as a wrong password
    user_ok = _same(settings.APP_USER, username)
    pass_ok = _same(settings.APP_PASS, password)
    return user_ok and pass_ok


async def get_session(request: Request, settings: settings_dep) -> SessionState:
    token = request.cookies.get(SESSION_COOKIE)
    session = decode_session(token, settings) if token else None
    return session or new_session()


session_dep = Annotated[SessionState, Depends(get_session)]


async def require_login(session: session_dep) -> SessionState:
    if not session.authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"Location": "/auth/login"},
        )
    return session


async def verify_csrf(request: Request, session: session_dep) -> SessionState:
    if not _same(session.csrf, request.headers.get(CSRF_HEADER)):
        raise CsrfFailure()
    return session


# Runs ahead of every route, before any session or database work
async def enforce_access_policy(request: Request, policy: policy_dep) -> None:
    if policy.ip_allow_list:
        client = request.client.host if request.client else ""
        if client not in policy.ip_allow_list:
            logging.warning(f"Rejected request from {client or 'unknown client'}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Forbidden (IP not allowed)",
            )

    if policy.access_token:
        given = request.query_params.get("k") or request.headers.get(ACCESS_TOKEN_HEADER)
        if not _same(policy.access_token, given):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Forbidden (missing/invalid token)",
            )
