import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status

from dbpeek.core import schemas
from dbpeek.core.errors import AuthFailure
from dbpeek.core.security import (
    destroy_session,
    issue_session,
    new_session,
    policy_dep,
    session_dep,
    settings_dep,
    verify_credentials,
    verify_csrf,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])

csrf_dep = Annotated[schemas.SessionState, Depends(verify_csrf)]


@router.get("/csrf", response_model=schemas.CsrfResponse)
async def issue_csrf(
    request: Request, response: Response, session: session_dep, settings: settings_dep
):
    """Hand out the CSRF token of the current (possibly new, anonymous) session."""
    issue_session(response, request, session, settings)
    return {"csrf_token": session.csrf}


@router.post("/login", response_model=schemas.CsrfResponse, status_code=status.HTTP_200_OK)
async def login(
    credentials: schemas.LoginRequest,
    request: Request,
    response: Response,
    session: csrf_dep,
    settings: settings_dep,
):
    if not verify_credentials(credentials.username, credentials.password, settings):
        logging.warning("Failed sign-in attempt")
        raise AuthFailure()

    # Regenerate: fresh session id and CSRF token once signed in
    signed_in = new_session(authenticated=True)
    issue_session(response, request, signed_in, settings)
    return {"csrf_token": signed_in.csrf}


@router.post("/logout")
async def logout(response: Response, session: csrf_dep):
    destroy_session(response)
    return {"Result": "Signed out"}


@router.get("/session", response_model=schemas.SessionResponse)
async def session_status(session: session_dep, settings: settings_dep, policy: policy_dep):
    return {
        "authenticated": session.authenticated,
        "mode": "read/write" if policy.allow_write else "read-only",
        "default_password_active": settings.default_password_active,
    }
