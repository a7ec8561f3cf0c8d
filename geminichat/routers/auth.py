import asyncio
import logging
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from geminichat.auth import decode_token
from geminichat.config import get_settings
from geminichat.core.errors import UpstreamFatalError
from geminichat.database import get_db
from geminichat.repositories import user_repository
from geminichat.services.retry import RetriesExhaustedError, RetryPolicy

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])
settings = get_settings()

# User row creation after login: 4 tries, 1s apart
USER_SYNC_RETRY = RetryPolicy(max_attempts=4, base_delay=1.0, multiplier=1.0, retry_on=(SQLAlchemyError,))


@router.get("/login")
async def auth0_login():
    """Redirect user to the Auth0 universal login page."""
    params = {
        "client_id": settings.auth0_client_id,
        "redirect_uri": settings.auth0_redirect_uri,
        "response_type": "code",
        "scope": "openid email profile",
    }
    if settings.auth0_audience:
        params["audience"] = settings.auth0_audience
    url = f"https://{settings.auth0_domain}/authorize?{urlencode(params)}"
    return RedirectResponse(url=url)


@router.get("/callback")
async def auth0_callback(
    code: str | None = None,
    error: str | None = None,
    db: Session = Depends(get_db),
):
    """Handle the Auth0 callback: exchange the code, make sure the user row exists, redirect with the token."""
    if error:
        raise HTTPException(status_code=400, detail=f"OAuth error: {error}")
    if not code:
        raise HTTPException(status_code=400, detail="Missing code")

    async with httpx.AsyncClient() as client:
        token_res = await client.post(
            f"https://{settings.auth0_domain}/oauth/token",
            data={
                "grant_type": "authorization_code",
                "code": code,
                "client_id": settings.auth0_client_id,
                "client_secret": settings.auth0_client_secret,
                "redirect_uri": settings.auth0_redirect_uri,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
    if token_res.status_code != 200:
        raise HTTPException(status_code=400, detail="Failed to exchange code for token")

    token_data = token_res.json()
    id_token = token_data.get("id_token")
    if not id_token:
        raise HTTPException(status_code=400, detail="No id token in response")

    principal = decode_token(id_token, audience=settings.auth0_client_id or None)
    if not principal:
        raise HTTPException(status_code=400, detail="Invalid id token")

    def _upsert():
        try:
            return user_repository.upsert_from_principal(db, principal)
        except SQLAlchemyError:
            db.rollback()
            raise

    async def _sync():
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, _upsert)

    try:
        await USER_SYNC_RETRY.run(_sync, label="user sync")
    except RetriesExhaustedError as e:
        logger.error("Could not create user %s after login: %s", principal.sub, e.last_error)
        raise UpstreamFatalError("Failed to create user account. Please try logging in again.") from e

    # With an API audience the frontend calls us with the access token; otherwise with the id token
    bearer = token_data.get("access_token") if settings.auth0_audience else id_token
    frontend_callback = f"{settings.frontend_url}/auth/callback?token={bearer}"
    return RedirectResponse(url=frontend_callback)
