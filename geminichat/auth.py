from functools import lru_cache

import httpx
from jose import JWTError, jwt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from geminichat.config import get_settings
from geminichat.core.errors import UnauthorizedError
from geminichat.database import get_db
from geminichat.models.user import User
from geminichat.repositories import user_repository
from geminichat.schemas.user import Principal

security = HTTPBearer(auto_error=False)


@lru_cache
def _get_jwks(domain: str) -> dict:
    """Auth0 signing keys, fetched once per process."""
    res = httpx.get(f"https://{domain}/.well-known/jwks.json", timeout=10.0)
    res.raise_for_status()
    return res.json()


def decode_token(token: str, audience: str | None = None) -> Principal | None:
    """Verify an identity-provider token. Returns None if invalid or expired."""
    settings = get_settings()
    algorithm = settings.auth_algorithm.upper()
    issuer = None
    if algorithm.startswith("RS"):
        if not settings.auth0_domain:
            return None
        try:
            key = _get_jwks(settings.auth0_domain)
        except httpx.HTTPError:
            return None
        issuer = f"https://{settings.auth0_domain}/"
    else:
        key = settings.auth_secret_key

    # id tokens carry the client id as audience; API access tokens carry the API audience
    audience = audience or settings.auth0_audience or settings.auth0_client_id or None
    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=[algorithm],
            audience=audience,
            issuer=issuer,
            options={"verify_aud": audience is not None},
        )
    except JWTError:
        return None

    sub = payload.get("sub")
    if not sub:
        return None
    return Principal(
        sub=sub,
        email=payload.get("email") or "",
        name=payload.get("name"),
        picture=payload.get("picture"),
    )


def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> Principal:
    if not credentials:
        raise UnauthorizedError("Not authenticated")

    principal = decode_token(credentials.credentials)
    if not principal:
        raise UnauthorizedError("Invalid or expired token")
    return principal


def get_current_user(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> User:
    """Database user for the session. Sync via POST /api/users/sync (or the login callback) first."""
    user = user_repository.get_by_auth0_id(db, principal.sub)
    if not user:
        raise UnauthorizedError("User not found in database")
    return user
