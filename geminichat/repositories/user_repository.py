"""
User persistence keyed by the identity provider's external id (auth0_id).
Creation is idempotent: a concurrent insert that loses the unique race re-reads the winner.
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from geminichat.models.user import User
from geminichat.schemas.user import Principal

logger = logging.getLogger(__name__)


def get_by_auth0_id(db: Session, auth0_id: str) -> User | None:
    return db.query(User).filter(User.auth0_id == auth0_id).first()


def _insert(db: Session, principal: Principal) -> User:
    user = User(
        auth0_id=principal.sub,
        email=principal.email,
        name=principal.name,
        picture_url=principal.picture,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_by_auth0_id(db, principal.sub)
        if existing is None:
            raise
        return existing
    db.refresh(user)
    logger.info("Created user %s for external id %s", user.id, principal.sub)
    return user


def get_or_create(db: Session, principal: Principal) -> User:
    """Resolve the user for a session, creating the row if the store lost it. Never updates."""
    user = get_by_auth0_id(db, principal.sub)
    if user is not None:
        return user
    logger.warning("User %s missing from store; creating inline", principal.sub)
    return _insert(db, principal)


def upsert_from_principal(db: Session, principal: Principal) -> User:
    """Create or refresh the user's profile from the identity provider's claims."""
    user = get_by_auth0_id(db, principal.sub)
    if user is None:
        user = _insert(db, principal)
    if principal.email:
        user.email = principal.email
    if principal.name:
        user.name = principal.name
    if principal.picture:
        user.picture_url = principal.picture
    db.commit()
    db.refresh(user)
    return user


def update_profile(
    db: Session,
    user: User,
    *,
    name: str | None = None,
    picture_url: str | None = None,
) -> User:
    if name is not None:
        user.name = name
    if picture_url is not None:
        user.picture_url = picture_url
    db.commit()
    db.refresh(user)
    return user
