from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from geminichat.auth import get_current_principal, get_current_user
from geminichat.database import get_db
from geminichat.models.user import User
from geminichat.repositories import user_repository
from geminichat.schemas.user import Principal, UserResponse, UserUpdate

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
def get_me(user: User = Depends(get_current_user)):
    return user


@router.post("/sync", response_model=UserResponse)
def sync_me(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Create or refresh the current user's row from the identity provider's claims."""
    return user_repository.upsert_from_principal(db, principal)


@router.patch("/me", response_model=UserResponse)
def update_me(
    body: UserUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return user_repository.update_profile(db, user, name=body.name, picture_url=body.picture_url)
