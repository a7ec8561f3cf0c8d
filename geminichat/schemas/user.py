from datetime import datetime
from pydantic import BaseModel, Field


class Principal(BaseModel):
    """Verified identity-provider session. Trusted verbatim for data scoping."""
    sub: str  # external (Auth0) user id
    email: str = ""
    name: str | None = None
    picture: str | None = None


class UserResponse(BaseModel):
    id: str
    auth0_id: str
    email: str
    name: str | None
    picture_url: str | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class UserUpdate(BaseModel):
    """Profile fields the user may change (all optional)."""
    name: str | None = Field(None, max_length=255)
    picture_url: str | None = Field(None, max_length=1024)
