"""User-related Pydantic schemas."""

from pydantic import BaseModel, Field


class UserOut(BaseModel):
    """Roster entry."""

    nickname: str
    createdAt: str


class LoginRequest(BaseModel):
    """Nickname/password login submission."""

    nickname: str | None = Field(None, description="Nickname; created on first login")
    password: str | None = Field(None, description="Shared login password")


class SessionResponse(BaseModel):
    """Current user together with the full roster."""

    user: UserOut
    users: list[UserOut]


class LoginResponse(SessionResponse):
    """Response returned after successful login."""

    token: str = Field(..., description="Bearer token for subsequent requests")
