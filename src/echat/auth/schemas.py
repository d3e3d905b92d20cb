"""Request/response schemas for authentication endpoints."""

from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field, field_validator

from echat.users.schemas import UserResponse


class _EmailModel(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower().strip()


class SendCodeRequest(_EmailModel):
    """Request a register or reset code."""


class SendCodeResponse(BaseModel):
    message: str
    expires_in: int


class RegisterRequest(_EmailModel):
    """Create an account with a code previously sent to the address."""

    password: str = Field(..., min_length=1, max_length=128)
    code: str = Field(..., min_length=4, max_length=12)
    username: str | None = Field(None, min_length=1, max_length=64)
    full_name: str | None = Field(None, max_length=128)


class LoginRequest(_EmailModel):
    password: str = Field(..., min_length=1, max_length=128)


class ResetPasswordRequest(_EmailModel):
    """Verify a reset code and set the new password in one call."""

    code: str = Field(..., min_length=4, max_length=12)
    new_password: str = Field(..., min_length=1, max_length=128)


class MessageResponse(BaseModel):
    message: str


class TokenResponse(BaseModel):
    """Session token returned after register or login."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
