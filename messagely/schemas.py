"""
Pydantic schemas for request/response validation.

This module contains:
- Input models validated by the core before anything is persisted
- View models the core builds field-by-field from query rows
- Response envelopes for the HTTP API
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# Input Models
# =============================================================================

class UserRegister(BaseModel):
    """
    Candidate account for registration.

    All fields are required and must be non-blank. The phone number is stored
    as given; its format is the caller's concern.
    """
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: str = Field(..., min_length=1, max_length=32)

    @field_validator("username", "first_name", "last_name", "phone")
    @classmethod
    def not_blank(cls, v: str, info) -> str:
        if not v.strip():
            raise ValueError(f"{info.field_name} must not be blank")
        return v


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class MessageCreate(BaseModel):
    """New message. from_username always comes from the authenticated session."""
    from_username: str = Field(..., min_length=1)
    to_username: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)


class MessageSend(BaseModel):
    """Body of POST /messages; the sender is taken from the token."""
    to_username: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)


# =============================================================================
# View Models
# =============================================================================

class UserSummary(BaseModel):
    username: str
    first_name: str
    last_name: str


class PublicProfile(UserSummary):
    """A user as seen from the other side of a message."""
    phone: str


class PublicUser(PublicProfile):
    """Registration result: everything but the password hash."""
    join_at: datetime
    last_login_at: Optional[datetime] = None


class UserProfile(PublicUser):
    pass


class MessageReceipt(BaseModel):
    id: int
    from_username: str
    to_username: str
    body: str
    sent_at: datetime


class ReadReceipt(BaseModel):
    id: int
    read_at: datetime


class FullMessageView(BaseModel):
    id: int
    body: str
    sent_at: datetime
    read_at: Optional[datetime] = None
    from_user: PublicProfile
    to_user: PublicProfile


class OutgoingMessageView(BaseModel):
    id: int
    to_user: PublicProfile
    body: str
    sent_at: datetime
    read_at: Optional[datetime] = None


class IncomingMessageView(BaseModel):
    id: int
    from_user: PublicProfile
    body: str
    sent_at: datetime
    read_at: Optional[datetime] = None


# =============================================================================
# Response Envelopes
# =============================================================================

class TokenResponse(BaseModel):
    token: str


class UserListResponse(BaseModel):
    users: list[UserSummary] = Field(default_factory=list)


class UserResponse(BaseModel):
    user: UserProfile


class OutgoingMessagesResponse(BaseModel):
    messages: list[OutgoingMessageView] = Field(default_factory=list)


class IncomingMessagesResponse(BaseModel):
    messages: list[IncomingMessageView] = Field(default_factory=list)


class MessageResponse(BaseModel):
    message: FullMessageView


class MessageReceiptResponse(BaseModel):
    message: MessageReceipt


class ReadReceiptResponse(BaseModel):
    message: ReadReceipt


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
