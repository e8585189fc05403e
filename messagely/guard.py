"""
Authorization checks for message operations.

The acting username must come from an already verified token or session.
A missing identity is an authentication failure, reported separately from
(and before) any permission check.
"""

from typing import Optional

from messagely.errors import ForbiddenError, UnauthenticatedError
from messagely.schemas import FullMessageView


def can_view(acting_username: Optional[str], message: FullMessageView) -> bool:
    return acting_username in (message.from_user.username, message.to_user.username)


def can_mark_read(acting_username: Optional[str], message: FullMessageView) -> bool:
    # Only the recipient can acknowledge receipt
    return acting_username == message.to_user.username


def _require_identity(acting_username: Optional[str]) -> None:
    if not acting_username:
        raise UnauthenticatedError("Authentication required")


def ensure_can_view(acting_username: Optional[str], message: FullMessageView) -> None:
    _require_identity(acting_username)
    if not can_view(acting_username, message):
        raise ForbiddenError("Not allowed to view this message")


def ensure_can_mark_read(acting_username: Optional[str], message: FullMessageView) -> None:
    _require_identity(acting_username)
    if not can_mark_read(acting_username, message):
        raise ForbiddenError("Only the recipient can mark a message read")


def ensure_self(acting_username: Optional[str], username: str) -> None:
    """User profiles and mailboxes are visible to their owner only."""
    _require_identity(acting_username)
    if acting_username != username:
        raise ForbiddenError("Not allowed to view another user's data")
