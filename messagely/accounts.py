import logging
from typing import Any, List

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from messagely.credentials import CredentialStore
from messagely.errors import ConflictError, NotFoundError
from messagely.models import Message, User
from messagely.schemas import (
    IncomingMessageView,
    OutgoingMessageView,
    PublicProfile,
    PublicUser,
    UserProfile,
    UserRegister,
    UserSummary,
)
from messagely.utils import utcnow
from messagely.validation import parse_model

logger = logging.getLogger(__name__)


def _counterparty(user: User) -> PublicProfile:
    return PublicProfile(
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
    )


class AccountDirectory:
    """
    User records: registration, credential checks, lookup and listing,
    plus each user's sent and received messages.
    """

    def __init__(self, db: Session, credentials: CredentialStore):
        self.db = db
        self.credentials = credentials

    def register(self, candidate: Any) -> PublicUser:
        """
        Register a new user.

        Args:
            candidate: mapping or UserRegister with username, password,
                first_name, last_name and phone

        Raises:
            ValidationError: a field is missing or blank
            ConflictError: the username is taken
        """
        data = parse_model(UserRegister, candidate)
        logger.info(f"Registering user: {data.username}")

        now = utcnow()
        user = User(
            username=data.username,
            password=self.credentials.hash(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
            join_at=now,
            last_login_at=now,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            # username primary key already exists
            self.db.rollback()
            logger.info(f"Duplicate username rejected: {data.username}")
            raise ConflictError(f"Username already taken: {data.username}")

        return PublicUser(
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            phone=user.phone,
            join_at=user.join_at,
            last_login_at=user.last_login_at,
        )

    def authenticate(self, username: str, password: str) -> bool:
        """Is username/password valid? Unknown users and bad passwords look the same."""
        stored = self.db.execute(
            select(User.password).where(User.username == username)
        ).scalar_one_or_none()

        if stored is None:
            self.credentials.dummy_verify()
            logger.info("Authentication failed")
            return False

        is_valid = self.credentials.verify(password, stored)
        logger.info(f"Authentication {'succeeded' if is_valid else 'failed'}")
        return is_valid

    def touch_login(self, username: str) -> None:
        """Update last_login_at. Unknown usernames are a no-op."""
        result = self.db.execute(
            update(User)
            .where(User.username == username)
            .values(last_login_at=utcnow())
        )
        self.db.commit()
        if result.rowcount == 0:
            logger.debug(f"touch_login ignored unknown user: {username}")

    def list(self) -> List[UserSummary]:
        """Basic info on all users, ordered by username."""
        rows = self.db.execute(
            select(User.username, User.first_name, User.last_name).order_by(User.username.asc())
        ).all()
        return [
            UserSummary(username=row.username, first_name=row.first_name, last_name=row.last_name)
            for row in rows
        ]

    def get(self, username: str) -> UserProfile:
        user = self.db.get(User, username, populate_existing=True)
        if user is None:
            raise NotFoundError(f"No such user: {username}")

        return UserProfile(
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            phone=user.phone,
            join_at=user.join_at,
            last_login_at=user.last_login_at,
        )

    def messages_from(self, username: str) -> List[OutgoingMessageView]:
        """Messages sent by this user, each with the recipient's public profile."""
        self._ensure_exists(username)
        recipient = aliased(User)
        rows = self.db.execute(
            select(Message, recipient)
            .join(recipient, Message.to_username == recipient.username)
            .where(Message.from_username == username)
            .order_by(Message.id.asc())
            .execution_options(populate_existing=True)
        ).all()

        return [
            OutgoingMessageView(
                id=message.id,
                to_user=_counterparty(to_user),
                body=message.body,
                sent_at=message.sent_at,
                read_at=message.read_at,
            )
            for message, to_user in rows
        ]

    def messages_to(self, username: str) -> List[IncomingMessageView]:
        """Messages received by this user, each with the sender's public profile."""
        self._ensure_exists(username)
        sender = aliased(User)
        rows = self.db.execute(
            select(Message, sender)
            .join(sender, Message.from_username == sender.username)
            .where(Message.to_username == username)
            .order_by(Message.id.asc())
            .execution_options(populate_existing=True)
        ).all()

        return [
            IncomingMessageView(
                id=message.id,
                from_user=_counterparty(from_user),
                body=message.body,
                sent_at=message.sent_at,
                read_at=message.read_at,
            )
            for message, from_user in rows
        ]

    def _ensure_exists(self, username: str) -> None:
        found = self.db.execute(
            select(User.username).where(User.username == username)
        ).scalar_one_or_none()
        if found is None:
            raise NotFoundError(f"No such user: {username}")
