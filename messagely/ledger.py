import logging
from typing import Any, Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from messagely.errors import ForeignKeyError, NotFoundError
from messagely.metrics import record_message_created, record_message_read
from messagely.models import Message, User
from messagely.notifier import Dispatcher, Notifier, deliver_notification, dispatch_in_thread
from messagely.schemas import FullMessageView, MessageCreate, MessageReceipt, PublicProfile, ReadReceipt
from messagely.utils import utcnow
from messagely.validation import parse_model

logger = logging.getLogger(__name__)

# Largest value a 64-bit INTEGER primary key can hold
MAX_MESSAGE_ID = 2**63 - 1


class MessageLedger:
    """
    Message records: creation, read-marking and retrieval.

    read_at is set once: the first mark_read stamps it and every later
    call returns that same stamp.
    """

    def __init__(
        self,
        db: Session,
        notifier: Optional[Notifier] = None,
        dispatch: Optional[Dispatcher] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.dispatch = dispatch or dispatch_in_thread

    def create(self, data: Any) -> MessageReceipt:
        """
        Store a new message and hand it to the notifier.

        Args:
            data: mapping or MessageCreate with from_username, to_username, body

        Returns:
            MessageReceipt with the assigned id and sent_at

        Raises:
            ValidationError: a field is missing or empty
            ForeignKeyError: sender or recipient does not exist
        """
        new = parse_model(MessageCreate, data)
        logger.info(f"Creating message: from={new.from_username}, to={new.to_username}")

        message = Message(
            from_username=new.from_username,
            to_username=new.to_username,
            body=new.body,
            sent_at=utcnow(),
        )
        self.db.add(message)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(f"Message rejected, unknown participant: from={new.from_username}, to={new.to_username}")
            raise ForeignKeyError("Sender or recipient does not exist")

        receipt = MessageReceipt(
            id=message.id,
            from_username=message.from_username,
            to_username=message.to_username,
            body=message.body,
            sent_at=message.sent_at,
        )
        record_message_created()
        logger.info(f"Message created successfully: {receipt.id}")

        if self.notifier is not None:
            self.dispatch(deliver_notification, self.notifier, receipt)

        return receipt

    def mark_read(self, message_id: int) -> ReadReceipt:
        """
        Set read_at if it is not set yet, and return the stored stamp.

        The conditional UPDATE is the compare-and-set: of concurrent callers
        exactly one changes the row, and all of them read back its value.
        """
        self._check_id(message_id)
        now = utcnow()
        result = self.db.execute(
            update(Message)
            .where(Message.id == message_id, Message.read_at.is_(None))
            .values(read_at=case((Message.sent_at > now, Message.sent_at), else_=now))
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount:
            record_message_read()
            logger.info(f"Message marked read: {message_id}")

        row = self.db.execute(
            select(Message.id, Message.read_at).where(Message.id == message_id)
        ).one_or_none()
        if row is None:
            raise NotFoundError(f"No such message: {message_id}")

        return ReadReceipt(id=row.id, read_at=row.read_at)

    def get(self, message_id: int) -> FullMessageView:
        """Message with both participants' public profiles, in one query."""
        self._check_id(message_id)
        sender = aliased(User)
        recipient = aliased(User)
        row = self.db.execute(
            select(
                Message.id,
                Message.body,
                Message.sent_at,
                Message.read_at,
                sender.username.label("from_username"),
                sender.first_name.label("from_first_name"),
                sender.last_name.label("from_last_name"),
                sender.phone.label("from_phone"),
                recipient.username.label("to_username"),
                recipient.first_name.label("to_first_name"),
                recipient.last_name.label("to_last_name"),
                recipient.phone.label("to_phone"),
            )
            .join(sender, Message.from_username == sender.username)
            .join(recipient, Message.to_username == recipient.username)
            .where(Message.id == message_id)
        ).one_or_none()

        if row is None:
            raise NotFoundError(f"No such message: {message_id}")

        return FullMessageView(
            id=row.id,
            body=row.body,
            sent_at=row.sent_at,
            read_at=row.read_at,
            from_user=PublicProfile(
                username=row.from_username,
                first_name=row.from_first_name,
                last_name=row.from_last_name,
                phone=row.from_phone,
            ),
            to_user=PublicProfile(
                username=row.to_username,
                first_name=row.to_first_name,
                last_name=row.to_last_name,
                phone=row.to_phone,
            ),
        )

    @staticmethod
    def _check_id(message_id: int) -> None:
        # Ids outside the column's range cannot exist and cannot be bound
        if not 0 < message_id <= MAX_MESSAGE_ID:
            raise NotFoundError(f"No such message: {message_id}")
