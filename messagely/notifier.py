"""
Best-effort notifications about newly created messages.

A notifier never affects message creation: delivery runs after the message
is committed, and any failure is logged and counted, then dropped.
"""

import logging
import threading
from typing import Callable, Optional

import requests
from sqlalchemy.orm import Session, sessionmaker

from messagely.metrics import record_notification_outcome
from messagely.models import User
from messagely.schemas import MessageReceipt

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

# dispatch(func, *args) schedules func(*args) without waiting for it
Dispatcher = Callable[..., None]


class Notifier:
    """Interface: receives every created message."""

    def notify(self, message: MessageReceipt) -> None:
        raise NotImplementedError


class LogNotifier(Notifier):
    """Writes a log line per message. Used when SMS is not configured."""

    def notify(self, message: MessageReceipt) -> None:
        logger.info(
            "Message notification",
            extra={
                "message_id": message.id,
                "from_username": message.from_username,
                "to_username": message.to_username,
            },
        )


class SMSNotifier(Notifier):
    """
    Texts the recipient through the Twilio Messages REST API.

    The recipient's phone number is looked up in a session of its own, since
    delivery runs after the request that created the message has finished.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout: float = 10.0,
        http: Optional[requests.Session] = None,
    ):
        self.session_factory = session_factory
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout
        self.http = http or requests.Session()

    def _recipient_phone(self, username: str) -> Optional[str]:
        db: Session = self.session_factory()
        try:
            user = db.get(User, username)
            return user.phone if user is not None else None
        finally:
            db.close()

    def notify(self, message: MessageReceipt) -> None:
        phone = self._recipient_phone(message.to_username)
        if not phone:
            logger.warning(f"No phone number for {message.to_username}, skipping SMS")
            return

        response = self.http.post(
            TWILIO_API_URL.format(sid=self.account_sid),
            data={
                "To": phone,
                "From": self.from_number,
                "Body": f"{message.to_username}, you received a message.ly message from {message.from_username}",
            },
            auth=(self.account_sid, self.auth_token),
            timeout=self.timeout,
        )
        response.raise_for_status()
        # The SMS is already accepted; an unreadable body only loses the sid
        try:
            sid = response.json().get("sid")
        except (ValueError, AttributeError):
            sid = None
        logger.info(f"SMS sent for message {message.id}", extra={"sid": sid})


def deliver_notification(notifier: Notifier, message: MessageReceipt) -> None:
    """Run one notification. Never raises."""
    try:
        notifier.notify(message)
    except Exception as e:
        record_notification_outcome("failed")
        logger.error(f"Notification failed for message {message.id}: {e}")
        return
    record_notification_outcome("sent")


def dispatch_in_thread(func: Callable, *args) -> None:
    """Default dispatcher: fire-and-forget on a daemon thread."""
    thread = threading.Thread(target=func, args=args, name="notifier", daemon=True)
    thread.start()
