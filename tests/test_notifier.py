"""
Tests for notifiers and failure-tolerant delivery.
"""

import logging

import pytest
import requests

from conftest import FailingNotifier, RecordingNotifier, make_user
from messagely.notifier import TWILIO_API_URL, LogNotifier, SMSNotifier, deliver_notification
from messagely.schemas import MessageReceipt
from messagely.utils import utcnow


@pytest.fixture
def receipt() -> MessageReceipt:
    return MessageReceipt(id=7, from_username="alice", to_username="bob", body="hi", sent_at=utcnow())


class FakeResponse:
    def __init__(self, status_code: int, payload: dict = None):
        self.status_code = status_code
        self.payload = payload or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        return self.payload


class HTMLResponse(FakeResponse):
    """A 2xx whose body is not JSON, as some proxies return."""

    def json(self):
        raise requests.JSONDecodeError("Expecting value", "<html>", 0)


class FakeHTTP:
    """Stands in for requests.Session; records every POST."""

    def __init__(self, response: FakeResponse):
        self.response = response
        self.posts = []

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        return self.response


def sms_notifier(database, http) -> SMSNotifier:
    return SMSNotifier(
        session_factory=database.SessionLocal,
        account_sid="AC123",
        auth_token="token",
        from_number="+15559990000",
        http=http,
    )


class TestDeliverNotification:

    def test_delivers(self, receipt):
        notifier = RecordingNotifier()
        deliver_notification(notifier, receipt)
        assert notifier.received == [receipt]

    def test_failure_is_logged_not_raised(self, receipt, caplog):
        notifier = FailingNotifier()
        with caplog.at_level(logging.ERROR, logger="messagely.notifier"):
            deliver_notification(notifier, receipt)

        assert notifier.calls == 1
        assert "Notification failed for message 7" in caplog.text

    def test_log_notifier(self, receipt, caplog):
        with caplog.at_level(logging.INFO, logger="messagely.notifier"):
            LogNotifier().notify(receipt)
        assert "Message notification" in caplog.text


class TestSMSNotifier:

    def test_posts_to_twilio(self, database, directory, receipt):
        directory.register(make_user("bob", phone="+15550000002"))
        http = FakeHTTP(FakeResponse(201, {"sid": "SM1"}))

        sms_notifier(database, http).notify(receipt)

        assert len(http.posts) == 1
        url, kwargs = http.posts[0]
        assert url == TWILIO_API_URL.format(sid="AC123")
        assert kwargs["data"]["To"] == "+15550000002"
        assert kwargs["data"]["From"] == "+15559990000"
        assert "alice" in kwargs["data"]["Body"]
        assert kwargs["auth"] == ("AC123", "token")

    def test_unknown_recipient_skips_sms(self, database, receipt):
        http = FakeHTTP(FakeResponse(201))
        sms_notifier(database, http).notify(receipt)
        assert http.posts == []

    def test_gateway_error_raises(self, database, directory, receipt):
        directory.register(make_user("bob"))
        http = FakeHTTP(FakeResponse(500))
        with pytest.raises(requests.HTTPError):
            sms_notifier(database, http).notify(receipt)

    def test_accepted_without_json_body(self, database, directory, receipt, caplog):
        directory.register(make_user("bob"))
        http = FakeHTTP(HTMLResponse(200))

        with caplog.at_level(logging.INFO, logger="messagely.notifier"):
            deliver_notification(sms_notifier(database, http), receipt)

        assert len(http.posts) == 1
        assert "SMS sent for message 7" in caplog.text
        assert "Notification failed" not in caplog.text

    def test_gateway_error_swallowed_by_delivery(self, database, directory, receipt):
        directory.register(make_user("bob"))
        http = FakeHTTP(FakeResponse(500))
        deliver_notification(sms_notifier(database, http), receipt)
        assert len(http.posts) == 1
