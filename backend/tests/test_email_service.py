import smtplib
import socket

import pytest

from helpdesk.config import Settings
from helpdesk.core.exceptions import EmailDeliveryError
from helpdesk.services import email_service as email_module
from helpdesk.services.email_service import EmailService, redact_email


def _configured(**overrides):
    values = dict(
        ENVIRONMENT="test",
        SMTP_HOST="smtp.mail.test",
        SMTP_USER="robot@mail.test",
        SMTP_PASSWORD="secret",
        EMAIL_TIMEOUT_SECONDS=2.5,
    )
    values.update(overrides)
    return Settings(**values)


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None, **kwargs):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.calls = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self, context=None):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(("login", user))

    def sendmail(self, from_addr, to_addrs, message):
        self.calls.append(("sendmail", from_addr, tuple(to_addrs)))


@pytest.fixture(autouse=True)
def _reset_fake():
    FakeSMTP.instances = []


def test_sentinel_values_mean_unconfigured():
    assert EmailService(Settings(ENVIRONMENT="test")).is_configured is False
    assert EmailService(_configured()).is_configured is True
    assert EmailService(_configured(SMTP_USER="user@example.com")).is_configured is False


def test_unconfigured_transport_logs_instead_of_sending(monkeypatch):
    monkeypatch.setattr(email_module.smtplib, "SMTP", FakeSMTP)
    EmailService(Settings(ENVIRONMENT="test")).send_otp("a@x.com", "123456")
    assert FakeSMTP.instances == []


def test_unconfigured_transport_in_production_is_a_failure():
    with pytest.raises(EmailDeliveryError) as exc_info:
        EmailService(Settings(ENVIRONMENT="production")).send_otp("a@x.com", "123456")
    assert exc_info.value.reason == "mail_not_configured"


def test_sends_with_starttls_and_timeout(monkeypatch):
    monkeypatch.setattr(email_module.smtplib, "SMTP", FakeSMTP)
    EmailService(_configured()).send_password_reset("user@corp.test", "tok")

    (server,) = FakeSMTP.instances
    assert server.host == "smtp.mail.test"
    assert server.timeout == 2.5
    assert server.calls[0] == "starttls"
    assert ("login", "robot@mail.test") in server.calls
    assert server.calls[-1][2] == ("user@corp.test",)


def test_timeout_becomes_delivery_error(monkeypatch):
    class HangingSMTP(FakeSMTP):
        def __init__(self, *args, **kwargs):
            raise socket.timeout("timed out")

    monkeypatch.setattr(email_module.smtplib, "SMTP", HangingSMTP)
    with pytest.raises(EmailDeliveryError) as exc_info:
        EmailService(_configured()).send_otp("a@x.com", "123456")
    assert exc_info.value.reason == "timeout"
    assert exc_info.value.message == "Failed to send email"


def test_smtp_error_becomes_delivery_error(monkeypatch):
    class RejectingSMTP(FakeSMTP):
        def login(self, user, password):
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")

    monkeypatch.setattr(email_module.smtplib, "SMTP", RejectingSMTP)
    with pytest.raises(EmailDeliveryError) as exc_info:
        EmailService(_configured()).send_otp("a@x.com", "123456")
    assert exc_info.value.reason == "SMTPAuthenticationError"


def test_redact_email():
    assert redact_email("alice@example.com") == "al***@example.com"
    assert redact_email("garbage") == "redacted"
