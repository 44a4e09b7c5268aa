import pytest

from helpdesk.config import Settings
from helpdesk.core.exceptions import (
    EmailDeliveryError,
    OTPExpiredError,
    OTPMismatchError,
    OTPNotFoundError,
)
from helpdesk.core.expiring_store import InMemoryExpiringStore
from helpdesk.services.email_service import EmailService
from helpdesk.services.otp_service import OTPService, generate_otp_code


class FakeMailer:
    def __init__(self, configured=True, fail=False):
        self.is_configured = configured
        self.fail = fail
        self.sent = []

    def send_otp(self, to_email, code):
        if self.fail:
            raise EmailDeliveryError(reason="timeout")
        self.sent.append((to_email, code))


def _service(mailer, environment="test"):
    return OTPService(
        InMemoryExpiringStore(),
        InMemoryExpiringStore(),
        mailer,
        config=Settings(ENVIRONMENT=environment),
    )


def _issue(service, mailer, email):
    issued = service.request_otp(email)
    return issued.code if issued.dev_mode else mailer.sent[-1][1]


def test_generated_codes_are_six_digits():
    for _ in range(200):
        code = generate_otp_code()
        assert len(code) == 6
        assert code.isdigit()
        assert 100000 <= int(code) <= 999999


def test_round_trip_creates_session_and_consumes_code(clock):
    mailer = FakeMailer()
    service = _service(mailer)
    code = _issue(service, mailer, "a@x.com")

    session = service.verify_otp("a@x.com", code)
    assert session.email == "a@x.com"
    assert service.check_session("a@x.com") is True

    with pytest.raises(OTPNotFoundError):
        service.verify_otp("a@x.com", code)


def test_expired_code_is_removed(clock):
    mailer = FakeMailer()
    service = _service(mailer)
    code = _issue(service, mailer, "a@x.com")

    clock.advance(minutes=5, seconds=1)
    with pytest.raises(OTPExpiredError) as exc_info:
        service.verify_otp("a@x.com", code)
    assert exc_info.value.message == "OTP expired"

    with pytest.raises(OTPNotFoundError):
        service.verify_otp("a@x.com", code)


def test_mismatch_keeps_the_pending_code(clock):
    mailer = FakeMailer()
    service = _service(mailer)
    code = _issue(service, mailer, "a@x.com")
    wrong = "000000" if code != "000000" else "111111"

    with pytest.raises(OTPMismatchError):
        service.verify_otp("a@x.com", wrong)
    assert service.verify_otp("a@x.com", code)


def test_new_request_replaces_pending_code(clock):
    mailer = FakeMailer()
    service = _service(mailer)
    first = _issue(service, mailer, "a@x.com")
    second = _issue(service, mailer, "A@X.com")
    if first == second:
        pytest.skip("codes collided")

    with pytest.raises(OTPMismatchError):
        service.verify_otp("a@x.com", first)
    assert service.verify_otp("a@x.com", second)


def test_session_expires_after_a_day(clock):
    mailer = FakeMailer()
    service = _service(mailer)
    service.verify_otp("a@x.com", _issue(service, mailer, "a@x.com"))

    clock.advance(hours=24)
    assert service.check_session("a@x.com") is False
    assert len(service.session_store) == 0


def test_expiry_is_reported_after_another_client_requests_a_code(clock):
    mailer = FakeMailer()
    service = _service(mailer)
    code = _issue(service, mailer, "a@x.com")

    clock.advance(minutes=6)
    _issue(service, mailer, "b@x.com")

    with pytest.raises(OTPExpiredError):
        service.verify_otp("a@x.com", code)
    with pytest.raises(OTPNotFoundError):
        service.verify_otp("a@x.com", code)


def test_abandoned_codes_are_swept_after_a_full_lifetime(clock):
    mailer = FakeMailer()
    service = _service(mailer)
    _issue(service, mailer, "a@x.com")

    clock.advance(minutes=10, seconds=1)
    _issue(service, mailer, "b@x.com")
    assert service.otp_store.get_entry("a@x.com") is None
    assert len(service.otp_store) == 1


def test_unknown_emails_leave_no_lock_state(clock):
    service = _service(FakeMailer())
    for i in range(200):
        with pytest.raises(OTPNotFoundError):
            service.verify_otp(f"nobody{i}@x.com", "123456")
    assert service.otp_store.lock_count == 0
    assert len(service.otp_store) == 0


def test_development_mode_returns_code_instead_of_mailing():
    mailer = FakeMailer(configured=False)
    issued = _service(mailer).request_otp("dev@x.com")
    assert issued.dev_mode is True
    assert issued.code and len(issued.code) == 6
    assert mailer.sent == []


def test_configured_mail_never_exposes_code():
    mailer = FakeMailer(configured=True)
    issued = _service(mailer).request_otp("real@x.com")
    assert issued.dev_mode is False
    assert issued.code is None
    assert mailer.sent and mailer.sent[0][0] == "real@x.com"


def test_production_without_mail_fails_instead_of_exposing_code():
    prod = Settings(ENVIRONMENT="production")
    service = OTPService(InMemoryExpiringStore(), InMemoryExpiringStore(), EmailService(prod), config=prod)

    assert service.dev_mode is False
    with pytest.raises(EmailDeliveryError):
        service.request_otp("prod@x.com")
    assert service.otp_store.get("prod@x.com") is None


def test_delivery_failure_discards_the_code():
    mailer = FakeMailer(fail=True)
    service = _service(mailer)
    with pytest.raises(EmailDeliveryError) as exc_info:
        service.request_otp("a@x.com")
    assert exc_info.value.message == "Failed to send OTP email"
    with pytest.raises(OTPNotFoundError):
        service.verify_otp("a@x.com", "123456")
