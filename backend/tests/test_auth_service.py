import pytest

from helpdesk.config import settings
from helpdesk.core import security
from helpdesk.core.exceptions import (
    AccountDisabledError,
    AccountLockedError,
    CurrentPasswordIncorrectError,
    EmailDeliveryError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidTokenError,
    ResourceAlreadyExistsError,
    WeakPasswordError,
)
from helpdesk.models.audit import AuditAction, AuthAuditEvent
from helpdesk.models.user import User
from helpdesk.services import auth_service as auth_module
from helpdesk.services.audit_service import RequestContext
from helpdesk.services.auth_service import auth_service
from helpdesk.services.token_service import token_service

from conftest import STRONG_PASSWORD

CONTEXT = RequestContext(ip_address="10.0.0.5", user_agent="pytest")


def _events(db, action):
    return db.query(AuthAuditEvent).filter(AuthAuditEvent.action == action.value).all()


def test_register_normalizes_email_and_audits(db):
    user = auth_service.register(
        db, email="  New.Agent@Example.COM ", password=STRONG_PASSWORD, name="New Agent", context=CONTEXT
    )
    assert user.email == "new.agent@example.com"
    assert user.role == "client"
    assert user.is_verified is False
    assert user.email_verification_token
    assert security.verify_password(STRONG_PASSWORD, user.password_hash)

    events = _events(db, AuditAction.REGISTER)
    assert len(events) == 1
    assert events[0].user_id == user.id
    assert events[0].ip_address == "10.0.0.5"


def test_second_registration_with_same_email_any_case_conflicts(db):
    auth_service.register(db, email="dup@example.com", password=STRONG_PASSWORD, name="First")
    with pytest.raises(ResourceAlreadyExistsError):
        auth_service.register(db, email="DUP@Example.com", password=STRONG_PASSWORD, name="Second")
    assert db.query(User).count() == 1


def test_register_rejects_weak_password(db):
    with pytest.raises(WeakPasswordError) as exc_info:
        auth_service.register(db, email="weak@example.com", password="password", name="Weak")
    assert exc_info.value.status_code == 400
    assert exc_info.value.details["problems"]
    assert db.query(User).count() == 0


def test_registration_survives_verification_mail_failure(db, monkeypatch):
    def failing_send(to_email, token):
        raise EmailDeliveryError(reason="timeout")

    monkeypatch.setattr(auth_module.email_service, "send_email_verification", failing_send)
    user = auth_service.register(db, email="nomail@example.com", password=STRONG_PASSWORD, name="No Mail")
    assert user.id is not None
    assert len(_events(db, AuditAction.REGISTER)) == 1


def test_login_issues_pair_and_records_session(db, make_user):
    user = make_user(email="login@example.com")
    pair = auth_service.login(
        db, email="LOGIN@example.com", password=STRONG_PASSWORD, device_id="laptop-1", context=CONTEXT
    )

    access = security.decode_access_token(pair.access_token)
    assert access["sub"] == str(user.id)
    assert access["device_id"] == "laptop-1"
    assert security.decode_refresh_token(pair.refresh_token)["device_id"] == "laptop-1"

    record = token_service.lookup(db, pair.refresh_token)
    assert record is not None
    assert record.device_details() == {"ip": "10.0.0.5", "user_agent": "pytest"}

    db.refresh(user)
    assert user.last_login is not None
    assert len(_events(db, AuditAction.LOGIN)) == 1


def test_unknown_email_and_wrong_password_look_the_same(db, make_user):
    make_user(email="known@example.com")

    with pytest.raises(InvalidCredentialsError) as unknown:
        auth_service.login(db, email="ghost@example.com", password=STRONG_PASSWORD)
    with pytest.raises(InvalidCredentialsError) as wrong:
        auth_service.login(db, email="known@example.com", password="Wr0ng!Pass")

    assert unknown.value.message == wrong.value.message
    assert unknown.value.status_code == wrong.value.status_code == 401
    assert unknown.value.reason != wrong.value.reason


def test_unknown_email_does_not_touch_any_counter(db, make_user):
    user = make_user(email="counter@example.com")
    with pytest.raises(InvalidCredentialsError):
        auth_service.login(db, email="other@example.com", password="whatever")

    db.refresh(user)
    assert user.failed_login_attempts == 0
    failed = _events(db, AuditAction.FAILED_LOGIN)
    assert len(failed) == 1
    assert failed[0].user_id is None


def test_five_failures_lock_then_window_expiry_clears(db, make_user, clock):
    user = make_user(email="locked@example.com")

    for _ in range(settings.MAX_FAILED_LOGIN_ATTEMPTS):
        with pytest.raises(InvalidCredentialsError):
            auth_service.login(db, email="locked@example.com", password="Wr0ng!Pass")

    db.refresh(user)
    assert user.failed_login_attempts == 5
    assert user.account_locked_until is not None

    # Correct password is still refused while the lock holds
    with pytest.raises(AccountLockedError) as exc_info:
        auth_service.login(db, email="locked@example.com", password=STRONG_PASSWORD)
    assert exc_info.value.status_code == 423
    assert "locked_until" in exc_info.value.details

    clock.advance(minutes=settings.LOCKOUT_DURATION_MINUTES, seconds=1)
    pair = auth_service.login(db, email="locked@example.com", password=STRONG_PASSWORD)
    assert pair.access_token

    db.refresh(user)
    assert user.failed_login_attempts == 0
    assert user.account_locked_until is None


def test_successful_login_resets_partial_failure_count(db, make_user):
    user = make_user(email="partial@example.com")
    for _ in range(3):
        with pytest.raises(InvalidCredentialsError):
            auth_service.login(db, email="partial@example.com", password="Wr0ng!Pass")
    auth_service.login(db, email="partial@example.com", password=STRONG_PASSWORD)
    db.refresh(user)
    assert user.failed_login_attempts == 0


def test_inactive_account_cannot_log_in(db, make_user):
    make_user(email="inactive@example.com", is_active=False)
    with pytest.raises(AccountDisabledError):
        auth_service.login(db, email="inactive@example.com", password=STRONG_PASSWORD)


def test_unverified_login_allowed_unless_policy_requires_verification(db, make_user, monkeypatch):
    make_user(email="unverified@example.com")
    assert auth_service.login(db, email="unverified@example.com", password=STRONG_PASSWORD)

    monkeypatch.setattr(settings, "REQUIRE_VERIFIED_EMAIL", True)
    with pytest.raises(EmailNotVerifiedError):
        auth_service.login(db, email="unverified@example.com", password=STRONG_PASSWORD)


def test_verify_email_token_is_single_use(db, monkeypatch):
    sent = {}
    monkeypatch.setattr(
        auth_module.email_service,
        "send_email_verification",
        lambda to_email, token: sent.update(token=token),
    )
    user = auth_service.register(db, email="verify@example.com", password=STRONG_PASSWORD, name="Verify")

    verified = auth_service.verify_email(db, sent["token"])
    assert verified.id == user.id
    assert verified.is_verified is True
    with pytest.raises(InvalidTokenError):
        auth_service.verify_email(db, sent["token"])


def test_password_reset_token_is_single_use(db, make_user, monkeypatch):
    make_user(email="reset@example.com")
    sent = {}
    monkeypatch.setattr(
        auth_module.email_service,
        "send_password_reset",
        lambda to_email, token: sent.update(token=token),
    )

    auth_service.request_password_reset(db, email="reset@example.com")
    auth_service.reset_password(db, token=sent["token"], new_password="N3w!Password")

    with pytest.raises(InvalidTokenError):
        auth_service.reset_password(db, token=sent["token"], new_password="An0ther!Password")

    assert auth_service.login(db, email="reset@example.com", password="N3w!Password")
    assert len(_events(db, AuditAction.PASSWORD_RESET_COMPLETED)) == 1


def test_expired_reset_token_is_rejected(db, make_user, monkeypatch, clock):
    make_user(email="late@example.com")
    sent = {}
    monkeypatch.setattr(
        auth_module.email_service,
        "send_password_reset",
        lambda to_email, token: sent.update(token=token),
    )
    auth_service.request_password_reset(db, email="late@example.com")
    clock.advance(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES + 1)
    with pytest.raises(InvalidTokenError):
        auth_service.reset_password(db, token=sent["token"], new_password="N3w!Password")


def test_forgot_password_for_unknown_email_is_silent(db, monkeypatch):
    calls = []
    monkeypatch.setattr(
        auth_module.email_service,
        "send_password_reset",
        lambda to_email, token: calls.append(to_email),
    )
    auth_service.request_password_reset(db, email="nobody@example.com")
    assert calls == []


def test_forgot_password_surfaces_mail_failure(db, make_user, monkeypatch):
    make_user(email="broken@example.com")

    def failing_send(to_email, token):
        raise EmailDeliveryError(reason="SMTPServerDisconnected")

    monkeypatch.setattr(auth_module.email_service, "send_password_reset", failing_send)
    with pytest.raises(EmailDeliveryError) as exc_info:
        auth_service.request_password_reset(db, email="broken@example.com")

    assert exc_info.value.status_code == 500
    assert exc_info.value.message == "Failed to send reset email"
    events = _events(db, AuditAction.PASSWORD_RESET_REQUESTED)
    assert [e.success for e in events] == [False]


def test_change_password_checks_current_and_strength(db, make_user):
    user = make_user(email="change@example.com")

    with pytest.raises(CurrentPasswordIncorrectError):
        auth_service.change_password(
            db, user_id=user.id, current_password="Wr0ng!Pass", new_password="N3w!Password"
        )
    with pytest.raises(WeakPasswordError):
        auth_service.change_password(
            db, user_id=user.id, current_password=STRONG_PASSWORD, new_password="weak"
        )

    auth_service.change_password(
        db, user_id=user.id, current_password=STRONG_PASSWORD, new_password="N3w!Password"
    )
    assert auth_service.login(db, email="change@example.com", password="N3w!Password")
    assert len(_events(db, AuditAction.PASSWORD_CHANGED)) == 1


def test_change_password_keeps_sessions_by_default(db, make_user):
    user = make_user(email="keep@example.com")
    pair = auth_service.login(db, email="keep@example.com", password=STRONG_PASSWORD)

    auth_service.change_password(
        db, user_id=user.id, current_password=STRONG_PASSWORD, new_password="N3w!Password"
    )
    assert token_service.lookup(db, pair.refresh_token) is not None


def test_change_password_can_revoke_sessions(db, make_user, monkeypatch):
    monkeypatch.setattr(settings, "REVOKE_SESSIONS_ON_PASSWORD_CHANGE", True)
    user = make_user(email="revoke@example.com")
    pair = auth_service.login(db, email="revoke@example.com", password=STRONG_PASSWORD)

    auth_service.change_password(
        db, user_id=user.id, current_password=STRONG_PASSWORD, new_password="N3w!Password"
    )
    assert token_service.lookup(db, pair.refresh_token) is None


def test_profile_includes_role_permissions(db, make_user):
    user = make_user(email="support@example.com", role="support")
    profile, permissions = auth_service.get_profile(db, user.id)
    assert profile.id == user.id
    granted = {(p["resource"], p["action"]) for p in permissions if p["granted"]}
    assert ("tickets", "update") in granted
    assert ("users", "delete") not in granted


def test_bootstrap_admin_is_idempotent(db):
    first = auth_service.bootstrap_admin(db)
    assert first is not None
    assert first.role == "admin"
    assert first.is_verified is True
    assert auth_service.bootstrap_admin(db) is None
