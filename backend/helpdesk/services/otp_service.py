"""Passwordless one-time-code sessions for the client portal."""

from __future__ import annotations

import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from helpdesk.config import Settings, settings as app_settings
from helpdesk.core import security
from helpdesk.core.exceptions import (
    EmailDeliveryError,
    OTPExpiredError,
    OTPMismatchError,
    OTPNotFoundError,
)
from helpdesk.core.expiring_store import ExpiringStore, InMemoryExpiringStore
from helpdesk.services.email_service import EmailService, email_service, redact_email
from helpdesk.services.user_service import normalize_email

logger = logging.getLogger(__name__)


@dataclass
class OTPRecord:
    email: str
    code: str
    expires_at: datetime


@dataclass
class ClientSession:
    email: str
    verified_at: datetime
    expires_at: datetime


@dataclass
class OTPIssue:
    expires_at: datetime
    dev_mode: bool = False
    code: Optional[str] = None  # only populated in development mode


def generate_otp_code() -> str:
    """Uniform six-digit code in 100000-999999."""
    return str(100000 + secrets.randbelow(900000))


class OTPService:
    """Issue and verify one-time codes; track the sessions they unlock.

    State per email: none -> pending(code) -> session -> expired/none. A new
    request replaces any pending code. Both stores are transient.
    """

    def __init__(
        self,
        otp_store: ExpiringStore,
        session_store: ExpiringStore,
        mailer: EmailService,
        config: Optional[Settings] = None,
    ) -> None:
        self.otp_store = otp_store
        self.session_store = session_store
        self.mailer = mailer
        self.config = config or app_settings

    @property
    def dev_mode(self) -> bool:
        """Return codes in responses only when no real mail transport exists outside production."""
        return not self.mailer.is_configured and not self.config.is_production

    def request_otp(self, email: str) -> OTPIssue:
        key = normalize_email(email)
        code = generate_otp_code()
        ttl = timedelta(minutes=self.config.OTP_EXPIRE_MINUTES)

        # Abandoned codes are swept once they have been dead for a full lifetime,
        # so a late verify still sees its own record and reports the expiry.
        self.otp_store.purge_expired(grace=ttl)
        with self.otp_store.locked(key):
            entry = self.otp_store.put(key, OTPRecord(key, code, security.utcnow() + ttl), ttl)
        record: OTPRecord = entry.value

        if self.dev_mode:
            logger.info("Development mode: OTP for %s returned in response, not mailed", redact_email(key))
            return OTPIssue(expires_at=record.expires_at, dev_mode=True, code=code)

        try:
            self.mailer.send_otp(key, code)
        except EmailDeliveryError as exc:
            self._discard_if_current(key, code)
            raise EmailDeliveryError("Failed to send OTP email", reason=exc.reason) from exc

        return OTPIssue(expires_at=record.expires_at)

    def verify_otp(self, email: str, code: str) -> ClientSession:
        key = normalize_email(email)
        with self.otp_store.locked(key):
            entry = self.otp_store.get_entry(key)
            if entry is None:
                raise OTPNotFoundError()
            if entry.is_expired(security.utcnow()):
                self.otp_store.delete(key)
                raise OTPExpiredError()
            if not hmac.compare_digest(entry.value.code, code.strip()):
                raise OTPMismatchError()
            self.otp_store.delete(key)

        now = security.utcnow()
        ttl = timedelta(hours=self.config.CLIENT_SESSION_EXPIRE_HOURS)
        session = ClientSession(email=key, verified_at=now, expires_at=now + ttl)
        self.session_store.put(key, session, ttl)
        logger.info("Client session opened for %s", redact_email(key))
        return session

    def check_session(self, email: str) -> bool:
        return self.session_store.get(normalize_email(email)) is not None

    def _discard_if_current(self, key: str, code: str) -> None:
        with self.otp_store.locked(key):
            entry = self.otp_store.get_entry(key)
            if entry is not None and entry.value.code == code:
                self.otp_store.delete(key)


otp_service = OTPService(InMemoryExpiringStore(), InMemoryExpiringStore(), email_service)
