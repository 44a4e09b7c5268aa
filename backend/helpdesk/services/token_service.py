"""Refresh token ledger: issuance, rotation and revocation."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from helpdesk.config import settings
from helpdesk.core import security
from helpdesk.core.exceptions import RefreshTokenInvalidError, RefreshTokenRevokedError
from helpdesk.models.security import RefreshToken
from helpdesk.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    user: User
    device_id: str


class TokenService:
    """Manage the refresh-token ledger lifecycle."""

    @staticmethod
    def _claims_for(user: User, device_id: str) -> Dict[str, Any]:
        return {"sub": str(user.id), "email": user.email, "role": user.role, "device_id": device_id}

    @staticmethod
    def _issue_pair(user: User, device_id: str) -> tuple:
        claims = TokenService._claims_for(user, device_id)
        return security.create_access_token(claims), security.create_refresh_token(claims)

    @staticmethod
    def _new_record(
        *,
        user_id: int,
        token: str,
        device_id: str,
        device_info: Optional[str],
        expires_at: datetime,
    ) -> RefreshToken:
        claims = security.peek_token_claims(token) or {}
        return RefreshToken(
            user_id=user_id,
            token_hash=security.hash_token(token),
            token_jti=claims.get("jti"),
            device_id=device_id or "unknown",
            device_info=device_info,
            is_revoked=False,
            expires_at=expires_at,
        )

    @staticmethod
    def _ledger_expiry() -> datetime:
        return security.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

    @staticmethod
    def store(
        db: Session,
        *,
        user_id: int,
        token: str,
        device_id: str,
        device_info: Optional[Dict[str, Any]] = None,
        expires_at: Optional[datetime] = None,
    ) -> RefreshToken:
        record = TokenService._new_record(
            user_id=user_id,
            token=token,
            device_id=device_id,
            device_info=json.dumps(device_info, ensure_ascii=False) if device_info else None,
            expires_at=expires_at or TokenService._ledger_expiry(),
        )
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    @staticmethod
    def lookup(db: Session, token: str) -> Optional[RefreshToken]:
        """Return the live ledger row for a token value (not revoked, not expired)."""
        if not token:
            return None
        return (
            db.query(RefreshToken)
            .filter(
                RefreshToken.token_hash == security.hash_token(token),
                RefreshToken.is_revoked == False,  # noqa: E712
                RefreshToken.expires_at > security.utcnow(),
            )
            .first()
        )

    @staticmethod
    def revoke(db: Session, token: str, user_id: Optional[int] = None) -> bool:
        """Revoke a token's ledger row. Returns True if a live row was revoked.

        With ``user_id`` only a row owned by that user is touched.
        """
        if not token:
            return False
        query = db.query(RefreshToken).filter(
            RefreshToken.token_hash == security.hash_token(token),
            RefreshToken.is_revoked == False,  # noqa: E712
        )
        if user_id is not None:
            query = query.filter(RefreshToken.user_id == user_id)
        count = (
            query
            .update(
                {RefreshToken.is_revoked: True, RefreshToken.revoked_at: security.utcnow()},
                synchronize_session=False,
            )
        )
        db.commit()
        return count > 0

    @staticmethod
    def revoke_all_for_user(db: Session, user_id: int) -> int:
        count = (
            db.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id, RefreshToken.is_revoked == False)  # noqa: E712
            .update(
                {RefreshToken.is_revoked: True, RefreshToken.revoked_at: security.utcnow()},
                synchronize_session=False,
            )
        )
        db.commit()
        if count:
            logger.info(f"Revoked {count} refresh tokens for user {user_id}")
        return count

    @staticmethod
    def list_active_sessions(db: Session, user_id: int) -> List[RefreshToken]:
        return (
            db.query(RefreshToken)
            .filter(
                RefreshToken.user_id == user_id,
                RefreshToken.is_revoked == False,  # noqa: E712
                RefreshToken.expires_at > security.utcnow(),
            )
            .order_by(RefreshToken.created_at.desc(), RefreshToken.id.desc())
            .all()
        )

    @staticmethod
    def issue_token_pair(
        db: Session,
        user: User,
        device_id: Optional[str] = None,
        device_info: Optional[Dict[str, Any]] = None,
    ) -> TokenPair:
        device_id = device_id or "unknown"
        access_token, refresh_token = TokenService._issue_pair(user, device_id)
        TokenService.store(
            db,
            user_id=user.id,
            token=refresh_token,
            device_id=device_id,
            device_info=device_info,
        )
        return TokenPair(access_token, refresh_token, user, device_id)

    @staticmethod
    def rotate_refresh_token(db: Session, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new access/refresh pair.

        The old row is revoked with a conditional update in the same
        transaction that inserts the new row. When two requests present the
        same token, only the one whose update matches a live row commits; the
        other sees zero rows and is rejected.

        Raises:
            RefreshTokenInvalidError: signature, expiry or type check failed
            RefreshTokenRevokedError: no live ledger row for this token
        """
        payload = security.decode_refresh_token(refresh_token)
        if not payload:
            raise RefreshTokenInvalidError(reason="verification_failed")

        record = TokenService.lookup(db, refresh_token)
        if record is None:
            raise RefreshTokenRevokedError(reason="ledger_row_missing")

        user = db.query(User).filter(User.id == record.user_id).first()
        if user is None or not user.is_active or str(user.id) != str(payload.get("sub")):
            raise RefreshTokenRevokedError(reason="user_missing_or_inactive")

        device_id = payload.get("device_id") or record.device_id
        device_info = record.device_info
        new_access, new_refresh = TokenService._issue_pair(user, device_id)
        new_jti = (security.peek_token_claims(new_refresh) or {}).get("jti")

        claimed = (
            db.query(RefreshToken)
            .filter(
                RefreshToken.token_hash == security.hash_token(refresh_token),
                RefreshToken.is_revoked == False,  # noqa: E712
            )
            .update(
                {
                    RefreshToken.is_revoked: True,
                    RefreshToken.revoked_at: security.utcnow(),
                    RefreshToken.replaced_by_jti: new_jti,
                },
                synchronize_session=False,
            )
        )
        if claimed != 1:
            db.rollback()
            logger.warning(f"Concurrent reuse of refresh token for user {user.id} rejected")
            raise RefreshTokenRevokedError(reason="lost_rotation_race")

        db.add(
            TokenService._new_record(
                user_id=user.id,
                token=new_refresh,
                device_id=device_id,
                device_info=device_info,
                expires_at=TokenService._ledger_expiry(),
            )
        )
        db.commit()
        return TokenPair(new_access, new_refresh, user, device_id)


token_service = TokenService()
