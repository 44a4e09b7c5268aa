import pytest
from pydantic import ValidationError

from helpdesk.core.database import Base
from helpdesk.schemas.otp import CheckAuthRequest
from helpdesk.schemas.user import validate_email
from helpdesk.services.user_service import normalize_email
import helpdesk.models  # noqa: F401  registers every table on Base.metadata


def test_schema_and_directory_share_one_email_form():
    raw = "  Mixed.Case@Example.COM "
    assert validate_email(raw) == normalize_email(raw) == "mixed.case@example.com"
    assert CheckAuthRequest(email=raw).email == normalize_email(raw)


def test_schema_rejects_malformed_email():
    with pytest.raises(ValidationError):
        CheckAuthRequest(email="not-an-email")


@pytest.mark.parametrize(
    "table, expected",
    [
        ("users", {"idx_users_role"}),
        ("jwt_refresh_tokens", {"idx_jwt_refresh_tokens_user_device"}),
        (
            "auth_audit_log",
            {"idx_auth_audit_log_created_at", "idx_auth_audit_log_email", "idx_auth_audit_log_action"},
        ),
        ("user_permissions", set()),
    ],
)
def test_model_indexes_match_initial_migration(table, expected):
    assert {index.name for index in Base.metadata.tables[table].indexes} == expected
