"""
XY CRM - Auth Flow Tests
Tests: password hashing, lockout transitions, OTP issuance / verification.
Run: cd backend && pytest tests/test_auth_flow.py -v
"""

from datetime import datetime, timedelta, timezone

from config import (
    MAX_FAILED_LOGIN_ATTEMPTS,
    OTP_TTL_MINUTES,
    day_bounds,
    hash_password,
    is_valid_email_format,
    normalize_email,
    parse_datetime,
    to_iso,
    verify_password,
)
from services.auth_flow import (
    build_otp_record,
    check_otp,
    is_account_active,
    is_otp_expired,
    failed_attempt_outcome,
    password_reset_update,
    soft_delete_update,
    successful_login_update,
)

NOW = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)


# ═══════════════════════════════════════════════════════════════
# 1. PASSWORD HASHING
# ═══════════════════════════════════════════════════════════════

class TestPasswordHashing:
    """PBKDF2 hash / verify."""

    def test_hash_is_salted(self):
        first = hash_password("welcome@123")
        second = hash_password("welcome@123")
        assert first != second
        assert first.startswith("pbkdf2$sha256$")

    def test_verify_correct_password(self):
        stored = hash_password("S3cret!")
        assert verify_password("S3cret!", stored) is True

    def test_verify_wrong_password(self):
        stored = hash_password("S3cret!")
        assert verify_password("s3cret!", stored) is False

    def test_verify_rejects_missing_or_foreign_hash(self):
        assert verify_password("x", None) is False
        assert verify_password("x", "") is False
        assert verify_password("x", "$2b$10$bcrypt-looking-hash") is False
        assert verify_password("x", "pbkdf2$broken") is False


class TestDateAndEmailHelpers:
    """Helpers partagés par les routes."""

    def test_parse_date_only_is_utc_midnight(self):
        parsed = parse_datetime("2026-10-18")
        assert parsed == datetime(2026, 10, 18, tzinfo=timezone.utc)

    def test_parse_zulu_suffix(self):
        parsed = parse_datetime("2026-10-18T10:15:00Z")
        assert parsed == datetime(2026, 10, 18, 10, 15, tzinfo=timezone.utc)

    def test_parse_invalid_returns_none(self):
        assert parse_datetime("not-a-date") is None
        assert parse_datetime("") is None
        assert parse_datetime(None) is None

    def test_day_bounds(self):
        start, end = day_bounds("2026-10-18T15:42:00Z")
        assert start == "2026-10-18T00:00:00+00:00"
        assert end == "2026-10-18T23:59:59.999999+00:00"

    def test_day_bounds_invalid(self):
        assert day_bounds("garbage") is None

    def test_normalize_email(self):
        assert normalize_email("  John.Doe@Example.COM ") == "john.doe@example.com"

    def test_email_format(self):
        assert is_valid_email_format("sales@acme.in") is True
        assert is_valid_email_format("not-an-email") is False
        assert is_valid_email_format("") is False


# ═══════════════════════════════════════════════════════════════
# 2. LOCKOUT
# ═══════════════════════════════════════════════════════════════

class TestLockout:
    """failed_login_attempts -> is_active=False at the threshold."""

    def test_account_active_by_default(self):
        assert is_account_active({}) is True
        assert is_account_active({"is_active": True}) is True
        assert is_account_active({"is_active": False}) is False

    def test_first_failure_leaves_attempts(self):
        result = failed_attempt_outcome(1)
        assert result["locked"] is False
        assert result["remaining"] == MAX_FAILED_LOGIN_ATTEMPTS - 1

    def test_missing_counter_counts_as_zero(self):
        assert failed_attempt_outcome(None)["remaining"] == MAX_FAILED_LOGIN_ATTEMPTS

    def test_third_failure_locks(self):
        result = failed_attempt_outcome(MAX_FAILED_LOGIN_ATTEMPTS)
        assert result["locked"] is True
        assert result["remaining"] == 0

    def test_concurrent_failures_past_the_limit_all_lock(self):
        """Chaque requête concurrente reçoit sa propre valeur du $inc"""
        outcomes = [failed_attempt_outcome(n) for n in range(1, MAX_FAILED_LOGIN_ATTEMPTS + 3)]
        assert [o["locked"] for o in outcomes].count(True) == 3
        assert all(o["remaining"] == 0 for o in outcomes if o["locked"])

    def test_successful_login_resets_counter(self):
        update = successful_login_update()
        assert update["failed_login_attempts"] == 0
        assert "last_login_at" in update

    def test_password_reset_reactivates(self):
        update = password_reset_update("pbkdf2$hash")
        assert update["password"] == "pbkdf2$hash"
        assert update["is_active"] is True
        assert update["failed_login_attempts"] == 0

    def test_soft_delete_releases_email(self):
        update = soft_delete_update({"id": "emp-1", "email": "eve@acme.test"})
        assert update["is_active"] is False
        assert update["is_deleted"] is True
        assert update["email"] == "deleted+emp-1"
        assert update["deleted_email"] == "eve@acme.test"

    def test_released_emails_stay_distinct(self):
        first = soft_delete_update({"id": "emp-1", "email": "eve@acme.test"})
        second = soft_delete_update({"id": "emp-2", "email": "eve@acme.test"})
        assert first["email"] != second["email"]


# ═══════════════════════════════════════════════════════════════
# 3. OTP
# ═══════════════════════════════════════════════════════════════

class TestOtp:
    """OTP record, then verification order: existence, code, expiry."""

    def test_otp_record_shape(self):
        record = build_otp_record("a@b.co", "acc-1", "employee", now=NOW)
        assert len(record["otp_code"]) == 6
        assert record["otp_code"].isdigit()
        assert record["verified"] is False
        assert record["expires_at"] == to_iso(NOW + timedelta(minutes=OTP_TTL_MINUTES))

    def test_missing_record(self):
        assert check_otp(None, "123456", now=NOW) == "not_found"

    def test_mismatch(self):
        record = {"otp_code": "123456", "expires_at": to_iso(NOW + timedelta(minutes=5))}
        assert check_otp(record, "654321", now=NOW) == "mismatch"

    def test_codes_are_trimmed(self):
        record = {"otp_code": "123456", "expires_at": to_iso(NOW + timedelta(minutes=5))}
        assert check_otp(record, " 123456 ", now=NOW) is None

    def test_expired(self):
        record = {"otp_code": "123456", "expires_at": to_iso(NOW - timedelta(seconds=1))}
        assert check_otp(record, "123456", now=NOW) == "expired"

    def test_mismatch_reported_before_expiry(self):
        record = {"otp_code": "123456", "expires_at": to_iso(NOW - timedelta(minutes=1))}
        assert check_otp(record, "000000", now=NOW) == "mismatch"

    def test_expiry_boundary(self):
        record = build_otp_record("a@b.co", "acc-1", "admin", now=NOW)
        assert is_otp_expired(record, now=NOW + timedelta(minutes=OTP_TTL_MINUTES)) is False
        assert is_otp_expired(record, now=NOW + timedelta(minutes=OTP_TTL_MINUTES, seconds=1)) is True

    def test_record_without_expiry_is_expired(self):
        assert is_otp_expired({"otp_code": "1"}, now=NOW) is True
