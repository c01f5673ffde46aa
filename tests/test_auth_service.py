"""Sign-up and sign-in flow tests."""

import pytest
from sqlmodel import select

from auth import decode_token
from database import get_session
from errors import (
    AuthenticationError,
    ConflictError,
    DeliveryError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from main import sweep_expired_records
from otpmodel.otp_model import OTPEntry, PendingSignupEntry
from services.auth_service import AuthService
from services.otp_ledger import SQLOTPLedger
from services.otp_service import OTPIssuer
from services.password_service import verify_password


def test_signup_flow_creates_user(auth_service, outbox, user_store):
    dispatch = auth_service.signup_initiate("new@x.com", "secret123", "Nina New")
    assert dispatch.email == "new@x.com"
    assert dispatch.delivered
    assert user_store.get_by_email("new@x.com") is None

    code = outbox.last_code("new@x.com")
    result = auth_service.signup_complete("new@x.com", code)

    assert result.user.email == "new@x.com"
    assert result.user.role == "user"
    assert verify_password("secret123", result.user.password_hash)
    payload = decode_token(result.token)
    assert payload.user_id == result.user.id
    assert payload.role == "user"


def test_signup_with_admin_role(auth_service, outbox):
    auth_service.signup_initiate("boss@x.com", "secret123", "Boss", role="admin")
    result = auth_service.signup_complete("boss@x.com", outbox.last_code("boss@x.com"))

    assert result.user.role == "admin"
    assert decode_token(result.token).role == "admin"


def test_signup_short_password_issues_nothing(auth_service, outbox, pending_store, ledger):
    with pytest.raises(ValidationError):
        auth_service.signup_initiate("new@x.com", "abc", "Nina New")

    assert outbox.sent == []
    assert pending_store.get("new@x.com") is None
    assert ledger.find_active("new@x.com") is None


def test_signup_missing_fields_are_named(auth_service):
    with pytest.raises(ValidationError) as exc_info:
        auth_service.signup_initiate("new@x.com", "", "")

    assert exc_info.value.detail == "Missing required fields: password, name"


def test_signup_unknown_role_rejected(auth_service):
    with pytest.raises(ValidationError):
        auth_service.signup_initiate("new@x.com", "secret123", "Nina", role="root")


def test_signup_duplicate_email(auth_service, registered_user, outbox):
    with pytest.raises(ConflictError) as exc_info:
        auth_service.signup_initiate(registered_user.email, "secret123", "Copycat")

    assert exc_info.value.status_code == 400
    assert outbox.sent == []


def test_signup_email_lookup_is_case_sensitive(auth_service, registered_user, outbox):
    auth_service.signup_initiate(registered_user.email.upper(), "secret123", "Shouty")

    assert outbox.last_code(registered_user.email.upper()) is not None


def test_signup_delivery_failure_rolls_back(auth_service, outbox, pending_store, ledger):
    outbox.fail = True

    with pytest.raises(DeliveryError):
        auth_service.signup_initiate("new@x.com", "secret123", "Nina New")

    assert pending_store.get("new@x.com") is None
    assert ledger.find_active("new@x.com") is None


def test_signup_wrong_code_keeps_session(auth_service, outbox):
    auth_service.signup_initiate("new@x.com", "secret123", "Nina New")
    code = outbox.last_code("new@x.com")
    wrong = "000000" if code != "000000" else "111111"

    with pytest.raises(AuthenticationError) as exc_info:
        auth_service.signup_complete("new@x.com", wrong)
    assert exc_info.value.status_code == 400

    # Retrying with the right code still works
    assert auth_service.signup_complete("new@x.com", code).user.email == "new@x.com"


def test_signup_code_cannot_be_replayed(auth_service, outbox):
    auth_service.signup_initiate("new@x.com", "secret123", "Nina New")
    code = outbox.last_code("new@x.com")
    auth_service.signup_complete("new@x.com", code)

    with pytest.raises(AuthenticationError):
        auth_service.signup_complete("new@x.com", code)


def test_signup_expired_code(auth_service, outbox, clock):
    auth_service.signup_initiate("new@x.com", "secret123", "Nina New")
    clock.advance(minutes=11)

    with pytest.raises(AuthenticationError):
        auth_service.signup_complete("new@x.com", outbox.last_code("new@x.com"))


def test_signup_without_pending_record_is_session_expired(auth_service, ledger, user_store):
    # A valid code exists, but no sign-up was started for this email
    ledger.put("stray@x.com", "123456", auth_service.issuer.ttl)

    with pytest.raises(AuthenticationError) as exc_info:
        auth_service.signup_complete("stray@x.com", "123456")

    assert exc_info.value.detail == "Signup session expired. Please start over."
    assert exc_info.value.status_code == 400
    assert user_store.get_by_email("stray@x.com") is None
    assert ledger.find_active("stray@x.com") is None


def test_signup_pending_record_for_other_email(auth_service, ledger):
    auth_service.signup_initiate("first@x.com", "secret123", "First")
    ledger.put("second@x.com", "654321", auth_service.issuer.ttl)

    with pytest.raises(AuthenticationError) as exc_info:
        auth_service.signup_complete("second@x.com", "654321")

    assert "session expired" in exc_info.value.detail


def test_signup_resend_only_latest_code_verifies(auth_service, clock):
    codes = iter(["111111", "222222"])
    auth_service.issuer.generate = lambda: next(codes)

    auth_service.signup_initiate("new@x.com", "secret123", "Nina New")
    clock.advance(seconds=30)
    auth_service.signup_initiate("new@x.com", "secret456", "Nina New")

    with pytest.raises(AuthenticationError):
        auth_service.signup_complete("new@x.com", "111111")

    result = auth_service.signup_complete("new@x.com", "222222")
    # The newer pending record replaced the first one
    assert verify_password("secret456", result.user.password_hash)


def test_signin_flow(auth_service, registered_user, outbox):
    dispatch = auth_service.signin_initiate(registered_user.email, "secret123")
    assert dispatch.delivered
    assert outbox.sent[-1][2] == "signin"

    result = auth_service.signin_complete(
        registered_user.email, outbox.last_code(registered_user.email)
    )

    assert result.user.id == registered_user.id
    assert decode_token(result.token).user_id == registered_user.id


def test_signin_unknown_email_and_wrong_password_look_the_same(auth_service, registered_user):
    with pytest.raises(AuthenticationError) as unknown:
        auth_service.signin_initiate("ghost@x.com", "secret123")
    with pytest.raises(AuthenticationError) as wrong:
        auth_service.signin_initiate(registered_user.email, "not-the-password")

    assert unknown.value.detail == wrong.value.detail == "Invalid email or password"
    assert unknown.value.status_code == wrong.value.status_code == 401


def test_signin_delivery_failure_is_not_fatal(auth_service, registered_user, outbox, ledger):
    outbox.fail = True

    dispatch = auth_service.signin_initiate(registered_user.email, "secret123")

    assert not dispatch.delivered
    assert "spam" in dispatch.message
    assert ledger.find_active(registered_user.email) is not None


def test_signin_code_consumed_once(auth_service, registered_user, ledger):
    auth_service.issuer.generate = lambda: "042913"
    auth_service.signin_initiate(registered_user.email, "secret123")

    auth_service.signin_complete(registered_user.email, "042913")
    with pytest.raises(AuthenticationError) as exc_info:
        auth_service.signin_complete(registered_user.email, "042913")

    assert exc_info.value.status_code == 401


def test_signin_user_vanished(auth_service, registered_user, outbox, user_store):
    auth_service.signin_initiate(registered_user.email, "secret123")
    user_store.delete(registered_user.id)

    with pytest.raises(NotFoundError):
        auth_service.signin_complete(
            registered_user.email, outbox.last_code(registered_user.email)
        )


def test_signin_expired_code(auth_service, registered_user, outbox, clock):
    auth_service.signin_initiate(registered_user.email, "secret123")
    clock.advance(minutes=10)

    with pytest.raises(AuthenticationError):
        auth_service.signin_complete(
            registered_user.email, outbox.last_code(registered_user.email)
        )


def test_sweep_clears_abandoned_signup(auth_service, ledger, pending_store, clock):
    auth_service.signup_initiate("abandoned@x.com", "secret123", "Gone Quiet")
    clock.advance(minutes=30)

    assert sweep_expired_records(ledger, pending_store) == (1, 1)

    with get_session() as session:
        assert session.exec(select(PendingSignupEntry)).all() == []
        assert session.exec(select(OTPEntry)).all() == []


def test_signup_storage_failure_discards_pending(
    user_store, pending_store, outbox, broken_session
):
    broken_ledger = SQLOTPLedger(session_factory=broken_session)
    service = AuthService(
        users=user_store,
        ledger=broken_ledger,
        issuer=OTPIssuer(broken_ledger, send=outbox),
        pending=pending_store,
    )

    with pytest.raises(StorageError):
        service.signup_initiate("new@x.com", "secret123", "Nina New")

    assert pending_store.get("new@x.com") is None
    assert outbox.sent == []
