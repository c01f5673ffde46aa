from dataclasses import dataclass

from fastapi import status

from auth import create_session_token
from config import PASSWORD_MIN_LENGTH
from errors import (
    AuthenticationError,
    ConflictError,
    DeliveryError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from services.logs_service import logger as root_logger
from services.otp_ledger import OTPLedger
from services.otp_service import OTPIssuer
from services.password_service import hash_password, verify_password
from services.pending_signup_store import PendingSignupStore
from services.user_store import UserStore
from usermodel.user_model import User

logger = root_logger.getChild("auth")

ROLES = ("user", "admin")

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_OTP = "Invalid or expired OTP"
SIGNUP_SESSION_EXPIRED = "Signup session expired. Please start over."


@dataclass
class OTPDispatch:
    email: str
    delivered: bool
    message: str


@dataclass
class AuthResult:
    user: User
    token: str


def _require(**fields: str | None) -> None:
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


class AuthService:
    """Sign-up and sign-in, each as send-code then verify-code.

    Sign-up: credentials are held as a pending record until the emailed code
    is verified, and only then is the user created. A failed email aborts the
    sign-up.

    Sign-in: the password is checked first, then a code is emailed. A failed
    email is logged and the code stays valid.
    """

    def __init__(
        self,
        users: UserStore,
        ledger: OTPLedger,
        issuer: OTPIssuer,
        pending: PendingSignupStore,
    ):
        self.users = users
        self.ledger = ledger
        self.issuer = issuer
        self.pending = pending

    def signup_initiate(
        self, email: str, password: str, name: str, role: str = "user"
    ) -> OTPDispatch:
        _require(email=email, password=password, name=name)

        if self.users.get_by_email(email) is not None:
            logger.warning(f"Rejected sign-up for already registered email={email}")
            raise ConflictError("Email already registered")

        if len(password) < PASSWORD_MIN_LENGTH:
            raise ValidationError(
                f"Password must be at least {PASSWORD_MIN_LENGTH} characters"
            )

        if role not in ROLES:
            raise ValidationError(f"Role must be one of: {', '.join(ROLES)}")

        # Only the hash is kept while waiting for the code
        self.pending.save(email, hash_password(password), name, role, self.issuer.ttl)

        try:
            self.issuer.issue(email, "signup")
        except DeliveryError:
            logger.error(f"Aborting sign-up, verification email failed for email={email}")
            self.ledger.invalidate(email)
            self.pending.discard(email)
            raise
        except StorageError:
            # The ledger is unusable, so only the pending record can be rolled back
            logger.error(f"Aborting sign-up, OTP could not be stored for email={email}")
            self.pending.discard(email)
            raise

        return OTPDispatch(email, True, "Verification code sent to your email")

    def signup_complete(self, email: str, code: str) -> AuthResult:
        _require(email=email, code=code)

        if not self.ledger.verify(email, code):
            logger.warning(f"Sign-up OTP verification failed for email={email}")
            raise AuthenticationError(INVALID_OTP, status.HTTP_400_BAD_REQUEST)

        pending = self.pending.get(email)
        if pending is None:
            # Nothing to promote; the code is spent and the client must restart
            self.ledger.invalidate(email)
            logger.warning(f"Sign-up session missing or expired for email={email}")
            raise AuthenticationError(SIGNUP_SESSION_EXPIRED, status.HTTP_400_BAD_REQUEST)

        user = self.users.create(
            email=pending.email,
            password_hash=pending.password_hash,
            name=pending.name,
            role=pending.role,
        )

        self.ledger.invalidate(email)
        self.pending.discard(email)

        logger.info(f"Account created for email={email}, user_id={user.id}")
        return AuthResult(user, create_session_token(user.id, user.role))

    def signin_initiate(self, email: str, password: str) -> OTPDispatch:
        _require(email=email, password=password)

        user = self.users.get_by_email(email)
        # Same error whether the email is unknown or the password is wrong
        if user is None or not verify_password(password, user.password_hash):
            logger.warning(f"Rejected sign-in attempt for email={email}")
            raise AuthenticationError(INVALID_CREDENTIALS)

        try:
            self.issuer.issue(email, "signin")
        except DeliveryError:
            logger.warning(f"Sign-in OTP email failed for email={email}; code remains valid")
            return OTPDispatch(
                email, False, "OTP generated. Check your email or spam folder."
            )

        return OTPDispatch(
            email, True, "OTP sent to email. Please verify to complete login."
        )

    def signin_complete(self, email: str, code: str) -> AuthResult:
        _require(email=email, code=code)

        if not self.ledger.verify(email, code):
            logger.warning(f"Sign-in OTP verification failed for email={email}")
            raise AuthenticationError(INVALID_OTP)

        user = self.users.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found")

        self.ledger.invalidate(email)

        logger.info(f"Sign-in completed for email={email}, user_id={user.id}")
        return AuthResult(user, create_session_token(user.id, user.role))
