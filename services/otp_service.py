import secrets
import string
from collections.abc import Callable
from datetime import timedelta

from config import OTP_LIFETIME_MINUTES
from services.email_service import send_verification_email
from services.logs_service import logger as root_logger
from services.otp_ledger import OTPLedger

logger = root_logger.getChild("otp")

# (email, code, purpose) -> None; raises DeliveryError on failure
Sender = Callable[[str, str, str], object]

# Codes are always six digits, 000000 to 999999
OTP_LENGTH = 6


def generate_otp() -> str:
    # Zero-padded digits, uniform over the whole code space
    return "".join(secrets.choice(string.digits) for _ in range(OTP_LENGTH))


class OTPIssuer:
    """Generate a code, record it in the ledger, then deliver it by email.

    A delivery failure propagates as DeliveryError with the ledger entry
    still in place; callers decide whether to roll it back.
    """

    def __init__(
        self,
        ledger: OTPLedger,
        send: Sender = send_verification_email,
        ttl: timedelta = timedelta(minutes=OTP_LIFETIME_MINUTES),
        generate: Callable[[], str] = generate_otp,
    ):
        self.ledger = ledger
        self.send = send
        self.ttl = ttl
        self.generate = generate

    def issue(self, email: str, purpose: str = "signup") -> str:
        code = self.generate()
        self.ledger.put(email, code, self.ttl)
        logger.info(f"Issued {purpose} OTP for email={email}")

        self.send(email, code, purpose)
        return code
