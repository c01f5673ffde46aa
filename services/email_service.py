import boto3
from botocore.exceptions import BotoCoreError, ClientError
from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import (
    AWS_ACCESS_KEY,
    AWS_REGION,
    AWS_SECRET_ACCESS_KEY,
    AWS_SES_SENDER_EMAIL,
    EMAIL_TEMPLATE_DIR,
    OTP_LIFETIME_MINUTES,
)
from errors import DeliveryError
from services.logs_service import logger as root_logger

logger = root_logger.getChild("email")

SUBJECTS = {
    "signup": "iReporter - Email Verification Code",
    "signin": "Your iReporter Login OTP Code",
}

# Set up Jinja env
env = Environment(
    loader=FileSystemLoader(EMAIL_TEMPLATE_DIR),
    autoescape=select_autoescape(["html", "xml"]),
)

template = env.get_template("otp_email.html.jinja")

ses = boto3.client(
    "ses",
    region_name=AWS_REGION,
    aws_access_key_id=str(AWS_ACCESS_KEY),
    aws_secret_access_key=str(AWS_SECRET_ACCESS_KEY),
)


def render_verification_email(otp: str, purpose: str) -> tuple[str, str]:
    html_body = template.render(otp=otp, purpose=purpose, lifetime=OTP_LIFETIME_MINUTES)
    text_body = (
        f"Your iReporter verification code is: {otp}. "
        f"This code expires in {OTP_LIFETIME_MINUTES} minutes."
    )
    return html_body, text_body


def send_verification_email(email: str, otp: str, purpose: str = "signup"):
    html_body, text_body = render_verification_email(otp, purpose)
    try:
        resp = ses.send_email(
            Source=AWS_SES_SENDER_EMAIL,
            Destination={"ToAddresses": [email]},
            Message={
                "Subject": {"Data": SUBJECTS.get(purpose, SUBJECTS["signup"])},
                "Body": {
                    "Html": {"Data": html_body},
                    "Text": {"Data": text_body},
                },
            },
        )
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code", "Unknown")
        logger.exception(f"SES ClientError when sending verification email to {email}: {code}")
        raise DeliveryError() from e
    except BotoCoreError as e:
        logger.exception(f"SES transport error when sending verification email to {email}")
        raise DeliveryError() from e

    logger.info(
        f"Verification email sent successfully: {email}, Message ID: {resp.get('MessageId')}"
    )
    return resp
