import os

from starlette.config import Config
from starlette.datastructures import CommaSeparatedStrings, Secret

# If APP_CONFIG is set, use that as the path to the .env file, or default to .env
env_file = os.getenv("APP_CONFIG", ".env")
if "APP_CONFIG" in os.environ and not os.path.isfile(env_file):
    raise FileNotFoundError(f"The configuration file specified in APP_CONFIG or the default .env does not exist: {env_file}")

config = Config(env_file)

# JWT Configuration
JWT_SECRET_KEY: Secret = config("JWT_SECRET_KEY", cast=Secret)
JWT_ALGORITHM: str = config("JWT_ALGORITHM", default="HS256")
JWT_ISSUER: str = config("JWT_ISSUER", default="https://ireporter.app")
JWT_AUDIENCE: str = config("JWT_AUDIENCE", default="https://ireporter.app")

# Single expiry policy shared by the sign-up and sign-in flows (7 days)
SESSION_TOKEN_EXPIRE_MINUTES: int = config(
    "SESSION_TOKEN_EXPIRE_MINUTES", cast=int, default=10080
)

# Application Configuration
CORS_ORIGINS: CommaSeparatedStrings = config(
    "CORS_ORIGINS", cast=CommaSeparatedStrings, default=CommaSeparatedStrings([])
)

# AWS SES Configuration
AWS_REGION: str = config("AWS_REGION", default="us-east-2")
AWS_ACCESS_KEY: Secret = config("AWS_ACCESS_KEY", cast=Secret)
AWS_SECRET_ACCESS_KEY: Secret = config("AWS_SECRET_ACCESS_KEY", cast=Secret)
AWS_SES_SENDER_EMAIL: str = config("AWS_SES_SENDER_EMAIL", default="no-reply@ireporter.app")
EMAIL_TEMPLATE_DIR: str = config(
    "EMAIL_TEMPLATE_DIR",
    default=os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates"),
)

# OTP Configuration
OTP_LIFETIME_MINUTES: int = config("OTP_LIFETIME_MINUTES", cast=int, default=10)

# Password policy
PASSWORD_MIN_LENGTH: int = config("PASSWORD_MIN_LENGTH", cast=int, default=6)

# Database Configuration
DATABASE_URL: str = config("DATABASE_URL", default="sqlite:///./ireporter.db")

# Cron Job Configuration
EXPIRED_OTP_CLEANUP_INTERVAL_SECONDS: int = config(
    "EXPIRED_OTP_CLEANUP_INTERVAL_SECONDS", cast=int, default=60
)
