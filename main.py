from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_utilities import repeat_every

from auth import TokenPayload, get_current_token, require_admin
from config import CORS_ORIGINS, EXPIRED_OTP_CLEANUP_INTERVAL_SECONDS
from database import init_db
from errors import ConflictError, NotFoundError, ServiceError, ValidationError
from models import (
    AuthResponse,
    MessageResponse,
    OTPSentResponse,
    SigninOTPRequest,
    SignupOTPRequest,
    UpdateProfileRequest,
    UserResponse,
    UsersResponse,
    VerifyOTPRequest,
)
from services.auth_service import AuthService
from services.logs_service import logger
from services.otp_ledger import SQLOTPLedger
from services.otp_service import OTPIssuer
from services.pending_signup_store import SQLPendingSignupStore
from services.user_store import UserStore

otp_ledger = SQLOTPLedger()
pending_signups = SQLPendingSignupStore()
user_store = UserStore()
otp_issuer = OTPIssuer(otp_ledger)


def get_auth_service() -> AuthService:
    return AuthService(
        users=user_store,
        ledger=otp_ledger,
        issuer=otp_issuer,
        pending=pending_signups,
    )


def get_user_store() -> UserStore:
    return user_store


def sweep_expired_records(ledger, pending) -> tuple[int, int]:
    removed_otps = ledger.sweep_expired()
    removed_signups = pending.sweep_expired()
    if removed_otps or removed_signups:
        logger.info(
            f"Expired cleanup task completed, removed {removed_otps} OTP entries "
            f"and {removed_signups} pending sign-ups"
        )
    return removed_otps, removed_signups


# cron job to clean up expired OTPs and abandoned sign-ups
@repeat_every(seconds=EXPIRED_OTP_CLEANUP_INTERVAL_SECONDS)
def clear_expired_otps():
    sweep_expired_records(otp_ledger, pending_signups)


# Initialize the database
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up... Initializing database.")
    init_db()
    logger.info("Database initialized.")
    await clear_expired_otps()  # Initial cleanup on startup
    yield


app = FastAPI(
    title="iReporter Auth API",
    description="Registration, OTP verification and session tokens for iReporter",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code, content={"detail": exc.detail}, headers=headers
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    missing = []
    invalid = []
    for error in exc.errors():
        field = str(error["loc"][-1]) if error.get("loc") else "body"
        if error.get("type") == "missing":
            missing.append(field)
        else:
            invalid.append(field)

    if missing:
        detail = f"Missing required fields: {', '.join(missing)}"
    else:
        detail = f"Invalid value for fields: {', '.join(invalid)}"
    logger.warning(f"Rejected malformed request to {request.url.path}: {detail}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": detail})


# Create router with /api/v1 prefix
router = APIRouter(prefix="/api/v1")


# Auth Routes
@router.post(
    "/auth/send-signup-otp",
    response_model=OTPSentResponse,
    tags=["Authentication"],
    summary="Start sign-up",
    description="Hold the registration details and email a verification code. "
    "The account is only created once the code is verified.",
    responses={
        200: {"description": "The verification code was sent"},
        400: {"description": "Missing fields, weak password, or email already registered"},
        500: {"description": "The verification email could not be sent; the sign-up was discarded"},
    },
)
def send_signup_otp(
    request: SignupOTPRequest,
    service: AuthService = Depends(get_auth_service),
):
    dispatch = service.signup_initiate(
        request.email, request.password, request.name, request.role
    )
    return OTPSentResponse(email=dispatch.email, message=dispatch.message)


@router.post(
    "/auth/verify-signup-otp",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Authentication"],
    summary="Complete sign-up",
    description="Verify the emailed code, create the account and return a session token.",
    responses={
        201: {"description": "The account was created"},
        400: {"description": "The code is invalid or expired, or the sign-up session expired"},
    },
)
def verify_signup_otp(
    request: VerifyOTPRequest,
    service: AuthService = Depends(get_auth_service),
):
    result = service.signup_complete(request.email, request.code)
    return AuthResponse(
        message="Account created successfully",
        user=UserResponse.model_validate(result.user),
        token=result.token,
    )


@router.post(
    "/auth/send-signin-otp",
    response_model=OTPSentResponse,
    tags=["Authentication"],
    summary="Start sign-in",
    description="Check the email and password, then email a one-time code. "
    "If the email cannot be sent the code is still valid.",
    responses={
        200: {"description": "The code was generated"},
        401: {"description": "Invalid email or password"},
    },
)
def send_signin_otp(
    request: SigninOTPRequest,
    service: AuthService = Depends(get_auth_service),
):
    dispatch = service.signin_initiate(request.email, request.password)
    return OTPSentResponse(email=dispatch.email, message=dispatch.message)


@router.post(
    "/auth/verify-signin-otp",
    response_model=AuthResponse,
    tags=["Authentication"],
    summary="Complete sign-in",
    description="Verify the emailed code and return a session token.",
    responses={
        200: {"description": "Sign in successful"},
        401: {"description": "The code is invalid or expired"},
        404: {"description": "The user no longer exists"},
    },
)
def verify_signin_otp(
    request: VerifyOTPRequest,
    service: AuthService = Depends(get_auth_service),
):
    result = service.signin_complete(request.email, request.code)
    return AuthResponse(
        message="Sign in successful",
        user=UserResponse.model_validate(result.user),
        token=result.token,
    )


def _load_user(users: UserStore, user_id: int):
    user = users.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


@router.get(
    "/auth/me",
    response_model=UserResponse,
    tags=["Authentication"],
    summary="Get current user",
    responses={401: {"description": "The token is missing, invalid or expired"}},
)
def get_me(
    token: TokenPayload = Depends(get_current_token),
    users: UserStore = Depends(get_user_store),
):
    return UserResponse.model_validate(_load_user(users, token.user_id))


# User Routes
@router.get(
    "/users",
    response_model=UsersResponse,
    tags=["Users"],
    summary="List users",
    description="List every user, newest first. Admin only.",
    responses={403: {"description": "Admin access required"}},
)
def list_users(
    token: TokenPayload = Depends(require_admin),
    users: UserStore = Depends(get_user_store),
):
    return UsersResponse(
        users=[UserResponse.model_validate(user) for user in users.list_users()]
    )


@router.get(
    "/users/profile",
    response_model=UserResponse,
    tags=["Users"],
    summary="Get own profile",
)
def get_profile(
    token: TokenPayload = Depends(get_current_token),
    users: UserStore = Depends(get_user_store),
):
    return UserResponse.model_validate(_load_user(users, token.user_id))


@router.put(
    "/users/profile",
    response_model=UserResponse,
    tags=["Users"],
    summary="Update own profile",
    responses={
        400: {"description": "No fields to update, or the new email is already in use"},
        404: {"description": "The user no longer exists"},
    },
)
def update_profile(
    request: UpdateProfileRequest,
    token: TokenPayload = Depends(get_current_token),
    users: UserStore = Depends(get_user_store),
):
    if not request.name and not request.email and request.profile_picture is None:
        raise ValidationError("No fields to update")

    if request.email:
        existing = users.get_by_email(request.email)
        if existing is not None and existing.id != token.user_id:
            raise ConflictError("Email already in use")

    user = users.update_profile(
        token.user_id,
        name=request.name,
        email=request.email,
        profile_picture=request.profile_picture,
    )
    if user is None:
        raise NotFoundError("User not found")

    logger.info(f"Profile updated for user_id={token.user_id}")
    return UserResponse.model_validate(user)


@router.delete(
    "/users/{user_id}",
    response_model=MessageResponse,
    tags=["Users"],
    summary="Delete user",
    description="Delete a user account. Admin only; admins cannot delete themselves.",
    responses={
        400: {"description": "Cannot delete your own account"},
        403: {"description": "Admin access required"},
        404: {"description": "User not found"},
    },
)
def delete_user(
    user_id: int,
    token: TokenPayload = Depends(require_admin),
    users: UserStore = Depends(get_user_store),
):
    if token.user_id == user_id:
        raise ValidationError("Cannot delete your own account")

    if not users.delete(user_id):
        raise NotFoundError("User not found")

    logger.info(f"User {user_id} deleted by admin user_id={token.user_id}")
    return MessageResponse(message="User deleted successfully")


@app.get("/health", tags=["Health"])
def health_check():
    return {"status": "healthy"}


# Include router in the app
app.include_router(router)


def main():
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
