"""HTTP route handlers for registration, login, password reset and OTP operations."""

from fastapi import APIRouter, Depends, Response, status

from otp_auth.api import deps
from otp_auth.db.models.user import User
from otp_auth.schemas.auth import AuthResponse, ForgotPassword, PasswordUpdate, UserCreate, UserLogin, UserResponse
from otp_auth.schemas.common import Message
from otp_auth.schemas.otp import OTPPayload, OTPResponse, OTPStatusPayload, OTPStatusResponse, OTPVerify
from otp_auth.services.auth import AuthenticatedUser, AuthService
from otp_auth.services.otp import IssuedOtp
from otp_auth.services.pending import PendingSession
from otp_auth.services.validation import check_credentials

router = APIRouter(prefix="/auth", tags=["authentication"])


def _otp_response(issued: IssuedOtp) -> OTPResponse:
    return OTPResponse(otp=OTPPayload.model_validate(issued.as_payload()))


def _auth_response(response: Response, authenticated: AuthenticatedUser) -> AuthResponse:
    deps.set_token_cookie(response, authenticated.token)
    return AuthResponse(user=UserResponse.model_validate(authenticated.user), token=authenticated.token)


@router.post("/register", response_model=OTPResponse)
async def register_user(
    payload: UserCreate,
    response: Response,
    pending: PendingSession = Depends(deps.get_pending_session),
    auth_service: AuthService = Depends(deps.get_auth_service),
) -> OTPResponse:
    """Keep the registration details in the session and email an OTP."""

    check_credentials("register", payload.model_dump(by_alias=True))
    issued = await auth_service.register(payload, pending)
    deps.persist_session_cookie(response, pending)
    return _otp_response(issued)


@router.get("/resend-otp", response_model=OTPResponse)
async def resend_otp(
    response: Response,
    reset: str | None = None,
    pending: PendingSession = Depends(deps.get_pending_session),
    auth_service: AuthService = Depends(deps.get_auth_service),
) -> OTPResponse:
    """Issue a fresh OTP for the session; `reset=true` switches to password-reset context."""

    issued = await auth_service.resend_otp(reset == "true", pending)
    return _otp_response(issued)


@router.get("/otp-status", response_model=OTPStatusResponse)
async def otp_status(
    pending: PendingSession = Depends(deps.get_pending_session),
    auth_service: AuthService = Depends(deps.get_auth_service),
) -> OTPStatusResponse:
    """Report expiry, resend availability and attempt count for the session's OTP."""

    result = await auth_service.otp_status(pending)
    return OTPStatusResponse(
        otp=OTPStatusPayload(expiry_time=result.expiry_time, message=result.message, attempts=result.attempts)
    )


@router.post("/verify", response_model=AuthResponse | Message)
async def verify_otp(
    payload: OTPVerify,
    response: Response,
    pending: PendingSession = Depends(deps.get_pending_session),
    auth_service: AuthService = Depends(deps.get_auth_service),
) -> AuthResponse | Message:
    """Confirm the session's OTP; creates the account unless `reset` is set."""

    authenticated = await auth_service.verify(payload.otp, payload.reset, pending)
    deps.persist_session_cookie(response, pending)
    if authenticated is None:
        return Message(message="ok")
    response.status_code = status.HTTP_201_CREATED
    return _auth_response(response, authenticated)


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: UserLogin,
    response: Response,
    auth_service: AuthService = Depends(deps.get_auth_service),
) -> AuthResponse:
    """Authenticate by email or phone and password; sets the auth cookie."""

    check_credentials("login", payload.model_dump(by_alias=True))
    authenticated = await auth_service.login(payload)
    return _auth_response(response, authenticated)


@router.post("/forgot-password", response_model=OTPResponse)
async def forgot_password(
    payload: ForgotPassword,
    response: Response,
    pending: PendingSession = Depends(deps.get_pending_session),
    auth_service: AuthService = Depends(deps.get_auth_service),
) -> OTPResponse:
    """Start a password reset by emailing an OTP to the account owner."""

    check_credentials("forgot", payload.model_dump(by_alias=True))
    issued = await auth_service.forgot_password(payload, pending)
    deps.persist_session_cookie(response, pending)
    return _otp_response(issued)


@router.put("/update-password", response_model=Message)
async def update_password(
    payload: PasswordUpdate,
    response: Response,
    pending: PendingSession = Depends(deps.get_pending_session),
    auth_service: AuthService = Depends(deps.get_auth_service),
) -> Message:
    """Replace the password after a verified reset OTP."""

    check_credentials("reset", payload.model_dump(by_alias=True))
    await auth_service.update_password(payload.password, pending)
    deps.persist_session_cookie(response, pending)
    return Message(message="ok")


@router.get("/logout", response_model=Message)
async def logout(
    response: Response,
    pending: PendingSession = Depends(deps.get_pending_session),
) -> Message:
    await pending.clear()
    deps.clear_auth_cookies(response)
    return Message(message="ok")


@router.get("/reauthenticate", response_model=AuthResponse)
async def reauthenticate(
    response: Response,
    user: User = Depends(deps.get_active_user),
    auth_service: AuthService = Depends(deps.get_auth_service),
) -> AuthResponse:
    """Reissue the access token for the currently authenticated user."""

    authenticated = await auth_service.reauthenticate(user)
    return _auth_response(response, authenticated)
