from fastapi import APIRouter, Depends, Request, Response

from controllers.auth import AuthService, get_auth_service
from core.auth import (
    CurrentUser,
    clear_auth_cookies,
    extract_refresh_token,
    get_app_settings,
    get_token_codec,
    protect,
    set_auth_cookies,
)
from core.config import Settings
from core.errors import BadRequest
from core.tokens import TokenCodec, TokenPair
from schema.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SocialLoginRequest,
    VerifyEmailRequest,
    VerifyPhoneRequest,
)
from utils.response import envelope

router = APIRouter()


def _deliver_tokens(
    result: dict, response: Response, settings: Settings, codec: TokenCodec
) -> dict:
    """Cookie mode sets the pair as cookies and keeps it out of the body."""
    if not settings.use_cookie_auth:
        return result
    pair = TokenPair(result["accessToken"], result["refreshToken"])
    set_auth_cookies(response, pair, settings, codec)
    return {"user": result["user"]}


@router.post("/register", status_code=201)
async def register_user(
    req: RegisterRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
    codec: TokenCodec = Depends(get_token_codec),
):
    result = await service.register(req)
    return envelope(
        "User registered successfully",
        _deliver_tokens(result, response, settings, codec),
    )


@router.post("/login")
async def login_user(
    req: LoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
    codec: TokenCodec = Depends(get_token_codec),
):
    result = await service.login(req)
    return envelope("Login successful", _deliver_tokens(result, response, settings, codec))


@router.post("/social-login")
async def social_login(
    req: SocialLoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
    codec: TokenCodec = Depends(get_token_codec),
):
    result = await service.social_login(req)
    return envelope(
        "Social login successful", _deliver_tokens(result, response, settings, codec)
    )


@router.post("/refresh-token")
async def refresh_token(
    request: Request,
    response: Response,
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
    codec: TokenCodec = Depends(get_token_codec),
):
    token = await extract_refresh_token(request)
    if not token:
        raise BadRequest("Refresh token is required")
    pair = await service.refresh_tokens(token)
    if settings.use_cookie_auth:
        set_auth_cookies(response, pair, settings, codec)
        return envelope("Tokens refreshed successfully")
    return envelope(
        "Tokens refreshed successfully",
        {"accessToken": pair.access_token, "refreshToken": pair.refresh_token},
    )


@router.post("/logout")
async def logout_user(
    response: Response,
    current: CurrentUser = Depends(protect),
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    result = await service.logout_current_session(current.user_id, current.session_id)
    clear_auth_cookies(response, settings)
    return envelope(result["message"])


@router.post("/logout-other-devices")
async def logout_other_devices(
    current: CurrentUser = Depends(protect),
    service: AuthService = Depends(get_auth_service),
):
    await service.logout_other_devices(current.user_id, current.session_id)
    return envelope("Logged out from all other devices")


@router.post("/logout-all-devices")
async def logout_all_devices(
    response: Response,
    current: CurrentUser = Depends(protect),
    service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_app_settings),
):
    await service.logout_all_devices(current.user_id)
    clear_auth_cookies(response, settings)
    return envelope("Logged out from all devices")


@router.post("/forgot-password")
async def forgot_password(
    req: ForgotPasswordRequest,
    service: AuthService = Depends(get_auth_service),
):
    result = await service.forgot_password(req.email)
    return envelope(result["message"])


@router.post("/reset-password")
async def reset_password(
    req: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
):
    result = await service.reset_password(req)
    return envelope(result["message"])


@router.post("/verify-email")
async def verify_email(
    req: VerifyEmailRequest,
    service: AuthService = Depends(get_auth_service),
):
    result = await service.verify_email(req.token)
    return envelope(result["message"])


@router.post("/verify-phone")
async def verify_phone(
    req: VerifyPhoneRequest,
    current: CurrentUser = Depends(protect),
    service: AuthService = Depends(get_auth_service),
):
    result = await service.verify_phone(req.code, current.user_id)
    return envelope(result["message"])


@router.post("/resend-email-verification")
async def resend_email_verification(
    current: CurrentUser = Depends(protect),
    service: AuthService = Depends(get_auth_service),
):
    result = await service.resend_email_verification(current.user_id)
    return envelope(result["message"])


@router.post("/resend-phone-verification")
async def resend_phone_verification(
    current: CurrentUser = Depends(protect),
    service: AuthService = Depends(get_auth_service),
):
    result = await service.resend_phone_verification(current.user_id)
    return envelope(result["message"])
