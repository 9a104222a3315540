"""
Authentication routes.

Login and the three-step password reset flow. The reset start endpoint
answers 202 whether or not the email is registered.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from dndwithin.api.dependencies import get_account_service, get_auth_service
from dndwithin.api.models import (
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordResetCommitRequest,
    PasswordResetStartRequest,
    PasswordResetVerifyRequest,
    ValidationErrorResponse,
)
from dndwithin.api.v1.errors import validation_error
from dndwithin.domain.accounts import AccountService
from dndwithin.domain.auth import AuthService
from dndwithin.domain.models import PasswordResetRequest
from dndwithin.domain.ports import LoginResult, PasswordResetResult

router = APIRouter(prefix="/auth", tags=["auth"])

RESET_CODE_INVALID_DETAIL = "Password reset code is invalid or has expired"


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={401: {"model": ErrorResponse, "description": "Login refused"}},
    summary="Log in with email or username",
)
async def login(
    request_data: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> LoginResponse:
    outcome = await service.login(request_data.identifier, request_data.password)
    if outcome.result is not LoginResult.SUCCESS:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=outcome.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return LoginResponse(access_token=outcome.token)


@router.post(
    "/password-reset",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a password reset",
    description="Always accepted. A reset email is queued only for registered addresses.",
)
async def start_password_reset(
    request_data: PasswordResetStartRequest,
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    await service.request_password_reset(request_data.email)
    return MessageResponse(
        message="If the email is registered, a password reset link has been sent"
    )


@router.post(
    "/password-reset/verify",
    response_model=MessageResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Check a password reset code",
)
async def verify_password_reset(
    request_data: PasswordResetVerifyRequest,
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    result = await service.verify_password_reset_code(request_data.email, request_data.code)
    if result is not PasswordResetResult.SUCCESS:
        # Unknown account and bad code look the same from outside
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=RESET_CODE_INVALID_DETAIL)
    return MessageResponse(message="Password reset code is valid")


@router.post(
    "/password-reset/commit",
    response_model=MessageResponse,
    responses={
        400: {"model": ValidationErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Set a new password using a reset code",
)
async def commit_password_reset(
    request_data: PasswordResetCommitRequest,
    service: AccountService = Depends(get_account_service),
):
    result, failures = await service.reset_password(
        PasswordResetRequest(
            email=request_data.email,
            code=request_data.code,
            new_password=request_data.new_password,
        )
    )

    if result is PasswordResetResult.SUCCESS:
        return MessageResponse(message="Password has been reset")
    if result is PasswordResetResult.INVALID_PASSWORD:
        return validation_error(failures)
    if result is PasswordResetResult.FAILED:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Password could not be reset, please try again",
        )
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=RESET_CODE_INVALID_DETAIL)
