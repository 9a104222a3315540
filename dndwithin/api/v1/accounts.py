"""
Account routes.

Registration, activation, lookup, paging, update and soft delete.
"""

from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, HTTPException, Query, status

from dndwithin.api.dependencies import get_account_service, require_admin
from dndwithin.api.models import (
    AccountCreateRequest,
    AccountResponse,
    AccountsResponse,
    AccountUpdateRequest,
    ActivationResponse,
    ErrorResponse,
    ValidationErrorResponse,
)
from dndwithin.api.v1.errors import validation_error
from dndwithin.domain.accounts import AccountService
from dndwithin.domain.models import (
    Account,
    AccountActivation,
    AccountRole,
    AccountStatus,
    GetAllAccountsOptions,
    SortOrder,
)
from dndwithin.domain.ports import ActivationResult

router = APIRouter(prefix="/accounts", tags=["accounts"])

ACTIVATION_INVALID_DETAIL = "Activation code is invalid or has expired"


@router.post(
    "",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ValidationErrorResponse, "description": "Validation failed"},
        500: {"model": ErrorResponse, "description": "Account could not be saved"},
    },
    summary="Register a new account",
    description="Creates the account in `created` status and queues an activation email.",
)
async def create_account(
    request_data: AccountCreateRequest,
    service: AccountService = Depends(get_account_service),
):
    account = Account(
        id=uuid4(),
        first_name=request_data.first_name,
        last_name=request_data.last_name,
        username=request_data.username,
        email=request_data.email,
        password=request_data.password,
    )
    result = await service.create(account)

    if result.failures:
        return validation_error(result.failures)
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Account could not be created",
        )
    return AccountResponse.from_account(result.account)


@router.get(
    "/activate/{username}/{code}",
    response_model=ActivationResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid or expired code"},
        404: {"model": ErrorResponse, "description": "Account not found"},
    },
    summary="Activate an account",
)
async def activate_account(
    username: str,
    code: str,
    service: AccountService = Depends(get_account_service),
) -> ActivationResponse:
    result = await service.activate(AccountActivation(username=username, activation_code=code))
    _raise_for_activation(result)
    return ActivationResponse(username=username.strip().lower(), message="Activation successful")


@router.post(
    "/activate/{username}/{code}",
    response_model=ActivationResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid code"},
        404: {"model": ErrorResponse, "description": "Account not found"},
    },
    summary="Resend the activation email with a new code",
)
async def resend_activation(
    username: str,
    code: str,
    service: AccountService = Depends(get_account_service),
) -> ActivationResponse:
    result = await service.resend_activation(
        AccountActivation(username=username, activation_code=code)
    )
    _raise_for_activation(result)
    return ActivationResponse(username=username.strip().lower(), message="Activation email sent")


@router.get(
    "/{account_id}",
    response_model=AccountResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get an account by id (admin only)",
    dependencies=[Depends(require_admin)],
)
async def get_account(
    account_id: UUID,
    service: AccountService = Depends(get_account_service),
) -> AccountResponse:
    account = await service.get_by_id(account_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return AccountResponse.from_account(account)


@router.get(
    "",
    response_model=AccountsResponse,
    responses={400: {"model": ValidationErrorResponse}},
    summary="List accounts (admin only)",
    description="`sort_by` accepts `username` or `lastlogin`, prefixed with `-` for descending.",
    dependencies=[Depends(require_admin)],
)
async def get_all_accounts(
    page: int = 1,
    page_size: int = 10,
    username: str | None = None,
    account_status: AccountStatus | None = None,
    account_role: AccountRole | None = None,
    sort_by: str | None = Query(default=None),
    service: AccountService = Depends(get_account_service),
):
    sort_field, sort_order = parse_sort(sort_by)
    options = GetAllAccountsOptions(
        page=page,
        page_size=page_size,
        username=username,
        account_status=account_status,
        account_role=account_role,
        sort_field=sort_field,
        sort_order=sort_order,
    )
    validation, accounts = await service.get_all(options)
    if not validation.is_valid:
        return validation_error(validation.failures)

    total = await service.get_count(username)
    return AccountsResponse(
        items=[AccountResponse.from_account(a) for a in accounts],
        page=page,
        page_size=page_size,
        total=total,
    )


@router.put(
    "/{account_id}",
    response_model=AccountResponse,
    responses={
        400: {"model": ValidationErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Update an account's name, status and role (admin only)",
    dependencies=[Depends(require_admin)],
)
async def update_account(
    account_id: UUID,
    request_data: AccountUpdateRequest,
    service: AccountService = Depends(get_account_service),
):
    changes = Account(
        id=account_id,
        first_name=request_data.first_name,
        last_name=request_data.last_name,
        username="",
        email="",
        password="",
        account_status=request_data.account_status,
        account_role=request_data.account_role,
    )
    validation, updated = await service.update(changes)
    if not validation.is_valid:
        return validation_error(validation.failures)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return AccountResponse.from_account(updated)


@router.delete(
    "/{account_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
    summary="Soft delete an account (admin only)",
    dependencies=[Depends(require_admin)],
)
async def delete_account(
    account_id: UUID,
    service: AccountService = Depends(get_account_service),
) -> None:
    if not await service.delete(account_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")


def parse_sort(sort_by: str | None) -> tuple[str | None, SortOrder]:
    """Split ``-field``/``+field``/``field`` into (field, order)."""
    if not sort_by:
        return None, SortOrder.UNORDERED
    order = SortOrder.DESCENDING if sort_by.startswith("-") else SortOrder.ASCENDING
    return sort_by.strip("+-").lower(), order


def _raise_for_activation(result: ActivationResult) -> None:
    if result is ActivationResult.SUCCESS:
        return
    if result is ActivationResult.ACCOUNT_NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    if result is ActivationResult.ACTIVATION_INVALID:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail=ACTIVATION_INVALID_DETAIL
        )
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Activation failed, please try again",
    )
