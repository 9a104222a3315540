"""Global settings routes. Every endpoint requires an admin token."""

from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, status

from dndwithin.api.dependencies import get_settings_service, require_admin
from dndwithin.api.models import (
    ErrorResponse,
    GlobalSettingCreateRequest,
    GlobalSettingResponse,
    GlobalSettingsResponse,
    ValidationErrorResponse,
)
from dndwithin.api.v1.accounts import parse_sort
from dndwithin.api.v1.errors import validation_error
from dndwithin.domain.models import GetAllGlobalSettingsOptions, GlobalSetting
from dndwithin.domain.settings_store import GlobalSettingsService

router = APIRouter(
    prefix="/settings",
    tags=["settings"],
    dependencies=[Depends(require_admin)],
)


@router.post(
    "",
    response_model=GlobalSettingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ValidationErrorResponse}},
    summary="Create a global setting",
)
async def create_setting(
    request_data: GlobalSettingCreateRequest,
    service: GlobalSettingsService = Depends(get_settings_service),
):
    setting = GlobalSetting(id=uuid4(), name=request_data.name, value=request_data.value)
    result = await service.create_setting(setting)
    if not result.success:
        return validation_error(result.failures)
    return GlobalSettingResponse.from_setting(setting)


@router.get(
    "/{name}",
    response_model=GlobalSettingResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get a global setting by name",
)
async def get_setting(
    name: str,
    service: GlobalSettingsService = Depends(get_settings_service),
) -> GlobalSettingResponse:
    setting = await service.get_setting(name)
    if setting is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Setting not found")
    return GlobalSettingResponse.from_setting(setting)


@router.get(
    "",
    response_model=GlobalSettingsResponse,
    responses={400: {"model": ValidationErrorResponse}},
    summary="List global settings",
)
async def get_all_settings(
    page: int = 1,
    page_size: int = 10,
    name: str | None = None,
    sort_by: str | None = None,
    service: GlobalSettingsService = Depends(get_settings_service),
):
    sort_field, sort_order = parse_sort(sort_by)
    options = GetAllGlobalSettingsOptions(
        page=page,
        page_size=page_size,
        name=name,
        sort_field=sort_field,
        sort_order=sort_order,
    )
    validation, settings = await service.get_all(options)
    if not validation.is_valid:
        return validation_error(validation.failures)

    total = await service.get_count(name)
    return GlobalSettingsResponse(
        items=[GlobalSettingResponse.from_setting(s) for s in settings],
        page=page,
        page_size=page_size,
        total=total,
    )
