"""Translation of domain validation failures into HTTP 400 responses."""

from collections.abc import Iterable

from fastapi import status
from fastapi.responses import JSONResponse

from dndwithin.api.models import FieldError, ValidationErrorResponse
from dndwithin.domain.models import ValidationFailure


def validation_error(failures: Iterable[ValidationFailure]) -> JSONResponse:
    body = ValidationErrorResponse(
        errors=[FieldError(field=f.field, message=f.message) for f in failures]
    )
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump())
