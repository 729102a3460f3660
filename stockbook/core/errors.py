from __future__ import annotations

from http import HTTPStatus
from typing import Any, Mapping

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException


# ---- Domain errors raised by the crud/services layer ----


class FieldValidationError(ValueError):
    """Input rejected before anything was written.

    ``errors`` maps a field name (or ``products.<product_id>``) to a message,
    mirroring the per-field error map a form would display.
    """

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors = dict(errors)
        super().__init__("; ".join(f"{key}: {msg}" for key, msg in self.errors.items()))


class InsufficientStockError(FieldValidationError):
    """At least one product cannot cover the requested quantity."""


class DuplicateError(ValueError):
    pass


class ConcurrentUpdateError(ValueError):
    """The row changed underneath us; the caller should refetch and retry."""


# ---- HTTP envelope ----


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


def _status_phrase(code: int) -> str:
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return "Error"


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    message = detail if isinstance(detail, str) else _status_phrase(exc.status_code)
    details = detail if isinstance(detail, dict) else None
    code = "validation_error" if exc.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY else "http_error"
    return ErrorEnvelope(
        status_code=exc.status_code,
        code=code,
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_error",
        message="Validation failed",
        details={"errors": jsonable_errors(exc.errors())},
    )


def jsonable_errors(errors: Any) -> list[dict[str, Any]]:
    cleaned: list[dict[str, Any]] = []
    for err in errors or []:
        item = {k: v for k, v in dict(err).items() if k in ("loc", "msg", "type")}
        item["loc"] = [str(part) for part in item.get("loc", ())]
        cleaned.append(item)
    return cleaned


def as_http_error(exc: ValueError) -> StarletteHTTPException:
    """Translate a domain error into the HTTP error the API reports."""

    if isinstance(exc, FieldValidationError):
        return StarletteHTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"errors": exc.errors},
        )
    if isinstance(exc, (DuplicateError, ConcurrentUpdateError)):
        return StarletteHTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    return StarletteHTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
